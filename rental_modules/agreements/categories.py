"""
Category role bindings (``rental_modules.agreements.categories``).

Invoices and refund transactions are booked against categories that the
engine knows only by ROLE (security deposit, rental income, deposit
refund).  ``CategoryBindings`` maps each role to a concrete category id.
It is built once per tenant, either from explicit ids in configuration or
by matching a configured category name against the tenant's categories.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping
from uuid import UUID

from rental_kernel.exceptions import MissingCategoryError
from rental_kernel.logging_config import get_logger
from rental_modules.agreements.models import Category, CategoryRole, InvoiceType

logger = get_logger("modules.agreements.categories")

ROLE_FOR_INVOICE_TYPE: dict[InvoiceType, CategoryRole] = {
    InvoiceType.RENTAL: CategoryRole.RENTAL_INCOME,
    InvoiceType.SECURITY_DEPOSIT: CategoryRole.SECURITY_DEPOSIT,
}


@dataclass(frozen=True)
class CategoryBindings:
    """Role -> category id, plus the display names used in error messages."""

    ids: Mapping[CategoryRole, UUID] = field(default_factory=dict)
    names: Mapping[CategoryRole, str] = field(default_factory=dict)

    def get(self, role: CategoryRole) -> UUID | None:
        return self.ids.get(role)

    def require(self, role: CategoryRole) -> UUID:
        """Category id bound to ``role``; ``MissingCategoryError`` if unbound."""
        category_id = self.ids.get(role)
        if category_id is None:
            raise MissingCategoryError(role.value, self.names.get(role))
        return category_id

    def require_all(self, roles: Iterable[CategoryRole]) -> None:
        for role in roles:
            self.require(role)

    @classmethod
    def resolve(
        cls,
        categories: Iterable[Category],
        explicit_ids: Mapping[CategoryRole, UUID | None] | None = None,
        names: Mapping[CategoryRole, str | None] | None = None,
    ) -> CategoryBindings:
        """
        Build bindings for a tenant.

        An explicit id wins.  Otherwise the configured name is matched
        case-insensitively against ``categories``.  Roles that resolve to
        nothing stay unbound; the error surfaces only when an operation
        needs that role.
        """
        explicit_ids = explicit_ids or {}
        names = names or {}
        by_name = {c.name.strip().lower(): c.id for c in categories}

        ids: dict[CategoryRole, UUID] = {}
        for role in CategoryRole:
            category_id = explicit_ids.get(role)
            if category_id is None and names.get(role):
                category_id = by_name.get(names[role].strip().lower())
            if category_id is not None:
                ids[role] = category_id
            else:
                logger.warning(
                    "category_role_unbound",
                    extra={"role": role.value, "category_name": names.get(role)},
                )

        return cls(
            ids=ids,
            names={role: name for role, name in names.items() if name},
        )
