"""
Config -> Module Bridges.

Functions that convert an ``EngineConfig`` into inputs of
``rental_modules.agreements``.  They live in rental_config (the producer)
so that the modules never parse configuration themselves.

Usage:
    from rental_config.bridges import build_agreement_service

    config = get_active_config()
    service = build_agreement_service(config, state.categories)
"""

from __future__ import annotations

from typing import Iterable

from rental_config.schema import EngineConfig
from rental_kernel.domain.clock import Clock
from rental_modules.agreements.categories import CategoryBindings
from rental_modules.agreements.config import AgreementConfig
from rental_modules.agreements.models import Category, CategoryRole, NumberingSeries, SeriesKind
from rental_modules.agreements.numbering import NumberAllocator
from rental_modules.agreements.service import Confirmer, RentalAgreementService


def build_series_defaults(config: EngineConfig) -> dict[SeriesKind, NumberingSeries]:
    """Default numbering series keyed by document kind."""
    return {
        SeriesKind(n.kind): NumberingSeries(
            kind=SeriesKind(n.kind),
            prefix=n.prefix,
            padding=n.padding,
            next_number=n.next_number,
        )
        for n in config.numbering
    }


def build_category_bindings(config: EngineConfig, categories: Iterable[Category]) -> CategoryBindings:
    """Resolve every configured category role against a tenant's categories."""
    explicit = {}
    names = {}
    for ref in config.category_roles:
        role = CategoryRole(ref.role)
        explicit[role] = ref.category_id
        names[role] = ref.category_name
    return CategoryBindings.resolve(categories, explicit_ids=explicit, names=names)


def build_agreement_config(config: EngineConfig) -> AgreementConfig:
    s = config.agreements
    return AgreementConfig(
        default_term_months=s.default_term_months,
        security_due_days=s.security_due_days,
        recurring_due_days=s.recurring_due_days,
        deposit_match_tolerance=s.deposit_match_tolerance,
        expiring_soon_days=s.expiring_soon_days,
        month_label_format=s.month_label_format,
        rent_description_template=s.rent_description_template,
        renewal_rent_description_template=s.renewal_rent_description_template,
        security_description=s.security_description,
        incremental_security_description=s.incremental_security_description,
        deactivate_templates_on_expiry=s.deactivate_templates_on_expiry,
    )


def build_agreement_service(
    config: EngineConfig,
    categories: Iterable[Category],
    clock: Clock | None = None,
    allocator: NumberAllocator | None = None,
    confirmer: Confirmer | None = None,
) -> RentalAgreementService:
    """Wire a ``RentalAgreementService`` for one tenant."""
    return RentalAgreementService(
        build_category_bindings(config, categories),
        config=build_agreement_config(config),
        clock=clock,
        allocator=allocator,
        confirmer=confirmer,
        series_defaults=build_series_defaults(config),
    )
