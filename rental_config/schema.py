"""
EngineConfig schema.

Typed, frozen form of a rental engine configuration set.  YAML sets are
validated by ``validator.py`` and parsed into these types by ``loader.py``;
``bridges.py`` turns them into module inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class NumberingDef:
    """Default numbering series for one document kind."""

    kind: str  # agreement, invoice
    prefix: str
    padding: int
    next_number: int = 1


@dataclass(frozen=True)
class CategoryRef:
    """Binds a category role to a category, by id or by legacy name."""

    role: str  # security_deposit, rental_income, security_deposit_refund
    category_id: UUID | None = None
    category_name: str | None = None


@dataclass(frozen=True)
class AgreementSettingsDef:
    """Module knobs for ``rental_modules.agreements``."""

    default_term_months: int = 12
    security_due_days: int = 7
    recurring_due_days: int = 7
    deposit_match_tolerance: Decimal = Decimal("0.01")
    expiring_soon_days: int = 30
    month_label_format: str = "%B %Y"
    rent_description_template: str = "Rent for {Month}"
    renewal_rent_description_template: str = "Rent for {Month} (Renewal)"
    security_description: str = "Security Deposit"
    incremental_security_description: str = "Incremental Security Deposit (Renewal)"
    deactivate_templates_on_expiry: bool = True


@dataclass(frozen=True)
class EngineConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    description: str = ""
    numbering: tuple[NumberingDef, ...] = ()
    category_roles: tuple[CategoryRef, ...] = ()
    agreements: AgreementSettingsDef = field(default_factory=AgreementSettingsDef)
    checksum: str = ""

    def numbering_for(self, kind: str) -> NumberingDef | None:
        return next((n for n in self.numbering if n.kind == kind), None)

    def category_for(self, role: str) -> CategoryRef | None:
        return next((c for c in self.category_roles if c.role == role), None)
