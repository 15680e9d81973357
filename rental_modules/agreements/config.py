"""
Rental Agreement Module Configuration Schema.

Knobs for lease terms, invoice dating, duplicate-deposit tolerance and the
text of generated documents.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from rental_kernel.logging_config import get_logger

logger = get_logger("modules.agreements.config")

MONTH_PLACEHOLDER = "{Month}"


@dataclass(frozen=True)
class AgreementConfig:
    """Configuration schema for the rental agreement module."""

    # Length of a renewed term when no end date is given
    default_term_months: int = 12

    # Days after issue that a manually created deposit invoice falls due
    security_due_days: int = 7

    # Days after issue that a materialized recurring invoice falls due
    recurring_due_days: int = 7

    # Fraction of the deposit an existing invoice may fall short by and
    # still count as "the deposit invoice"
    deposit_match_tolerance: Decimal = Decimal("0.01")

    # "Expiring soon" window for the repository view
    expiring_soon_days: int = 30

    # strftime format for "{Month}" in descriptions
    month_label_format: str = "%B %Y"

    rent_description_template: str = "Rent for {Month}"
    renewal_rent_description_template: str = "Rent for {Month} (Renewal)"
    security_description: str = "Security Deposit"
    incremental_security_description: str = "Incremental Security Deposit (Renewal)"

    # Stop billing when the expiry sweep closes an agreement
    deactivate_templates_on_expiry: bool = True

    def __post_init__(self):
        if self.default_term_months <= 0:
            raise ValueError("default_term_months must be positive")
        if self.security_due_days < 0 or self.recurring_due_days < 0:
            raise ValueError("due-day offsets cannot be negative")
        if not Decimal("0") <= self.deposit_match_tolerance < Decimal("1"):
            raise ValueError("deposit_match_tolerance must be in [0, 1)")
        if self.expiring_soon_days < 0:
            raise ValueError("expiring_soon_days cannot be negative")
        for name in ("rent_description_template", "renewal_rent_description_template"):
            if MONTH_PLACEHOLDER not in getattr(self, name):
                raise ValueError(f"{name} must contain {MONTH_PLACEHOLDER}")

        logger.debug(
            "agreement_config_initialized",
            extra={
                "default_term_months": self.default_term_months,
                "recurring_due_days": self.recurring_due_days,
                "deposit_match_tolerance": str(self.deposit_match_tolerance),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        return cls()
