"""
Typed Exception Hierarchy for the Rental Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the engine reports is one a human has to resolve: fill in a
field, collect an unpaid invoice, fix the numbering or category setup.
Callers therefore need to tell the failures apart without parsing message
text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way to handle errors:
    try:
        result = service.renew(state, agreement_id, terms)
    except OpenInvoicesError as e:
        show_alert(str(e))                       # names the blocking condition
        api_response(code=e.code, open=e.open_count)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RentalEngineError:

    RentalEngineError (base)
    |
    +-- ValidationError                (bad input, nothing changed)
    |   +-- MissingFieldError
    |   +-- InvalidAmountError
    |   +-- InvalidDateRangeError
    |   +-- InvalidDueDayError
    |   +-- NothingToGenerateError
    |
    +-- PreconditionViolation          (state forbids the operation)
    |   +-- AgreementNotFoundError
    |   +-- PropertyNotFoundError
    |   +-- PropertyOccupiedError
    |   +-- OpenInvoicesError
    |   +-- EditRestrictedError
    |   +-- InvalidTransitionError
    |   +-- DuplicateSecurityDepositError
    |   +-- DuplicateRentInvoiceError
    |
    +-- ConfigurationError             (fatal, fix setup and retry)
        +-- NumberingSeriesNotConfiguredError
        +-- MissingCategoryError
        +-- InvalidConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                             | When Raised
--------------|----------------------------------|-------------------------------
Validation    | MISSING_FIELD                    | Required field not provided
              | INVALID_AMOUNT                   | Amount non-positive / negative
              | INVALID_DATE_RANGE               | End date before start date
              | INVALID_DUE_DAY                  | Rent due day outside 1..31
              | NOTHING_TO_GENERATE              | Rent and deposit both zero
--------------|----------------------------------|-------------------------------
Precondition  | AGREEMENT_NOT_FOUND              | Unknown agreement id
              | PROPERTY_NOT_FOUND               | Unknown property id
              | PROPERTY_OCCUPIED                | Another ACTIVE agreement holds it
              | OPEN_INVOICES                    | Renewal with unpaid invoices
              | EDIT_RESTRICTED                  | Editing terms once invoiced
              | INVALID_TRANSITION               | Status does not allow action
              | DUPLICATE_SECURITY_DEPOSIT       | Deposit already invoiced
              | DUPLICATE_RENT_INVOICE           | Month already invoiced
--------------|----------------------------------|-------------------------------
Configuration | NUMBERING_SERIES_NOT_CONFIGURED  | Prefix/padding absent
              | MISSING_CATEGORY                 | Category role not bound
              | INVALID_CONFIGURATION            | Config set failed validation

===============================================================================
"""

from datetime import date
from decimal import Decimal
from typing import Any


class RentalEngineError(Exception):
    """
    Base exception for all rental engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RENTAL_ENGINE_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(RentalEngineError):
    """Input failed validation. Reported inline, no state change."""

    code: str = "VALIDATION_ERROR"


class MissingFieldError(ValidationError):
    """A required field was not provided."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Please fill in the required field: {field_name}")


class InvalidAmountError(ValidationError):
    """An amount is zero or negative where that is not allowed."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field_name: str, amount: Decimal, reason: str = "must be greater than zero"):
        self.field_name = field_name
        self.amount = amount
        super().__init__(f"{field_name} {reason} (got {amount})")


class InvalidDateRangeError(ValidationError):
    """The end date is before the start date."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}"
        )


class InvalidDueDayError(ValidationError):
    """Rent due day is not a valid day of month."""

    code: str = "INVALID_DUE_DAY"

    def __init__(self, day: int):
        self.day = day
        super().__init__(f"Rent due day must be between 1 and 31 (got {day})")


class NothingToGenerateError(ValidationError):
    """Both rent and security deposit are zero."""

    code: str = "NOTHING_TO_GENERATE"

    def __init__(self, agreement_id: Any):
        self.agreement_id = agreement_id
        super().__init__("Rent and Security Deposit are both zero. Nothing to generate.")


# =============================================================================
# Preconditions
# =============================================================================


class PreconditionViolation(RentalEngineError):
    """Current state forbids the operation. Reported, no state change."""

    code: str = "PRECONDITION_VIOLATION"


class AgreementNotFoundError(PreconditionViolation):
    """Agreement with the given id does not exist."""

    code: str = "AGREEMENT_NOT_FOUND"

    def __init__(self, agreement_id: Any):
        self.agreement_id = agreement_id
        super().__init__(f"Rental agreement not found: {agreement_id}")


class PropertyNotFoundError(PreconditionViolation):
    """Property with the given id does not exist."""

    code: str = "PROPERTY_NOT_FOUND"

    def __init__(self, property_id: Any):
        self.property_id = property_id
        super().__init__(f"Property not found: {property_id}")


class PropertyOccupiedError(PreconditionViolation):
    """Another ACTIVE agreement already holds the property."""

    code: str = "PROPERTY_OCCUPIED"

    def __init__(self, property_id: Any, occupying_agreement_id: Any, occupying_number: str = ""):
        self.property_id = property_id
        self.occupying_agreement_id = occupying_agreement_id
        self.occupying_number = occupying_number
        label = occupying_number or str(occupying_agreement_id)
        super().__init__(
            f"Property {property_id} is already occupied by active agreement {label}"
        )


class OpenInvoicesError(PreconditionViolation):
    """Agreement has invoices that are not fully paid."""

    code: str = "OPEN_INVOICES"

    def __init__(self, agreement_id: Any, open_count: int, open_invoice_numbers: tuple[str, ...] = ()):
        self.agreement_id = agreement_id
        self.open_count = open_count
        self.open_invoice_numbers = open_invoice_numbers
        super().__init__(
            f"Cannot renew: {open_count} open invoice(s). "
            "Please ensure all invoices are fully paid before renewing."
        )


class EditRestrictedError(PreconditionViolation):
    """Commercial terms cannot be edited once invoices exist."""

    code: str = "EDIT_RESTRICTED"

    def __init__(self, agreement_id: Any, invoice_count: int):
        self.agreement_id = agreement_id
        self.invoice_count = invoice_count
        super().__init__(
            f"Cannot edit agreement: {invoice_count} invoice(s) are associated with it. "
            "Renew the agreement to change its terms."
        )


class InvalidTransitionError(PreconditionViolation):
    """The agreement status does not allow the requested action."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, agreement_id: Any, from_status: str, action: str):
        self.agreement_id = agreement_id
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot {action} agreement {agreement_id} in status '{from_status}'"
        )


class DuplicateSecurityDepositError(PreconditionViolation):
    """A security deposit invoice already covers the deposit."""

    code: str = "DUPLICATE_SECURITY_DEPOSIT"

    def __init__(self, agreement_id: Any, existing_invoice_number: str):
        self.agreement_id = agreement_id
        self.existing_invoice_number = existing_invoice_number
        super().__init__(
            "A security deposit invoice already exists for this agreement "
            f"({existing_invoice_number})"
        )


class DuplicateRentInvoiceError(PreconditionViolation):
    """A rent invoice for the month already exists."""

    code: str = "DUPLICATE_RENT_INVOICE"

    def __init__(self, agreement_id: Any, rental_month: str, existing_invoice_number: str):
        self.agreement_id = agreement_id
        self.rental_month = rental_month
        self.existing_invoice_number = existing_invoice_number
        super().__init__(
            f"Rent for {rental_month} is already invoiced ({existing_invoice_number})"
        )


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(RentalEngineError):
    """Engine setup is incomplete. Fatal to the operation, no partial writes."""

    code: str = "CONFIGURATION_ERROR"


class NumberingSeriesNotConfiguredError(ConfigurationError):
    """Numbering series has no prefix/padding configured."""

    code: str = "NUMBERING_SERIES_NOT_CONFIGURED"

    def __init__(self, series_kind: str):
        self.series_kind = series_kind
        super().__init__(
            f"Numbering series not configured for {series_kind}: "
            "set a prefix and padding in the numbering settings"
        )


class MissingCategoryError(ConfigurationError):
    """A required category role is not bound to a category."""

    code: str = "MISSING_CATEGORY"

    def __init__(self, role: str, category_name: str | None = None):
        self.role = role
        self.category_name = category_name
        label = category_name or role
        super().__init__(f"'{label}' category not found. Please check settings.")


class InvalidConfigurationError(ConfigurationError):
    """Configuration set failed validation."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, errors: list[str], source: str | None = None):
        self.errors = errors
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Invalid configuration{where}: {len(errors)} error(s): " + "; ".join(errors)
        )
