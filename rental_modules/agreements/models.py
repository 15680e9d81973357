"""
Rental Agreement Domain Models (``rental_modules.agreements.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of the rental lifecycle:
agreements, invoices, recurring charge templates, numbering series,
properties, categories and deposit-refund transactions, plus the command
payloads the lifecycle service accepts.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``; updates go through ``dataclasses.replace``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class AgreementStatus(str, Enum):
    """Rental agreement lifecycle states."""
    ACTIVE = "active"
    RENEWED = "renewed"
    TERMINATED = "terminated"
    EXPIRED = "expired"


class InvoiceStatus(str, Enum):
    """Payment state of an invoice (owned by the payments subsystem)."""
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class InvoiceType(str, Enum):
    RENTAL = "rental"
    SECURITY_DEPOSIT = "security_deposit"
    SERVICE_CHARGE = "service_charge"


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SeriesKind(str, Enum):
    """Document kinds that own a numbering series."""
    AGREEMENT = "agreement"
    INVOICE = "invoice"


class CategoryRole(str, Enum):
    """Semantic slots the engine needs a concrete category for."""
    SECURITY_DEPOSIT = "security_deposit"
    RENTAL_INCOME = "rental_income"
    SECURITY_DEPOSIT_REFUND = "security_deposit_refund"


class ManualInvoiceKind(str, Enum):
    RENT = "rent"
    SECURITY_DEPOSIT = "security_deposit"


class RefundAction(str, Enum):
    """How the security deposit is settled when an agreement ends."""
    NONE = "none"
    COMPANY_REFUND = "company_refund"
    OWNER_DIRECT = "owner_direct"


# =============================================================================
# Entities
# =============================================================================


@dataclass(frozen=True)
class Property:
    """A rentable unit."""
    id: UUID
    name: str
    building_id: UUID | None = None
    owner_id: UUID | None = None


@dataclass(frozen=True)
class Category:
    """An income/expense category."""
    id: UUID
    name: str


@dataclass(frozen=True)
class NumberingSeries:
    """Prefix + zero-padding + stored next value for one document kind."""
    kind: SeriesKind
    prefix: str | None
    padding: int | None
    next_number: int = 1


@dataclass(frozen=True)
class RentalAgreement:
    """A lease between a tenant contact and a property for a fixed term."""
    id: UUID
    agreement_number: str
    contact_id: UUID
    property_id: UUID
    start_date: date
    end_date: date
    monthly_rent: Decimal
    rent_due_day: int = 1
    security_deposit: Decimal = Decimal("0")
    status: AgreementStatus = AgreementStatus.ACTIVE
    owner_id: UUID | None = None
    broker_id: UUID | None = None
    broker_fee: Decimal | None = None
    notes: str = ""
    previous_agreement_id: UUID | None = None

    @property
    def is_active(self) -> bool:
        return self.status is AgreementStatus.ACTIVE


@dataclass(frozen=True)
class Invoice:
    """A receivable issued to the tenant."""
    id: UUID
    invoice_number: str
    contact_id: UUID
    amount: Decimal
    issue_date: date
    due_date: date
    invoice_type: InvoiceType
    paid_amount: Decimal = Decimal("0")
    status: InvoiceStatus = InvoiceStatus.UNPAID
    description: str = ""
    category_id: UUID | None = None
    property_id: UUID | None = None
    building_id: UUID | None = None
    agreement_id: UUID | None = None
    rental_month: str | None = None
    security_deposit_charge: Decimal = Decimal("0")

    @property
    def is_open(self) -> bool:
        return self.status is not InvoiceStatus.PAID


@dataclass(frozen=True)
class RecurringChargeTemplate:
    """Standing instruction to bill a periodic charge for an agreement."""
    id: UUID
    agreement_id: UUID
    contact_id: UUID
    property_id: UUID
    amount: Decimal
    description_template: str
    day_of_month: int
    next_due_date: date
    active: bool = True
    invoice_type: InvoiceType = InvoiceType.RENTAL
    building_id: UUID | None = None
    frequency: RecurringFrequency = RecurringFrequency.MONTHLY
    auto_generate: bool = True
    max_occurrences: int | None = None
    generated_count: int = 0
    last_generated_date: date | None = None


@dataclass(frozen=True)
class RefundTransaction:
    """Expense recorded when the company refunds a security deposit."""
    id: UUID
    amount: Decimal
    transaction_date: date
    description: str
    account_id: UUID
    category_id: UUID
    contact_id: UUID
    property_id: UUID
    agreement_id: UUID


# =============================================================================
# Command payloads
# =============================================================================


@dataclass(frozen=True)
class AgreementDraft:
    """Data submitted to create a new agreement."""
    contact_id: UUID | None
    property_id: UUID | None
    start_date: date | None
    end_date: date | None
    monthly_rent: Decimal | None
    rent_due_day: int = 1
    security_deposit: Decimal = Decimal("0")
    owner_id: UUID | None = None
    broker_id: UUID | None = None
    broker_fee: Decimal | None = None
    notes: str = ""


@dataclass(frozen=True)
class RenewalTerms:
    """New term for a renewal.  Omitted fields default from the old agreement."""
    start_date: date | None = None
    end_date: date | None = None
    monthly_rent: Decimal | None = None
    security_deposit: Decimal | None = None
    rent_due_day: int | None = None
    broker_fee: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class AgreementChanges:
    """Direct edit of a not-yet-invoiced agreement.  None means unchanged."""
    contact_id: UUID | None = None
    property_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None
    monthly_rent: Decimal | None = None
    rent_due_day: int | None = None
    security_deposit: Decimal | None = None
    broker_id: UUID | None = None
    broker_fee: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class TerminationRequest:
    """How to end an agreement."""
    end_date: date | None = None
    refund_action: RefundAction = RefundAction.NONE
    refund_amount: Decimal | None = None
    refund_account_id: UUID | None = None
    notes: str = ""
