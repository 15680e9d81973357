"""
Pytest fixtures for the rental engine test suite.

Provides:
- Structured logging configuration and log capture
- A DeterministicClock pinned to 2025-03-15
- A populated tenant RentalState (properties, categories, numbering)
- Factories for agreements, invoices and recurring templates
- A RentalAgreementService wired to the fixtures above
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rental_modules.agreements.categories import CategoryBindings
from rental_modules.agreements.models import (
    AgreementStatus,
    Category,
    CategoryRole,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    NumberingSeries,
    Property,
    RecurringChargeTemplate,
    RentalAgreement,
    SeriesKind,
)
from rental_modules.agreements.service import AutoConfirm, RentalAgreementService
from rental_modules.agreements.state import RentalState

# Fixed identities so failures are readable
TENANT_ID = UUID("00000000-0000-0000-0000-0000000000c1")
OTHER_TENANT_ID = UUID("00000000-0000-0000-0000-0000000000c2")
OWNER_ID = UUID("00000000-0000-0000-0000-0000000000d1")
BUILDING_ID = UUID("00000000-0000-0000-0000-0000000000b1")
PROPERTY_1 = UUID("00000000-0000-0000-0000-0000000000a1")
PROPERTY_2 = UUID("00000000-0000-0000-0000-0000000000a2")
PROPERTY_3 = UUID("00000000-0000-0000-0000-0000000000a3")
DEPOSIT_CATEGORY = UUID("00000000-0000-0000-0000-0000000000e1")
RENT_CATEGORY = UUID("00000000-0000-0000-0000-0000000000e2")
REFUND_CATEGORY = UUID("00000000-0000-0000-0000-0000000000e3")
BANK_ACCOUNT_ID = UUID("00000000-0000-0000-0000-0000000000f1")

TODAY = date(2025, 3, 15)

CATEGORY_NAMES = {
    CategoryRole.SECURITY_DEPOSIT: "Security Deposit",
    CategoryRole.RENTAL_INCOME: "Rental Income",
    CategoryRole.SECURITY_DEPOSIT_REFUND: "Security Deposit Refund",
}


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture rental_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.create(...)
            logs = captured_logs()
            assert any(r["message"] == "agreement_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rental_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock.on(TODAY)


# =============================================================================
# Tenant state
# =============================================================================


@pytest.fixture
def properties() -> tuple[Property, ...]:
    return (
        Property(id=PROPERTY_1, name="Unit 101", building_id=BUILDING_ID, owner_id=OWNER_ID),
        Property(id=PROPERTY_2, name="Unit 102", building_id=BUILDING_ID, owner_id=OWNER_ID),
        Property(id=PROPERTY_3, name="Shop 1"),
    )


@pytest.fixture
def categories() -> tuple[Category, ...]:
    return (
        Category(id=DEPOSIT_CATEGORY, name="Security Deposit"),
        Category(id=RENT_CATEGORY, name="Rental Income"),
        Category(id=REFUND_CATEGORY, name="Security Deposit Refund"),
    )


@pytest.fixture
def numbering() -> tuple[NumberingSeries, ...]:
    return (
        NumberingSeries(kind=SeriesKind.AGREEMENT, prefix="AGR-", padding=4, next_number=1),
        NumberingSeries(kind=SeriesKind.INVOICE, prefix="INV-", padding=5, next_number=1),
    )


@pytest.fixture
def rental_state(properties, categories, numbering) -> RentalState:
    """Tenant with three free properties and no agreements yet."""
    return RentalState(properties=properties, categories=categories, numbering=numbering)


@pytest.fixture
def bindings(categories) -> CategoryBindings:
    return CategoryBindings.resolve(categories, names=CATEGORY_NAMES)


@pytest.fixture
def confirmer() -> AutoConfirm:
    return AutoConfirm(True)


@pytest.fixture
def service(bindings, clock, confirmer) -> RentalAgreementService:
    return RentalAgreementService(bindings, clock=clock, confirmer=confirmer)


# =============================================================================
# Entity factories
# =============================================================================


@pytest.fixture
def make_agreement():
    """Factory for agreements with sensible defaults."""

    def _make(**overrides) -> RentalAgreement:
        values = dict(
            id=uuid4(),
            agreement_number="AGR-0001",
            contact_id=TENANT_ID,
            property_id=PROPERTY_1,
            start_date=date(2025, 1, 1),
            end_date=date(2025, 12, 31),
            monthly_rent=Decimal("12000"),
            rent_due_day=1,
            security_deposit=Decimal("50000"),
            status=AgreementStatus.ACTIVE,
            owner_id=OWNER_ID,
        )
        values.update(overrides)
        return RentalAgreement(**values)

    return _make


@pytest.fixture
def make_invoice():
    """Factory for invoices linked to an agreement."""

    def _make(agreement: RentalAgreement, **overrides) -> Invoice:
        values = dict(
            id=uuid4(),
            invoice_number="INV-00001",
            contact_id=agreement.contact_id,
            amount=agreement.monthly_rent,
            issue_date=agreement.start_date,
            due_date=agreement.start_date,
            invoice_type=InvoiceType.RENTAL,
            status=InvoiceStatus.UNPAID,
            property_id=agreement.property_id,
            agreement_id=agreement.id,
        )
        values.update(overrides)
        return Invoice(**values)

    return _make


@pytest.fixture
def make_template():
    """Factory for recurring rent templates linked to an agreement."""

    def _make(agreement: RentalAgreement, **overrides) -> RecurringChargeTemplate:
        values = dict(
            id=uuid4(),
            agreement_id=agreement.id,
            contact_id=agreement.contact_id,
            property_id=agreement.property_id,
            amount=agreement.monthly_rent,
            description_template="Rent for {Month}",
            day_of_month=agreement.rent_due_day,
            next_due_date=date(2025, 2, 1),
        )
        values.update(overrides)
        return RecurringChargeTemplate(**values)

    return _make
