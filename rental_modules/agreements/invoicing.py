"""
Invoice Generator (``rental_modules.agreements.invoicing``).

Responsibility
--------------
Builds the documents an agreement needs when it starts or is renewed: the
security-deposit invoice (full deposit, or the increase on renewal), the
first month's rent invoice and the recurring rent template.  Also builds
single manual rent or deposit invoices for an existing agreement.

Architecture position
---------------------
**Modules layer** -- pure computation.  Reads a ``RentalState`` through
``AgreementRepositoryView``; returns ``GeneratedDocuments`` which the
lifecycle service converts to mutations.

Invariants enforced
-------------------
* Allocation order is fixed: deposit invoice, then rent invoice.  Numbers
  within one call are consecutive and ascending.
* All-or-nothing: every category role a document will need is checked
  before any number is allocated.
* Renewal bills only the deposit increase, never a decrease.
* Deposit duplicates are detected with a 1% tolerance; rent duplicates are
  keyed on ``(agreement_id, rental_month)``.  Bulk generation skips a
  duplicate with a recorded reason; manual creation rejects it.

Failure modes
-------------
* ``MissingCategoryError`` -- role needed by a produced document is unbound.
* ``NumberingSeriesNotConfiguredError`` -- invoice series unusable.
* ``DuplicateRentInvoiceError`` / ``DuplicateSecurityDepositError`` --
  manual creation only.
* ``InvalidAmountError`` -- manual invoice amount is not positive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Mapping
from uuid import uuid4

from rental_kernel.domain.dates import add_months, first_of_month, month_label, rental_month_key
from rental_kernel.exceptions import (
    DuplicateRentInvoiceError,
    DuplicateSecurityDepositError,
    InvalidAmountError,
)
from rental_kernel.logging_config import get_logger
from rental_modules.agreements.categories import CategoryBindings
from rental_modules.agreements.config import MONTH_PLACEHOLDER, AgreementConfig
from rental_modules.agreements.models import (
    CategoryRole,
    Invoice,
    InvoiceType,
    ManualInvoiceKind,
    NumberingSeries,
    RecurringChargeTemplate,
    RentalAgreement,
    SeriesKind,
)
from rental_modules.agreements.numbering import NumberAllocator, ScanNumberAllocator, resolve_series
from rental_modules.agreements.scheduler import RecurringChargeScheduler
from rental_modules.agreements.selectors import AgreementRepositoryView
from rental_modules.agreements.state import RentalState

logger = get_logger("modules.agreements.invoicing")

ZERO = Decimal("0")


@dataclass(frozen=True)
class GeneratedDocuments:
    """Documents produced by one generator call."""
    invoices: tuple[Invoice, ...] = ()
    template: RecurringChargeTemplate | None = None
    series: NumberingSeries | None = None
    skipped: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.invoices and self.template is None


@dataclass(frozen=True)
class _Planned:
    invoice_type: InvoiceType
    amount: Decimal
    description: str
    issue_date: date
    due_date: date
    rental_month: str | None = None


class InvoiceGenerator:
    """
    Produces deposit and rent invoices plus the recurring rent template.

    Contract
    --------
    * Never mutates state; all output is returned in ``GeneratedDocuments``.
    * ``series`` in the result is the invoice series advanced past the last
      allocated number, or None when nothing was allocated.
    """

    def __init__(
        self,
        bindings: CategoryBindings,
        config: AgreementConfig | None = None,
        allocator: NumberAllocator | None = None,
        scheduler: RecurringChargeScheduler | None = None,
        series_defaults: Mapping[SeriesKind, NumberingSeries] | None = None,
    ):
        self._bindings = bindings
        self._config = config or AgreementConfig.with_defaults()
        self._allocator = allocator or ScanNumberAllocator()
        self._scheduler = scheduler or RecurringChargeScheduler(self._config, self._allocator)
        self._series_defaults = series_defaults

    # =========================================================================
    # Bulk generation
    # =========================================================================

    def generate_initial_invoices(
        self,
        state: RentalState,
        agreement: RentalAgreement,
    ) -> GeneratedDocuments:
        """
        Deposit invoice, first rent invoice and recurring template for a new
        (or imported) agreement.  Issue and due date are the start date.
        """
        return self._generate(
            state,
            agreement,
            deposit_amount=agreement.security_deposit,
            deposit_description=self._config.security_description,
            rent_template=self._config.rent_description_template,
            action="initial",
        )

    def generate_renewal_invoices(
        self,
        state: RentalState,
        previous: RentalAgreement,
        renewed: RentalAgreement,
    ) -> GeneratedDocuments:
        """
        Documents for a renewal: only the deposit increase is billed.
        """
        increment = max(ZERO, renewed.security_deposit - previous.security_deposit)
        return self._generate(
            state,
            renewed,
            deposit_amount=increment,
            deposit_description=self._config.incremental_security_description,
            rent_template=self._config.renewal_rent_description_template,
            action="renewal",
        )

    def _generate(
        self,
        state: RentalState,
        agreement: RentalAgreement,
        deposit_amount: Decimal,
        deposit_description: str,
        rent_template: str,
        action: str,
    ) -> GeneratedDocuments:
        view = AgreementRepositoryView(state)
        start = agreement.start_date
        month = rental_month_key(start)
        planned: list[_Planned] = []
        skipped: list[str] = []

        if deposit_amount > ZERO:
            existing = view.find_security_deposit_invoice(
                agreement.id, deposit_amount, self._config.deposit_match_tolerance,
            )
            if existing is not None:
                skipped.append(
                    f"Security deposit already invoiced ({existing.invoice_number})"
                )
            else:
                planned.append(_Planned(
                    invoice_type=InvoiceType.SECURITY_DEPOSIT,
                    amount=deposit_amount,
                    description=deposit_description,
                    issue_date=start,
                    due_date=start,
                ))

        if agreement.monthly_rent > ZERO:
            existing = view.rent_invoice_for_month(agreement.id, month)
            if existing is not None:
                skipped.append(f"Rent for {month} already invoiced ({existing.invoice_number})")
            else:
                label = month_label(start, self._config.month_label_format)
                planned.append(_Planned(
                    invoice_type=InvoiceType.RENTAL,
                    amount=agreement.monthly_rent,
                    description=rent_template.replace(MONTH_PLACEHOLDER, label),
                    issue_date=start,
                    due_date=start,
                    rental_month=month,
                ))

        needs_template = (
            agreement.monthly_rent > ZERO and not view.active_templates_for(agreement.id)
        )
        roles = {self._role_for(p.invoice_type) for p in planned}
        if needs_template:
            roles.add(CategoryRole.RENTAL_INCOME)
        self._bindings.require_all(sorted(roles, key=lambda r: r.value))

        invoices, series = self._allocate_and_build(state, agreement, planned)
        template = None
        if needs_template:
            template = self._scheduler.create_template(
                agreement, start_date=start, building_id=self._building_id(state, agreement),
            )

        for reason in skipped:
            logger.info(
                "invoice_generation_skipped",
                extra={"agreement_id": str(agreement.id), "reason": reason, "action": action},
            )
        logger.info(
            "agreement_invoices_generated",
            extra={
                "agreement_id": str(agreement.id),
                "action": action,
                "invoice_numbers": [i.invoice_number for i in invoices],
                "template_created": template is not None,
            },
        )
        return GeneratedDocuments(
            invoices=tuple(invoices),
            template=template,
            series=series,
            skipped=tuple(skipped),
        )

    # =========================================================================
    # Manual creation
    # =========================================================================

    def generate_manual_invoice(
        self,
        state: RentalState,
        agreement: RentalAgreement,
        kind: ManualInvoiceKind,
        today: date,
        amount: Decimal | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
    ) -> GeneratedDocuments:
        """
        One rent or deposit invoice created on demand.

        Rent defaults: issued on the first of the current month, due on the
        agreement's rent due day of that month.  Deposit defaults: issued on
        the agreement start date, due ``security_due_days`` later.
        """
        view = AgreementRepositoryView(state)

        if kind is ManualInvoiceKind.RENT:
            amount = agreement.monthly_rent if amount is None else amount
            issue = issue_date or first_of_month(today)
            due = due_date or add_months(issue, 0, agreement.rent_due_day)
            month = rental_month_key(issue)
            existing = view.rent_invoice_for_month(agreement.id, month)
            if existing is not None:
                raise DuplicateRentInvoiceError(agreement.id, month, existing.invoice_number)
            plan = _Planned(
                invoice_type=InvoiceType.RENTAL,
                amount=amount,
                description=self._config.rent_description_template.replace(
                    MONTH_PLACEHOLDER, month_label(issue, self._config.month_label_format),
                ),
                issue_date=issue,
                due_date=due,
                rental_month=month,
            )
        else:
            amount = agreement.security_deposit if amount is None else amount
            issue = issue_date or agreement.start_date
            due = due_date or issue + timedelta(days=self._config.security_due_days)
            if amount > ZERO:
                existing = view.find_security_deposit_invoice(
                    agreement.id, amount, self._config.deposit_match_tolerance,
                )
                if existing is not None:
                    raise DuplicateSecurityDepositError(agreement.id, existing.invoice_number)
            plan = _Planned(
                invoice_type=InvoiceType.SECURITY_DEPOSIT,
                amount=amount,
                description=self._config.security_description,
                issue_date=issue,
                due_date=due,
            )

        if plan.amount <= ZERO:
            raise InvalidAmountError("amount", plan.amount)
        self._bindings.require(self._role_for(plan.invoice_type))

        invoices, series = self._allocate_and_build(state, agreement, [plan])
        logger.info(
            "manual_invoice_generated",
            extra={
                "agreement_id": str(agreement.id),
                "kind": kind.value,
                "invoice_number": invoices[0].invoice_number,
                "amount": str(plan.amount),
            },
        )
        return GeneratedDocuments(invoices=tuple(invoices), series=series)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _role_for(invoice_type: InvoiceType) -> CategoryRole:
        if invoice_type is InvoiceType.SECURITY_DEPOSIT:
            return CategoryRole.SECURITY_DEPOSIT
        return CategoryRole.RENTAL_INCOME

    @staticmethod
    def _building_id(state: RentalState, agreement: RentalAgreement):
        prop = state.get_property(agreement.property_id)
        return prop.building_id if prop is not None else None

    def _allocate_and_build(
        self,
        state: RentalState,
        agreement: RentalAgreement,
        planned: list[_Planned],
    ) -> tuple[list[Invoice], NumberingSeries | None]:
        if not planned:
            return [], None

        series = resolve_series(state, SeriesKind.INVOICE, self._series_defaults)
        issued = list(state.document_numbers(SeriesKind.INVOICE))
        building_id = self._building_id(state, agreement)
        invoices: list[Invoice] = []

        for plan in planned:
            allocation = self._allocator.allocate(series, issued)
            series = allocation.series
            issued.append(allocation.number)
            is_deposit = plan.invoice_type is InvoiceType.SECURITY_DEPOSIT
            invoices.append(Invoice(
                id=uuid4(),
                invoice_number=allocation.number,
                contact_id=agreement.contact_id,
                amount=plan.amount,
                issue_date=plan.issue_date,
                due_date=plan.due_date,
                invoice_type=plan.invoice_type,
                description=plan.description,
                category_id=self._bindings.require(self._role_for(plan.invoice_type)),
                property_id=agreement.property_id,
                building_id=building_id,
                agreement_id=agreement.id,
                rental_month=plan.rental_month,
                security_deposit_charge=plan.amount if is_deposit else ZERO,
            ))

        return invoices, series
