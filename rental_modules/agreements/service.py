"""
Rental Agreement Lifecycle Service (``rental_modules.agreements.service``).

Responsibility
--------------
Creates, renews, edits, terminates and expires rental agreements, and
drives invoice generation for them: initial and renewal documents,
manual invoices and the recurring-charge run.  Every operation validates
against an ``AgreementRepositoryView`` of the supplied ``RentalState`` and
returns a ``MutationBatch`` for the host application to commit.

Architecture position
---------------------
**Modules layer** -- thin orchestration.  ``RentalAgreementService`` is
the sole public entry point for agreement lifecycle commands.  It composes
the Sequence Allocator, the Recurring Charge Scheduler and the Invoice
Generator, and checks actions against ``RENTAL_AGREEMENT_LIFECYCLE``.

Invariants enforced
-------------------
* Occupancy: at most one ACTIVE agreement per property.
* Renewal gating: an agreement with open invoices cannot be renewed, and
  nothing is mutated when the check fails.
* Incremental deposit: renewal bills ``max(0, new - old)`` only.
* Templates of an agreement that leaves ACTIVE are deactivated in the same
  batch as the status change.
* All validation happens before the first mutation is built.

Failure modes
-------------
* ``ValidationError`` family -- bad input, nothing built.
* ``PreconditionViolation`` family -- state forbids the command.
* ``ConfigurationError`` family -- raised from direct invoice commands.
  After a lifecycle transition, document generation is a secondary step:
  its ``ConfigurationError`` is reported as ``DocumentOutcome.FAILED`` and
  the lifecycle mutations are still returned.

Audit relevance
---------------
Every command runs inside ``LogContext.bind(command=..., agreement_id=...)``
and emits a structured event on completion (``agreement_created``,
``agreement_renewed``, ``agreement_terminated`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Mapping, Protocol
from uuid import UUID, uuid4

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.dates import default_term_end, month_label
from rental_kernel.domain.mutations import MutationBatch, MutationBuilder, MutationKind
from rental_kernel.exceptions import (
    AgreementNotFoundError,
    ConfigurationError,
    EditRestrictedError,
    InvalidAmountError,
    InvalidDateRangeError,
    InvalidDueDayError,
    InvalidTransitionError,
    MissingFieldError,
    NothingToGenerateError,
    OpenInvoicesError,
    PropertyNotFoundError,
    PropertyOccupiedError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_modules.agreements.categories import CategoryBindings
from rental_modules.agreements.config import AgreementConfig
from rental_modules.agreements.invoicing import GeneratedDocuments, InvoiceGenerator
from rental_modules.agreements.models import (
    AgreementChanges,
    AgreementDraft,
    AgreementStatus,
    CategoryRole,
    Invoice,
    ManualInvoiceKind,
    NumberingSeries,
    Property,
    RecurringChargeTemplate,
    RefundAction,
    RefundTransaction,
    RenewalTerms,
    RentalAgreement,
    SeriesKind,
    TerminationRequest,
)
from rental_modules.agreements.numbering import NumberAllocator, ScanNumberAllocator, resolve_series
from rental_modules.agreements.scheduler import RecurringChargeScheduler
from rental_modules.agreements.selectors import AgreementRepositoryView
from rental_modules.agreements.state import RentalState
from rental_modules.agreements.workflows import RENTAL_AGREEMENT_LIFECYCLE

logger = get_logger("modules.agreements.service")

ZERO = Decimal("0")


# =============================================================================
# Confirmation
# =============================================================================


@dataclass(frozen=True)
class ConfirmationPrompt:
    """What the user is asked before documents are generated."""
    title: str
    message: str
    items: tuple[str, ...] = ()


class Confirmer(Protocol):
    def confirm(self, prompt: ConfirmationPrompt) -> bool:
        ...


class AutoConfirm:
    """Confirmer that always gives the same answer and remembers the prompts."""

    def __init__(self, answer: bool = True):
        self.answer = answer
        self.prompts: list[ConfirmationPrompt] = []

    def confirm(self, prompt: ConfirmationPrompt) -> bool:
        self.prompts.append(prompt)
        return self.answer


# =============================================================================
# Results
# =============================================================================


class DocumentOutcome(str, Enum):
    """What happened to the secondary document step of a lifecycle command."""
    GENERATED = "generated"
    DECLINED = "declined"
    NOT_APPLICABLE = "not_applicable"
    FAILED = "failed"


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of create / renew / terminate / update / mark-renewed."""

    agreement: RentalAgreement
    lifecycle_mutations: MutationBatch
    document_mutations: MutationBatch = field(default_factory=MutationBatch)
    document_outcome: DocumentOutcome = DocumentOutcome.NOT_APPLICABLE
    document_error: ConfigurationError | None = None
    documents: GeneratedDocuments | None = None
    previous_agreement: RentalAgreement | None = None
    refund: RefundTransaction | None = None

    @property
    def mutations(self) -> MutationBatch:
        return self.lifecycle_mutations + self.document_mutations

    @property
    def invoices(self) -> tuple[Invoice, ...]:
        return self.documents.invoices if self.documents else ()

    @property
    def template(self) -> RecurringChargeTemplate | None:
        return self.documents.template if self.documents else None


@dataclass(frozen=True)
class InvoiceRunResult:
    """Outcome of a direct invoice command or a recurring-charge run."""

    mutations: MutationBatch
    invoices: tuple[Invoice, ...] = ()
    templates: tuple[RecurringChargeTemplate, ...] = ()
    skipped: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExpirySweepResult:
    expired: tuple[RentalAgreement, ...]
    mutations: MutationBatch


# =============================================================================
# Validation helpers
# =============================================================================


def _require(value, field_name: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingFieldError(field_name)
    return value


def _validate_terms(
    start_date: date,
    end_date: date,
    monthly_rent: Decimal,
    security_deposit: Decimal,
    rent_due_day: int,
    broker_fee: Decimal | None,
) -> None:
    if monthly_rent <= ZERO:
        raise InvalidAmountError("monthly_rent", monthly_rent)
    if security_deposit < ZERO:
        raise InvalidAmountError("security_deposit", security_deposit, "cannot be negative")
    if broker_fee is not None and broker_fee < ZERO:
        raise InvalidAmountError("broker_fee", broker_fee, "cannot be negative")
    if not 1 <= rent_due_day <= 31:
        raise InvalidDueDayError(rent_due_day)
    if end_date < start_date:
        raise InvalidDateRangeError(start_date, end_date)


def _append_note(existing: str, addition: str) -> str:
    addition = addition.strip()
    if not addition:
        return existing
    return f"{existing.rstrip()}\n{addition}" if existing.strip() else addition


# =============================================================================
# Service
# =============================================================================


class RentalAgreementService:
    """
    Lifecycle controller for rental agreements.

    Contract
    --------
    * Every command takes the current ``RentalState`` and returns a result
      carrying a ``MutationBatch``; the service never persists anything.
    * ``generate_documents`` on create/renew overrides the confirmer:
      True generates without asking, False skips, None asks.

    Guarantees
    ----------
    * On any raised error no batch is returned, so nothing can be committed.
    * Agreement numbers and invoice numbers come from the injected
      ``NumberAllocator``; each batch carries the advanced series.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT record payments or change invoice status.
    * Does NOT deliver notifications.
    """

    def __init__(
        self,
        bindings: CategoryBindings,
        config: AgreementConfig | None = None,
        clock: Clock | None = None,
        allocator: NumberAllocator | None = None,
        confirmer: Confirmer | None = None,
        series_defaults: Mapping[SeriesKind, NumberingSeries] | None = None,
    ):
        self._bindings = bindings
        self._config = config or AgreementConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._allocator = allocator or ScanNumberAllocator()
        self._confirmer = confirmer or AutoConfirm(True)
        self._series_defaults = series_defaults

        self._scheduler = RecurringChargeScheduler(self._config, self._allocator)
        self._generator = InvoiceGenerator(
            bindings,
            config=self._config,
            allocator=self._allocator,
            scheduler=self._scheduler,
            series_defaults=series_defaults,
        )

    @property
    def scheduler(self) -> RecurringChargeScheduler:
        return self._scheduler

    @property
    def generator(self) -> InvoiceGenerator:
        return self._generator

    # =========================================================================
    # Create
    # =========================================================================

    def create(
        self,
        state: RentalState,
        draft: AgreementDraft,
        generate_documents: bool | None = None,
    ) -> LifecycleResult:
        """
        Create a new ACTIVE agreement on a free property.

        Raises:
            MissingFieldError, InvalidAmountError, InvalidDueDayError,
            InvalidDateRangeError: Invalid draft.
            PropertyNotFoundError: Property not in the state.
            PropertyOccupiedError: Another ACTIVE agreement holds the property.
            NumberingSeriesNotConfiguredError: Agreement series unusable.
        """
        with LogContext.bind(command="create_agreement"):
            contact_id = _require(draft.contact_id, "contact_id")
            property_id = _require(draft.property_id, "property_id")
            start_date = _require(draft.start_date, "start_date")
            end_date = _require(draft.end_date, "end_date")
            monthly_rent = _require(draft.monthly_rent, "monthly_rent")
            _validate_terms(
                start_date, end_date, monthly_rent,
                draft.security_deposit, draft.rent_due_day, draft.broker_fee,
            )

            prop = self._property(state, property_id)
            self._check_property_free(AgreementRepositoryView(state), property_id)

            allocation = self._allocator.allocate(
                resolve_series(state, SeriesKind.AGREEMENT, self._series_defaults),
                state.document_numbers(SeriesKind.AGREEMENT),
            )
            agreement = RentalAgreement(
                id=uuid4(),
                agreement_number=allocation.number,
                contact_id=contact_id,
                property_id=property_id,
                start_date=start_date,
                end_date=end_date,
                monthly_rent=monthly_rent,
                rent_due_day=draft.rent_due_day,
                security_deposit=draft.security_deposit,
                status=AgreementStatus.ACTIVE,
                owner_id=draft.owner_id or prop.owner_id,
                broker_id=draft.broker_id,
                broker_fee=draft.broker_fee,
                notes=draft.notes,
            )

            builder = MutationBuilder()
            builder.add(MutationKind.ADD_AGREEMENT, agreement)
            builder.add(MutationKind.UPDATE_NUMBERING_SERIES, allocation.series)
            lifecycle = builder.build()

            with LogContext.bind(agreement_id=agreement.id):
                logger.info(
                    "agreement_created",
                    extra={
                        "agreement_number": agreement.agreement_number,
                        "property_id": str(property_id),
                        "start_date": start_date.isoformat(),
                        "end_date": end_date.isoformat(),
                        "monthly_rent": str(monthly_rent),
                    },
                )
                return self._with_documents(
                    state.apply(lifecycle),
                    agreement,
                    lifecycle,
                    deposit_amount=agreement.security_deposit,
                    generate=lambda s: self._generator.generate_initial_invoices(s, agreement),
                    generate_documents=generate_documents,
                    title="Generate invoices",
                )

    # =========================================================================
    # Renew
    # =========================================================================

    def renew(
        self,
        state: RentalState,
        agreement_id: UUID,
        terms: RenewalTerms | None = None,
        generate_documents: bool | None = None,
    ) -> LifecycleResult:
        """
        Close ``agreement_id`` as RENEWED and open its successor.

        Omitted terms default from the old agreement; the new term starts
        the day after the old one ends.

        Raises:
            AgreementNotFoundError: Unknown agreement.
            InvalidTransitionError: Agreement is neither ACTIVE nor EXPIRED.
            OpenInvoicesError: Agreement has invoices that are not fully paid.
            PropertyOccupiedError: Property taken by another agreement.
            ValidationError: Invalid new terms.
        """
        terms = terms or RenewalTerms()
        with LogContext.bind(command="renew_agreement", agreement_id=agreement_id):
            old = self._agreement(state, agreement_id)
            self._check_transition(old, "renew")

            view = AgreementRepositoryView(state)
            open_invoices = view.open_invoices_for(old.id)
            if open_invoices:
                logger.warning(
                    "agreement_renewal_blocked",
                    extra={"open_invoice_count": len(open_invoices)},
                )
                raise OpenInvoicesError(
                    old.id,
                    len(open_invoices),
                    tuple(i.invoice_number for i in open_invoices),
                )

            start_date = terms.start_date or old.end_date + timedelta(days=1)
            end_date = terms.end_date or default_term_end(start_date, self._config.default_term_months)
            monthly_rent = old.monthly_rent if terms.monthly_rent is None else terms.monthly_rent
            deposit = old.security_deposit if terms.security_deposit is None else terms.security_deposit
            due_day = old.rent_due_day if terms.rent_due_day is None else terms.rent_due_day
            broker_fee = old.broker_fee if terms.broker_fee is None else terms.broker_fee
            _validate_terms(start_date, end_date, monthly_rent, deposit, due_day, broker_fee)
            self._check_property_free(view, old.property_id, excluding_agreement_id=old.id)

            builder = MutationBuilder()
            closed = replace(old, status=AgreementStatus.RENEWED)
            builder.add(MutationKind.UPDATE_AGREEMENT, closed)
            for template in self._scheduler.deactivate(view.active_templates_for(old.id)):
                builder.add(MutationKind.UPDATE_RECURRING_TEMPLATE, template)

            allocation = self._allocator.allocate(
                resolve_series(state, SeriesKind.AGREEMENT, self._series_defaults),
                state.document_numbers(SeriesKind.AGREEMENT),
            )
            renewed = RentalAgreement(
                id=uuid4(),
                agreement_number=allocation.number,
                contact_id=old.contact_id,
                property_id=old.property_id,
                start_date=start_date,
                end_date=end_date,
                monthly_rent=monthly_rent,
                rent_due_day=due_day,
                security_deposit=deposit,
                status=AgreementStatus.ACTIVE,
                owner_id=old.owner_id,
                broker_id=old.broker_id,
                broker_fee=broker_fee,
                notes=old.notes if terms.notes is None else terms.notes,
                previous_agreement_id=old.id,
            )
            builder.add(MutationKind.ADD_AGREEMENT, renewed)
            builder.add(MutationKind.UPDATE_NUMBERING_SERIES, allocation.series)
            lifecycle = builder.build()

            increment = max(ZERO, deposit - old.security_deposit)
            logger.info(
                "agreement_renewed",
                extra={
                    "previous_number": old.agreement_number,
                    "new_agreement_id": str(renewed.id),
                    "new_number": renewed.agreement_number,
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                    "deposit_increment": str(increment),
                },
            )
            result = self._with_documents(
                state.apply(lifecycle),
                renewed,
                lifecycle,
                deposit_amount=increment,
                generate=lambda s: self._generator.generate_renewal_invoices(s, old, renewed),
                generate_documents=generate_documents,
                title="Generate renewal invoices",
            )
            return replace(result, previous_agreement=closed)

    # =========================================================================
    # Terminate
    # =========================================================================

    def terminate(
        self,
        state: RentalState,
        agreement_id: UUID,
        request: TerminationRequest | None = None,
    ) -> LifecycleResult:
        """
        End an ACTIVE agreement early and settle its security deposit.

        The end date defaults to today, or to the start date for an
        agreement that has not started yet.  A company refund emits a
        ``RefundTransaction`` booked to the deposit-refund category.

        Raises:
            AgreementNotFoundError, InvalidTransitionError: As for renew.
            InvalidDateRangeError: End date before the start date.
            MissingFieldError, InvalidAmountError: Incomplete company refund.
            MissingCategoryError: Deposit-refund category not bound.
        """
        request = request or TerminationRequest()
        with LogContext.bind(command="terminate_agreement", agreement_id=agreement_id):
            agreement = self._agreement(state, agreement_id)
            self._check_transition(agreement, "terminate")

            end_date = request.end_date or max(self._clock.today(), agreement.start_date)
            if end_date < agreement.start_date:
                raise InvalidDateRangeError(agreement.start_date, end_date)

            refund = None
            note = f"Terminated on {end_date.isoformat()}."
            if request.refund_action is RefundAction.COMPANY_REFUND:
                amount = _require(request.refund_amount, "refund_amount")
                if amount <= ZERO:
                    raise InvalidAmountError("refund_amount", amount)
                account_id = _require(request.refund_account_id, "refund_account_id")
                refund = RefundTransaction(
                    id=uuid4(),
                    amount=amount,
                    transaction_date=end_date,
                    description=f"Security deposit refund - {agreement.agreement_number}",
                    account_id=account_id,
                    category_id=self._bindings.require(CategoryRole.SECURITY_DEPOSIT_REFUND),
                    contact_id=agreement.contact_id,
                    property_id=agreement.property_id,
                    agreement_id=agreement.id,
                )
                note += f" Security deposit refund of {amount} paid by the company."
            elif request.refund_action is RefundAction.OWNER_DIRECT:
                note += " Security deposit refunded directly by the owner."

            terminated = replace(
                agreement,
                status=AgreementStatus.TERMINATED,
                end_date=end_date,
                notes=_append_note(_append_note(agreement.notes, note), request.notes),
            )

            view = AgreementRepositoryView(state)
            builder = MutationBuilder()
            builder.add(MutationKind.UPDATE_AGREEMENT, terminated)
            for template in self._scheduler.deactivate(view.active_templates_for(agreement.id)):
                builder.add(MutationKind.UPDATE_RECURRING_TEMPLATE, template)
            if refund is not None:
                builder.add(MutationKind.ADD_TRANSACTION, refund)

            logger.info(
                "agreement_terminated",
                extra={
                    "agreement_number": agreement.agreement_number,
                    "end_date": end_date.isoformat(),
                    "refund_action": request.refund_action.value,
                    "refund_amount": str(refund.amount) if refund else None,
                },
            )
            return LifecycleResult(
                agreement=terminated,
                lifecycle_mutations=builder.build(),
                refund=refund,
            )

    # =========================================================================
    # Edit / status corrections
    # =========================================================================

    def update_terms(
        self,
        state: RentalState,
        agreement_id: UUID,
        changes: AgreementChanges,
    ) -> LifecycleResult:
        """
        Edit an agreement in place.

        Notes can always be edited.  Any other field can only change while
        the agreement has no invoices; after that, renew instead.

        Raises:
            EditRestrictedError: Commercial change on an invoiced agreement.
            PropertyNotFoundError, PropertyOccupiedError: New property unusable.
            ValidationError: Invalid resulting terms.
        """
        with LogContext.bind(command="update_agreement", agreement_id=agreement_id):
            agreement = self._agreement(state, agreement_id)
            view = AgreementRepositoryView(state)

            updates = {
                name: value
                for name, value in vars(changes).items()
                if value is not None and getattr(agreement, name) != value
            }
            if set(updates) - {"notes"} and view.has_any_invoices(agreement.id):
                raise EditRestrictedError(agreement.id, len(state.invoices_for(agreement.id)))

            updated = replace(agreement, **updates)
            _validate_terms(
                updated.start_date, updated.end_date, updated.monthly_rent,
                updated.security_deposit, updated.rent_due_day, updated.broker_fee,
            )

            if "property_id" in updates:
                prop = self._property(state, updated.property_id)
                if updated.is_active:
                    self._check_property_free(view, updated.property_id, excluding_agreement_id=agreement.id)
                if prop.owner_id is not None:
                    updated = replace(updated, owner_id=prop.owner_id)

            builder = MutationBuilder()
            builder.add(MutationKind.UPDATE_AGREEMENT, updated)
            for template in view.active_templates_for(agreement.id):
                synced = replace(
                    template,
                    amount=updated.monthly_rent,
                    day_of_month=updated.rent_due_day,
                    contact_id=updated.contact_id,
                    property_id=updated.property_id,
                )
                if synced != template:
                    builder.add(MutationKind.UPDATE_RECURRING_TEMPLATE, synced)

            logger.info("agreement_updated", extra={"changed_fields": sorted(updates)})
            return LifecycleResult(agreement=updated, lifecycle_mutations=builder.build())

    def mark_renewed(self, state: RentalState, agreement_id: UUID) -> LifecycleResult:
        """
        Set an ACTIVE agreement to RENEWED without creating a successor.

        Status correction for agreements renewed outside the engine; allowed
        even when invoices exist.
        """
        with LogContext.bind(command="mark_agreement_renewed", agreement_id=agreement_id):
            agreement = self._agreement(state, agreement_id)
            self._check_transition(agreement, "mark_renewed")

            marked = replace(agreement, status=AgreementStatus.RENEWED)
            builder = MutationBuilder()
            builder.add(MutationKind.UPDATE_AGREEMENT, marked)
            view = AgreementRepositoryView(state)
            for template in self._scheduler.deactivate(view.active_templates_for(agreement.id)):
                builder.add(MutationKind.UPDATE_RECURRING_TEMPLATE, template)

            logger.info("agreement_marked_renewed", extra={"agreement_number": agreement.agreement_number})
            return LifecycleResult(agreement=marked, lifecycle_mutations=builder.build())

    def expire_overdue(self, state: RentalState, today: date | None = None) -> ExpirySweepResult:
        """Move every ACTIVE agreement whose end date has passed to EXPIRED."""
        today = today or self._clock.today()
        with LogContext.bind(command="expire_agreements"):
            view = AgreementRepositoryView(state)
            builder = MutationBuilder()
            expired: list[RentalAgreement] = []

            for agreement in view.overdue_for_expiry(today):
                self._check_transition(agreement, "expire")
                closed = replace(agreement, status=AgreementStatus.EXPIRED)
                expired.append(closed)
                builder.add(MutationKind.UPDATE_AGREEMENT, closed)
                if self._config.deactivate_templates_on_expiry:
                    for template in self._scheduler.deactivate(view.active_templates_for(agreement.id)):
                        builder.add(MutationKind.UPDATE_RECURRING_TEMPLATE, template)

            logger.info(
                "agreements_expired",
                extra={
                    "as_of": today.isoformat(),
                    "count": len(expired),
                    "agreement_numbers": [a.agreement_number for a in expired],
                },
            )
            return ExpirySweepResult(expired=tuple(expired), mutations=builder.build())

    # =========================================================================
    # Direct invoice commands
    # =========================================================================

    def generate_initial_invoices(self, state: RentalState, agreement_id: UUID) -> InvoiceRunResult:
        """
        Initial documents for an existing (typically imported) agreement.

        Already-invoiced deposit and start-month rent are skipped.

        Raises:
            NothingToGenerateError: Rent and deposit are both zero.
            ConfigurationError: Missing category binding or invoice series.
        """
        with LogContext.bind(command="generate_initial_invoices", agreement_id=agreement_id):
            agreement = self._agreement(state, agreement_id)
            if agreement.monthly_rent <= ZERO and agreement.security_deposit <= ZERO:
                raise NothingToGenerateError(agreement.id)

            documents = self._generator.generate_initial_invoices(state, agreement)
            return InvoiceRunResult(
                mutations=self._document_batch(documents),
                invoices=documents.invoices,
                templates=(documents.template,) if documents.template else (),
                skipped=documents.skipped,
            )

    def create_manual_invoice(
        self,
        state: RentalState,
        agreement_id: UUID,
        kind: ManualInvoiceKind,
        amount: Decimal | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
    ) -> InvoiceRunResult:
        """
        One rent or security-deposit invoice for an agreement.

        Raises:
            DuplicateRentInvoiceError: Month already invoiced.
            DuplicateSecurityDepositError: Deposit already invoiced.
            InvalidAmountError: Amount not positive.
        """
        with LogContext.bind(command="create_manual_invoice", agreement_id=agreement_id):
            agreement = self._agreement(state, agreement_id)
            documents = self._generator.generate_manual_invoice(
                state,
                agreement,
                kind,
                today=self._clock.today(),
                amount=amount,
                issue_date=issue_date,
                due_date=due_date,
            )
            return InvoiceRunResult(
                mutations=self._document_batch(documents),
                invoices=documents.invoices,
            )

    def materialize_due_charges(self, state: RentalState, today: date | None = None) -> InvoiceRunResult:
        """Run every due recurring template up to ``today``."""
        today = today or self._clock.today()
        with LogContext.bind(command="materialize_due_charges"):
            charges = self._scheduler.materialize_due(
                state, today, self._bindings, self._series_defaults,
            )
            builder = MutationBuilder()
            for invoice in charges.invoices:
                builder.add(MutationKind.ADD_INVOICE, invoice)
            for template in charges.templates:
                builder.add(MutationKind.UPDATE_RECURRING_TEMPLATE, template)
            if charges.series is not None:
                builder.add(MutationKind.UPDATE_NUMBERING_SERIES, charges.series)

            return InvoiceRunResult(
                mutations=builder.build(),
                invoices=charges.invoices,
                templates=charges.templates,
                skipped=charges.skipped,
            )

    # =========================================================================
    # Internals
    # =========================================================================

    def _agreement(self, state: RentalState, agreement_id: UUID) -> RentalAgreement:
        agreement = state.get_agreement(agreement_id)
        if agreement is None:
            raise AgreementNotFoundError(agreement_id)
        return agreement

    def _property(self, state: RentalState, property_id: UUID) -> Property:
        prop = state.get_property(property_id)
        if prop is None:
            raise PropertyNotFoundError(property_id)
        return prop

    @staticmethod
    def _check_transition(agreement: RentalAgreement, action: str) -> None:
        if not RENTAL_AGREEMENT_LIFECYCLE.can(agreement.status.value, action):
            raise InvalidTransitionError(agreement.id, agreement.status.value, action)

    @staticmethod
    def _check_property_free(
        view: AgreementRepositoryView,
        property_id: UUID,
        excluding_agreement_id: UUID | None = None,
    ) -> None:
        occupant = view.occupying_agreement(property_id, excluding_agreement_id)
        if occupant is not None:
            logger.warning(
                "property_occupied",
                extra={
                    "property_id": str(property_id),
                    "occupying_agreement_id": str(occupant.id),
                },
            )
            raise PropertyOccupiedError(property_id, occupant.id, occupant.agreement_number)

    @staticmethod
    def _document_batch(documents: GeneratedDocuments) -> MutationBatch:
        builder = MutationBuilder()
        for invoice in documents.invoices:
            builder.add(MutationKind.ADD_INVOICE, invoice)
        if documents.template is not None:
            builder.add(MutationKind.ADD_RECURRING_TEMPLATE, documents.template)
        if documents.series is not None:
            builder.add(MutationKind.UPDATE_NUMBERING_SERIES, documents.series)
        return builder.build()

    def _prompt(self, agreement: RentalAgreement, deposit_amount: Decimal, title: str) -> ConfirmationPrompt:
        items: list[str] = []
        if deposit_amount > ZERO:
            items.append(f"Security deposit: {deposit_amount}")
        label = month_label(agreement.start_date, self._config.month_label_format)
        items.append(f"Rent for {label}: {agreement.monthly_rent}")
        items.append(f"Monthly recurring rent of {agreement.monthly_rent}")
        return ConfirmationPrompt(
            title=title,
            message=f"Create invoices for agreement {agreement.agreement_number}?",
            items=tuple(items),
        )

    def _with_documents(
        self,
        state: RentalState,
        agreement: RentalAgreement,
        lifecycle: MutationBatch,
        deposit_amount: Decimal,
        generate: Callable[[RentalState], GeneratedDocuments],
        generate_documents: bool | None,
        title: str,
    ) -> LifecycleResult:
        if agreement.monthly_rent <= ZERO and deposit_amount <= ZERO:
            return LifecycleResult(agreement=agreement, lifecycle_mutations=lifecycle)

        wanted = generate_documents
        if wanted is None:
            wanted = self._confirmer.confirm(self._prompt(agreement, deposit_amount, title))
        if not wanted:
            logger.info("document_generation_declined")
            return LifecycleResult(
                agreement=agreement,
                lifecycle_mutations=lifecycle,
                document_outcome=DocumentOutcome.DECLINED,
            )

        try:
            documents = generate(state)
        except ConfigurationError as exc:
            logger.warning("document_generation_failed", exc_info=True)
            return LifecycleResult(
                agreement=agreement,
                lifecycle_mutations=lifecycle,
                document_outcome=DocumentOutcome.FAILED,
                document_error=exc,
            )

        outcome = DocumentOutcome.NOT_APPLICABLE if documents.is_empty else DocumentOutcome.GENERATED
        return LifecycleResult(
            agreement=agreement,
            lifecycle_mutations=lifecycle,
            document_mutations=self._document_batch(documents),
            document_outcome=outcome,
            documents=documents,
        )
