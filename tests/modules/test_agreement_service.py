"""
Tests for the rental agreement lifecycle service.

Covers create / renew / terminate / update / mark-renewed / expiry sweep
and the invoice commands, each checked through the returned mutation
batch and through the state obtained by applying it.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from rental_kernel.domain.mutations import MutationKind
from rental_kernel.exceptions import (
    AgreementNotFoundError,
    EditRestrictedError,
    InvalidAmountError,
    InvalidDateRangeError,
    InvalidDueDayError,
    InvalidTransitionError,
    MissingCategoryError,
    MissingFieldError,
    NothingToGenerateError,
    OpenInvoicesError,
    PreconditionViolation,
    PropertyNotFoundError,
    PropertyOccupiedError,
)
from rental_modules.agreements.categories import CategoryBindings
from rental_modules.agreements.models import (
    AgreementChanges,
    AgreementDraft,
    AgreementStatus,
    CategoryRole,
    InvoiceStatus,
    InvoiceType,
    ManualInvoiceKind,
    RefundAction,
    RenewalTerms,
    SeriesKind,
    TerminationRequest,
)
from rental_modules.agreements.selectors import AgreementRepositoryView
from rental_modules.agreements.service import AutoConfirm, DocumentOutcome, RentalAgreementService
from tests.conftest import (
    BANK_ACCOUNT_ID,
    DEPOSIT_CATEGORY,
    OWNER_ID,
    PROPERTY_1,
    PROPERTY_2,
    PROPERTY_3,
    REFUND_CATEGORY,
    RENT_CATEGORY,
    TENANT_ID,
)


def _draft(**overrides) -> AgreementDraft:
    values = dict(
        contact_id=TENANT_ID,
        property_id=PROPERTY_1,
        start_date=date(2025, 3, 1),
        end_date=date(2026, 2, 28),
        monthly_rent=Decimal("12000"),
        security_deposit=Decimal("50000"),
    )
    values.update(overrides)
    return AgreementDraft(**values)


def _pay_all(state):
    return replace(
        state,
        invoices=tuple(
            replace(i, status=InvoiceStatus.PAID, paid_amount=i.amount) for i in state.invoices
        ),
    )


@pytest.fixture
def created(service, rental_state):
    """An ACTIVE agreement on PROPERTY_1 with its initial documents applied."""
    result = service.create(rental_state, _draft())
    return result.agreement, rental_state.apply(result.mutations)


# =============================================================================
# Create
# =============================================================================


class TestCreate:

    def test_creates_agreement_and_documents(self, service, rental_state, confirmer):
        result = service.create(rental_state, _draft())

        agreement = result.agreement
        assert agreement.agreement_number == "AGR-0001"
        assert agreement.status is AgreementStatus.ACTIVE
        assert agreement.owner_id == OWNER_ID
        assert result.lifecycle_mutations.kinds() == [
            MutationKind.ADD_AGREEMENT,
            MutationKind.UPDATE_NUMBERING_SERIES,
        ]
        assert result.document_mutations.kinds() == [
            MutationKind.ADD_INVOICE,
            MutationKind.ADD_INVOICE,
            MutationKind.ADD_RECURRING_TEMPLATE,
            MutationKind.UPDATE_NUMBERING_SERIES,
        ]
        assert result.document_outcome is DocumentOutcome.GENERATED
        assert len(confirmer.prompts) == 1

    def test_applied_state(self, created):
        agreement, state = created

        assert state.get_agreement(agreement.id) == agreement
        assert [i.invoice_number for i in state.invoices] == ["INV-00001", "INV-00002"]
        assert state.get_series(SeriesKind.AGREEMENT).next_number == 2
        assert state.get_series(SeriesKind.INVOICE).next_number == 3
        assert len(AgreementRepositoryView(state).active_templates_for(agreement.id)) == 1

    def test_occupied_property_rejected(self, service, created):
        """Creating on an occupied property fails and builds nothing."""
        _, state = created

        with pytest.raises(PropertyOccupiedError) as exc_info:
            service.create(state, _draft(contact_id=TENANT_ID))

        assert isinstance(exc_info.value, PreconditionViolation)
        assert exc_info.value.occupying_number == "AGR-0001"
        assert len(state.agreements) == 1

    def test_second_property_allowed(self, service, created):
        _, state = created
        result = service.create(state, _draft(property_id=PROPERTY_2))
        assert result.agreement.agreement_number == "AGR-0002"
        assert result.invoices[0].invoice_number == "INV-00003"

    @pytest.mark.parametrize(
        "overrides, error",
        [
            ({"contact_id": None}, MissingFieldError),
            ({"start_date": None}, MissingFieldError),
            ({"monthly_rent": None}, MissingFieldError),
            ({"monthly_rent": Decimal("0")}, InvalidAmountError),
            ({"security_deposit": Decimal("-1")}, InvalidAmountError),
            ({"broker_fee": Decimal("-5")}, InvalidAmountError),
            ({"rent_due_day": 0}, InvalidDueDayError),
            ({"rent_due_day": 32}, InvalidDueDayError),
            ({"end_date": date(2025, 2, 1)}, InvalidDateRangeError),
        ],
    )
    def test_validation(self, service, rental_state, overrides, error):
        with pytest.raises(error):
            service.create(rental_state, _draft(**overrides))

    def test_unknown_property(self, service, rental_state):
        from uuid import uuid4

        with pytest.raises(PropertyNotFoundError):
            service.create(rental_state, _draft(property_id=uuid4()))

    def test_property_without_owner_keeps_draft_owner(self, service, rental_state):
        result = service.create(rental_state, _draft(property_id=PROPERTY_3))
        assert result.agreement.owner_id is None


class TestDocumentStep:
    """Confirmation and failure handling of the secondary document step."""

    def test_declined(self, bindings, clock, rental_state):
        service = RentalAgreementService(bindings, clock=clock, confirmer=AutoConfirm(False))
        result = service.create(rental_state, _draft())

        assert result.document_outcome is DocumentOutcome.DECLINED
        assert not result.document_mutations
        assert result.mutations == result.lifecycle_mutations

    def test_explicit_flag_skips_confirmer(self, bindings, clock, rental_state):
        confirmer = AutoConfirm(False)
        service = RentalAgreementService(bindings, clock=clock, confirmer=confirmer)
        result = service.create(rental_state, _draft(), generate_documents=True)

        assert result.document_outcome is DocumentOutcome.GENERATED
        assert confirmer.prompts == []

    def test_prompt_lists_documents(self, service, rental_state, confirmer):
        service.create(rental_state, _draft())
        (prompt,) = confirmer.prompts
        assert "AGR-0001" in prompt.message
        assert "Security deposit: 50000" in prompt.items
        assert "Rent for March 2025: 12000" in prompt.items

    def test_configuration_error_reported_not_raised(self, clock, rental_state):
        service = RentalAgreementService(CategoryBindings(), clock=clock)
        result = service.create(rental_state, _draft())

        assert result.document_outcome is DocumentOutcome.FAILED
        assert isinstance(result.document_error, MissingCategoryError)
        assert result.lifecycle_mutations.kinds() == [
            MutationKind.ADD_AGREEMENT,
            MutationKind.UPDATE_NUMBERING_SERIES,
        ]
        assert not result.document_mutations


# =============================================================================
# Renew
# =============================================================================


class TestRenew:

    def test_open_invoices_block_renewal(self, service, created):
        agreement, state = created

        with pytest.raises(OpenInvoicesError) as exc_info:
            service.renew(state, agreement.id)

        assert exc_info.value.open_count == 2
        assert "2 open invoice(s)" in str(exc_info.value)
        assert state.get_agreement(agreement.id).status is AgreementStatus.ACTIVE

    def test_renewal_scenario(self, service, created):
        """A is closed as RENEWED, its template stops and A2 takes the property."""
        agreement, state = created
        state = _pay_all(state)

        result = service.renew(state, agreement.id)
        assert result.lifecycle_mutations.kinds() == [
            MutationKind.UPDATE_AGREEMENT,
            MutationKind.UPDATE_RECURRING_TEMPLATE,
            MutationKind.ADD_AGREEMENT,
            MutationKind.UPDATE_NUMBERING_SERIES,
        ]
        state = state.apply(result.mutations)
        view = AgreementRepositoryView(state)

        old = state.get_agreement(agreement.id)
        new = result.agreement
        assert old.status is AgreementStatus.RENEWED
        assert result.previous_agreement == old
        assert view.active_templates_for(old.id) == []
        assert new.status is AgreementStatus.ACTIVE
        assert new.previous_agreement_id == old.id
        assert new.agreement_number == "AGR-0002"
        assert view.occupying_agreement(PROPERTY_1) == new
        assert len(view.active_templates_for(new.id)) == 1

    def test_default_terms(self, service, created):
        agreement, state = created
        result = service.renew(_pay_all(state), agreement.id)

        new = result.agreement
        assert new.start_date == date(2026, 3, 1)
        assert new.end_date == date(2027, 2, 28)
        assert new.monthly_rent == agreement.monthly_rent
        assert new.security_deposit == agreement.security_deposit
        assert [i.description for i in result.invoices] == ["Rent for March 2026 (Renewal)"]

    def test_deposit_increase_billed(self, service, created):
        agreement, state = created
        result = service.renew(
            _pay_all(state),
            agreement.id,
            RenewalTerms(monthly_rent=Decimal("13000"), security_deposit=Decimal("70000")),
        )

        deposit, rent = result.invoices
        assert deposit.invoice_type is InvoiceType.SECURITY_DEPOSIT
        assert deposit.amount == Decimal("20000")
        assert deposit.category_id == DEPOSIT_CATEGORY
        assert rent.amount == Decimal("13000")
        assert rent.category_id == RENT_CATEGORY

    def test_deposit_decrease_not_billed(self, service, created):
        agreement, state = created
        result = service.renew(
            _pay_all(state), agreement.id, RenewalTerms(security_deposit=Decimal("40000")),
        )
        assert [i.invoice_type for i in result.invoices] == [InvoiceType.RENTAL]

    def test_only_active_agreements_renew(self, service, created):
        agreement, state = created
        state = state.apply(service.terminate(state, agreement.id).mutations)

        with pytest.raises(InvalidTransitionError):
            service.renew(_pay_all(state), agreement.id)

    def _lapsed(self, service, rental_state):
        ended = service.create(
            rental_state, _draft(start_date=date(2024, 3, 1), end_date=date(2025, 2, 28)),
        )
        state = rental_state.apply(ended.mutations)
        state = state.apply(service.expire_overdue(state).mutations)
        assert state.get_agreement(ended.agreement.id).status is AgreementStatus.EXPIRED
        return ended.agreement, state

    def test_lapsed_agreement_can_be_renewed(self, service, rental_state):
        agreement, state = self._lapsed(service, rental_state)

        result = service.renew(_pay_all(state), agreement.id)
        assert result.lifecycle_mutations.kinds() == [
            MutationKind.UPDATE_AGREEMENT,
            MutationKind.ADD_AGREEMENT,
            MutationKind.UPDATE_NUMBERING_SERIES,
        ]
        state = _pay_all(state).apply(result.mutations)
        view = AgreementRepositoryView(state)

        new = result.agreement
        assert state.get_agreement(agreement.id).status is AgreementStatus.RENEWED
        assert new.status is AgreementStatus.ACTIVE
        assert new.start_date == date(2025, 3, 1)
        assert new.previous_agreement_id == agreement.id
        assert view.occupying_agreement(PROPERTY_1) == new
        assert len(view.active_templates_for(new.id)) == 1

    def test_lapsed_agreement_with_open_invoices_not_renewed(self, service, rental_state):
        agreement, state = self._lapsed(service, rental_state)

        with pytest.raises(OpenInvoicesError):
            service.renew(state, agreement.id)

    def test_lapsed_agreement_property_taken(self, service, rental_state):
        agreement, state = self._lapsed(service, rental_state)
        state = state.apply(service.create(state, _draft()).mutations)

        with pytest.raises(PropertyOccupiedError):
            service.renew(_pay_all(state), agreement.id)

    def test_unknown_agreement(self, service, rental_state):
        from uuid import uuid4

        with pytest.raises(AgreementNotFoundError):
            service.renew(rental_state, uuid4())

    def test_invalid_new_terms(self, service, created):
        agreement, state = created
        with pytest.raises(InvalidAmountError):
            service.renew(_pay_all(state), agreement.id, RenewalTerms(monthly_rent=Decimal("0")))


# =============================================================================
# Terminate
# =============================================================================


class TestTerminate:

    def test_defaults_to_today_and_frees_property(self, service, created):
        agreement, state = created
        result = service.terminate(state, agreement.id)

        terminated = result.agreement
        assert terminated.status is AgreementStatus.TERMINATED
        assert terminated.end_date == date(2025, 3, 15)
        assert "Terminated on 2025-03-15." in terminated.notes
        assert result.lifecycle_mutations.kinds() == [
            MutationKind.UPDATE_AGREEMENT,
            MutationKind.UPDATE_RECURRING_TEMPLATE,
        ]

        state = state.apply(result.mutations)
        view = AgreementRepositoryView(state)
        assert not view.is_property_occupied(PROPERTY_1)
        assert view.active_templates_for(agreement.id) == []

    def test_future_agreement_defaults_to_its_start_date(self, service, rental_state):
        created = service.create(
            rental_state, _draft(start_date=date(2030, 1, 1), end_date=date(2030, 12, 31)),
        )
        state = rental_state.apply(created.mutations)

        result = service.terminate(state, created.agreement.id)

        assert result.agreement.status is AgreementStatus.TERMINATED
        assert result.agreement.end_date == date(2030, 1, 1)

    def test_company_refund(self, service, created):
        agreement, state = created
        result = service.terminate(
            state,
            agreement.id,
            TerminationRequest(
                end_date=date(2025, 6, 30),
                refund_action=RefundAction.COMPANY_REFUND,
                refund_amount=Decimal("50000"),
                refund_account_id=BANK_ACCOUNT_ID,
            ),
        )

        refund = result.refund
        assert refund.amount == Decimal("50000")
        assert refund.category_id == REFUND_CATEGORY
        assert refund.account_id == BANK_ACCOUNT_ID
        assert refund.transaction_date == date(2025, 6, 30)
        assert result.mutations.of_kind(MutationKind.ADD_TRANSACTION) == [refund]
        assert "paid by the company" in result.agreement.notes

    def test_company_refund_requires_account(self, service, created):
        agreement, state = created
        with pytest.raises(MissingFieldError) as exc_info:
            service.terminate(
                state,
                agreement.id,
                TerminationRequest(refund_action=RefundAction.COMPANY_REFUND, refund_amount=Decimal("100")),
            )
        assert exc_info.value.field_name == "refund_account_id"

    def test_company_refund_requires_positive_amount(self, service, created):
        agreement, state = created
        with pytest.raises(InvalidAmountError):
            service.terminate(
                state,
                agreement.id,
                TerminationRequest(
                    refund_action=RefundAction.COMPANY_REFUND,
                    refund_amount=Decimal("0"),
                    refund_account_id=BANK_ACCOUNT_ID,
                ),
            )

    def test_company_refund_requires_refund_category(self, clock, created):
        agreement, state = created
        bindings = CategoryBindings(ids={
            CategoryRole.SECURITY_DEPOSIT: DEPOSIT_CATEGORY,
            CategoryRole.RENTAL_INCOME: RENT_CATEGORY,
        })
        service = RentalAgreementService(bindings, clock=clock)

        with pytest.raises(MissingCategoryError):
            service.terminate(
                state,
                agreement.id,
                TerminationRequest(
                    refund_action=RefundAction.COMPANY_REFUND,
                    refund_amount=Decimal("100"),
                    refund_account_id=BANK_ACCOUNT_ID,
                ),
            )

    def test_owner_direct_refund_is_a_note(self, service, created):
        agreement, state = created
        result = service.terminate(
            state,
            agreement.id,
            TerminationRequest(refund_action=RefundAction.OWNER_DIRECT, notes="Keys returned"),
        )

        assert result.refund is None
        assert "directly by the owner" in result.agreement.notes
        assert result.agreement.notes.endswith("Keys returned")

    def test_end_before_start_rejected(self, service, created):
        agreement, state = created
        with pytest.raises(InvalidDateRangeError):
            service.terminate(state, agreement.id, TerminationRequest(end_date=date(2025, 2, 1)))

    def test_cannot_terminate_twice(self, service, created):
        agreement, state = created
        state = state.apply(service.terminate(state, agreement.id).mutations)

        with pytest.raises(InvalidTransitionError):
            service.terminate(state, agreement.id)


# =============================================================================
# Edit and status corrections
# =============================================================================


class TestUpdateTerms:

    @pytest.fixture
    def uninvoiced(self, service, rental_state, make_template):
        result = service.create(rental_state, _draft(), generate_documents=False)
        state = rental_state.apply(result.mutations)
        template = make_template(result.agreement, next_due_date=date(2025, 4, 1))
        return result.agreement, replace(state, templates=(template,))

    def test_edit_without_invoices_syncs_template(self, service, uninvoiced):
        agreement, state = uninvoiced
        result = service.update_terms(
            state, agreement.id, AgreementChanges(monthly_rent=Decimal("15000"), rent_due_day=5),
        )

        assert result.agreement.monthly_rent == Decimal("15000")
        (template,) = result.mutations.of_kind(MutationKind.UPDATE_RECURRING_TEMPLATE)
        assert template.amount == Decimal("15000")
        assert template.day_of_month == 5

    def test_edit_with_invoices_restricted(self, service, created):
        agreement, state = created
        with pytest.raises(EditRestrictedError) as exc_info:
            service.update_terms(state, agreement.id, AgreementChanges(monthly_rent=Decimal("15000")))
        assert exc_info.value.invoice_count == 2

    def test_paid_invoices_still_restrict_edits(self, service, created):
        agreement, state = created
        with pytest.raises(EditRestrictedError):
            service.update_terms(_pay_all(state), agreement.id, AgreementChanges(rent_due_day=5))

    def test_notes_always_editable(self, service, created):
        agreement, state = created
        result = service.update_terms(state, agreement.id, AgreementChanges(notes="Parking bay 4"))
        assert result.agreement.notes == "Parking bay 4"

    def test_move_to_occupied_property_rejected(self, service, uninvoiced):
        agreement, state = uninvoiced
        other = service.create(state, _draft(property_id=PROPERTY_2), generate_documents=False)
        state = state.apply(other.mutations)

        with pytest.raises(PropertyOccupiedError):
            service.update_terms(state, agreement.id, AgreementChanges(property_id=PROPERTY_2))


class TestStatusCorrections:

    def test_mark_renewed_allowed_with_open_invoices(self, service, created):
        agreement, state = created
        result = service.mark_renewed(state, agreement.id)

        assert result.agreement.status is AgreementStatus.RENEWED
        assert MutationKind.UPDATE_RECURRING_TEMPLATE in result.mutations.kinds()

    def test_expire_overdue(self, service, rental_state):
        ended = service.create(
            rental_state, _draft(start_date=date(2024, 3, 1), end_date=date(2025, 2, 28)),
        )
        state = rental_state.apply(ended.mutations)
        running = service.create(state, _draft(property_id=PROPERTY_2))
        state = state.apply(running.mutations)

        sweep = service.expire_overdue(state)

        assert [a.id for a in sweep.expired] == [ended.agreement.id]
        state = state.apply(sweep.mutations)
        view = AgreementRepositoryView(state)
        assert state.get_agreement(ended.agreement.id).status is AgreementStatus.EXPIRED
        assert not view.is_property_occupied(PROPERTY_1)
        assert view.active_templates_for(ended.agreement.id) == []
        assert state.get_agreement(running.agreement.id).is_active


# =============================================================================
# Invoice commands
# =============================================================================


class TestInvoiceCommands:

    def test_generate_initial_invoices_for_imported_agreement(self, service, rental_state):
        created = service.create(rental_state, _draft(), generate_documents=False)
        state = rental_state.apply(created.mutations)

        first = service.generate_initial_invoices(state, created.agreement.id)
        assert len(first.invoices) == 2
        assert len(first.templates) == 1

        state = state.apply(first.mutations)
        second = service.generate_initial_invoices(state, created.agreement.id)
        assert second.invoices == ()
        assert not second.mutations
        assert len(second.skipped) == 2

    def test_nothing_to_generate(self, service, rental_state, make_agreement):
        agreement = make_agreement(monthly_rent=Decimal("0"), security_deposit=Decimal("0"))
        with pytest.raises(NothingToGenerateError):
            service.generate_initial_invoices(replace(rental_state, agreements=(agreement,)), agreement.id)

    def test_manual_rent_invoice(self, service, created):
        agreement, state = created
        result = service.create_manual_invoice(state, agreement.id, ManualInvoiceKind.RENT, amount=Decimal("500"))

        (invoice,) = result.invoices
        assert invoice.amount == Decimal("500")
        assert invoice.invoice_number == "INV-00003"
        assert result.mutations.kinds() == [MutationKind.ADD_INVOICE, MutationKind.UPDATE_NUMBERING_SERIES]

    def test_recurring_chain_is_idempotent(self, service, rental_state):
        created = service.create(
            rental_state, _draft(start_date=date(2025, 1, 1), end_date=date(2025, 12, 31)),
        )
        state = rental_state.apply(created.mutations)

        run = service.materialize_due_charges(state)
        assert [i.rental_month for i in run.invoices] == ["2025-02", "2025-03"]
        assert [i.invoice_number for i in run.invoices] == ["INV-00003", "INV-00004"]
        state = state.apply(run.mutations)

        again = service.materialize_due_charges(state)
        assert again.invoices == ()
        assert not again.mutations


# =============================================================================
# Logging
# =============================================================================


class TestLifecycleLogging:

    def test_create_logs_with_context(self, service, rental_state, captured_logs):
        result = service.create(rental_state, _draft())

        records = [r for r in captured_logs() if r["message"] == "agreement_created"]
        assert len(records) == 1
        assert records[0]["agreement_id"] == str(result.agreement.id)
        assert records[0]["command"] == "create_agreement"
        assert records[0]["agreement_number"] == "AGR-0001"

    def test_blocked_renewal_logged(self, service, created, captured_logs):
        agreement, state = created
        with pytest.raises(OpenInvoicesError):
            service.renew(state, agreement.id)

        assert any(r["message"] == "agreement_renewal_blocked" for r in captured_logs())
