"""Tests for the Recurring Charge Scheduler (rental_modules/agreements/scheduler.py)."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from rental_kernel.exceptions import MissingCategoryError
from rental_modules.agreements.categories import CategoryBindings
from rental_modules.agreements.models import InvoiceType, RecurringFrequency
from rental_modules.agreements.scheduler import RecurringChargeScheduler, next_occurrence
from tests.conftest import RENT_CATEGORY


@pytest.fixture
def scheduler():
    return RecurringChargeScheduler()


# =============================================================================
# Template lifecycle
# =============================================================================


class TestCreateTemplate:

    def test_starts_one_month_after_start(self, scheduler, make_agreement):
        agreement = make_agreement(start_date=date(2025, 3, 1), rent_due_day=5)
        template = scheduler.create_template(agreement)

        assert template.next_due_date == date(2025, 4, 1)
        assert template.day_of_month == 5
        assert template.amount == Decimal("12000")
        assert template.description_template == "Rent for {Month}"
        assert template.active
        assert template.auto_generate
        assert template.frequency is RecurringFrequency.MONTHLY
        assert template.invoice_type is InvoiceType.RENTAL

    def test_month_end_start_is_clamped(self, scheduler, make_agreement):
        template = scheduler.create_template(make_agreement(start_date=date(2025, 1, 31)))
        assert template.next_due_date == date(2025, 2, 28)

    def test_deactivate_only_touches_active(self, scheduler, make_agreement, make_template):
        agreement = make_agreement()
        active = make_template(agreement)
        inactive = make_template(agreement, active=False)

        result = scheduler.deactivate([active, inactive])
        assert [t.id for t in result] == [active.id]
        assert not result[0].active


class TestNextOccurrence:

    @pytest.mark.parametrize(
        "frequency, expected",
        [
            (RecurringFrequency.DAILY, date(2025, 1, 31)),
            (RecurringFrequency.WEEKLY, date(2025, 2, 6)),
            (RecurringFrequency.MONTHLY, date(2025, 2, 28)),
            (RecurringFrequency.YEARLY, date(2026, 1, 30)),
        ],
    )
    def test_frequencies(self, frequency, expected):
        assert next_occurrence(date(2025, 1, 30), frequency) == expected

    def test_monthly_snaps_back_to_due_day(self):
        """A 31st due day clamped to Feb 28 returns to the 31st in March."""
        assert next_occurrence(date(2025, 2, 28), RecurringFrequency.MONTHLY, 31) == date(2025, 3, 31)

    def test_advance_counts_and_completes(self, scheduler, make_agreement, make_template):
        template = make_template(make_agreement(), max_occurrences=2, generated_count=1)
        advanced = scheduler.advance(template, date(2025, 2, 1))

        assert advanced.generated_count == 2
        assert advanced.last_generated_date == date(2025, 2, 1)
        assert advanced.next_due_date == date(2025, 3, 1)
        assert not advanced.active


# =============================================================================
# Materialization
# =============================================================================


class TestMaterializeDue:

    def test_catches_up_missed_months(self, scheduler, rental_state, bindings, make_agreement, make_template):
        agreement = make_agreement()
        template = make_template(agreement, next_due_date=date(2025, 2, 1))
        state = replace(rental_state, agreements=(agreement,), templates=(template,))

        result = scheduler.materialize_due(state, date(2025, 4, 10), bindings)

        assert [i.invoice_number for i in result.invoices] == ["INV-00001", "INV-00002", "INV-00003"]
        assert [i.rental_month for i in result.invoices] == ["2025-02", "2025-03", "2025-04"]
        first = result.invoices[0]
        assert first.issue_date == date(2025, 2, 1)
        assert first.due_date == date(2025, 2, 8)
        assert first.description == "Rent for February 2025"
        assert first.category_id == RENT_CATEGORY
        assert first.amount == Decimal("12000")

        (advanced,) = result.templates
        assert advanced.next_due_date == date(2025, 5, 1)
        assert advanced.generated_count == 3
        assert result.series.next_number == 4

    def test_already_invoiced_month_is_skipped(
        self, scheduler, rental_state, bindings, make_agreement, make_template, make_invoice,
    ):
        agreement = make_agreement()
        template = make_template(agreement, next_due_date=date(2025, 2, 1))
        existing = make_invoice(agreement, invoice_number="INV-00010", rental_month="2025-02")
        state = replace(rental_state, agreements=(agreement,), templates=(template,), invoices=(existing,))

        result = scheduler.materialize_due(state, date(2025, 3, 5), bindings)

        assert [i.rental_month for i in result.invoices] == ["2025-03"]
        assert result.invoices[0].invoice_number == "INV-00011"
        assert len(result.skipped) == 1
        assert result.templates[0].next_due_date == date(2025, 4, 1)

    def test_nothing_due(self, scheduler, rental_state, bindings, make_agreement, make_template):
        agreement = make_agreement()
        template = make_template(agreement, next_due_date=date(2025, 4, 1))
        state = replace(rental_state, agreements=(agreement,), templates=(template,))

        result = scheduler.materialize_due(state, date(2025, 3, 15), bindings)
        assert result.invoices == ()
        assert result.templates == ()
        assert result.series is None

    def test_stops_at_agreement_end(self, scheduler, rental_state, bindings, make_agreement, make_template):
        agreement = make_agreement(end_date=date(2025, 3, 31))
        template = make_template(agreement, next_due_date=date(2025, 3, 1))
        state = replace(rental_state, agreements=(agreement,), templates=(template,))

        result = scheduler.materialize_due(state, date(2025, 6, 1), bindings)
        assert [i.rental_month for i in result.invoices] == ["2025-03"]
        assert len(result.templates) == 1
        assert not result.templates[0].active
        assert result.templates[0].next_due_date == date(2025, 4, 1)

    def test_template_already_past_end_is_deactivated(
        self, scheduler, rental_state, bindings, make_agreement, make_template, captured_logs,
    ):
        agreement = make_agreement(end_date=date(2025, 3, 31))
        template = make_template(agreement, next_due_date=date(2025, 4, 1))
        state = replace(rental_state, agreements=(agreement,), templates=(template,))

        result = scheduler.materialize_due(state, date(2025, 6, 1), bindings)

        assert result.invoices == ()
        assert [t.id for t in result.templates] == [template.id]
        assert not result.templates[0].active
        assert any(r["message"] == "recurring_template_ended" for r in captured_logs())

    def test_inactive_and_manual_templates_ignored(
        self, scheduler, rental_state, bindings, make_agreement, make_template,
    ):
        agreement = make_agreement()
        templates = (
            make_template(agreement, active=False),
            make_template(agreement, auto_generate=False),
        )
        state = replace(rental_state, agreements=(agreement,), templates=templates)

        assert scheduler.materialize_due(state, date(2025, 6, 1), bindings).invoices == ()

    def test_missing_rent_category(self, scheduler, rental_state, make_agreement, make_template):
        agreement = make_agreement()
        template = make_template(agreement)
        state = replace(rental_state, agreements=(agreement,), templates=(template,))

        with pytest.raises(MissingCategoryError):
            scheduler.materialize_due(state, date(2025, 3, 15), CategoryBindings())
