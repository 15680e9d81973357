"""
Recurring Charge Scheduler (``rental_modules.agreements.scheduler``).

Responsibility
--------------
Creates the recurring rent template of an agreement, deactivates templates
when an agreement stops billing, advances templates by their frequency and
materializes due charges into invoices (including catch-up of missed
periods).

Architecture position
---------------------
**Modules layer** -- pure computation over a ``RentalState``.  Returns new
frozen records; the lifecycle service turns them into mutations.

Invariants enforced
-------------------
* One active template per ACTIVE agreement (the service deactivates before
  it creates).
* Templates are deactivated, never deleted.
* A rental month that is already invoiced for the agreement is not billed
  again; the template still advances past it.
* ``next_due_date`` never lands on an invalid day: monthly advancement
  clamps ``day_of_month`` to the length of the month.
* A template whose next due date passes the agreement end date is
  deactivated by ``materialize_due``.

Failure modes
-------------
* ``MissingCategoryError`` -- a due template needs a category role that is
  not bound.
* ``NumberingSeriesNotConfiguredError`` -- invoice series unusable.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Iterable, Mapping
from uuid import uuid4

from rental_kernel.domain.dates import add_months, add_years, month_label, rental_month_key
from rental_kernel.logging_config import get_logger
from rental_modules.agreements.categories import ROLE_FOR_INVOICE_TYPE, CategoryBindings
from rental_modules.agreements.config import MONTH_PLACEHOLDER, AgreementConfig
from rental_modules.agreements.models import (
    Invoice,
    InvoiceType,
    NumberingSeries,
    RecurringChargeTemplate,
    RecurringFrequency,
    RentalAgreement,
    SeriesKind,
)
from rental_modules.agreements.numbering import NumberAllocator, ScanNumberAllocator, resolve_series
from rental_modules.agreements.selectors import AgreementRepositoryView
from rental_modules.agreements.state import RentalState

logger = get_logger("modules.agreements.scheduler")


@dataclass(frozen=True)
class MaterializedCharges:
    """Output of one ``materialize_due`` run."""
    invoices: tuple[Invoice, ...] = ()
    templates: tuple[RecurringChargeTemplate, ...] = ()
    series: NumberingSeries | None = None
    skipped: tuple[str, ...] = field(default_factory=tuple)


def next_occurrence(
    current: date,
    frequency: RecurringFrequency,
    day_of_month: int | None = None,
) -> date:
    """Next due date after ``current`` for ``frequency``."""
    if frequency is RecurringFrequency.DAILY:
        return current + timedelta(days=1)
    if frequency is RecurringFrequency.WEEKLY:
        return current + timedelta(days=7)
    if frequency is RecurringFrequency.YEARLY:
        return add_years(current, 1)
    return add_months(current, 1, day_of_month)


class RecurringChargeScheduler:
    """
    Builds and advances recurring charge templates.

    Contract
    --------
    * Never mutates its inputs; every method returns new records.
    * ``materialize_due`` allocates invoice numbers in due-date order per
      template and threads the advanced series through the whole run.
    """

    def __init__(
        self,
        config: AgreementConfig | None = None,
        allocator: NumberAllocator | None = None,
    ):
        self._config = config or AgreementConfig.with_defaults()
        self._allocator = allocator or ScanNumberAllocator()

    # -------------------------------------------------------------------------
    # Template lifecycle
    # -------------------------------------------------------------------------

    def create_template(
        self,
        agreement: RentalAgreement,
        start_date: date | None = None,
        building_id=None,
    ) -> RecurringChargeTemplate:
        """
        Monthly rent template for ``agreement``.

        The first invoice (the start month) is produced by the invoice
        generator, so the template starts one month after ``start_date``.
        """
        start = start_date or agreement.start_date
        template = RecurringChargeTemplate(
            id=uuid4(),
            agreement_id=agreement.id,
            contact_id=agreement.contact_id,
            property_id=agreement.property_id,
            building_id=building_id,
            amount=agreement.monthly_rent,
            description_template=self._config.rent_description_template,
            day_of_month=agreement.rent_due_day,
            next_due_date=add_months(start, 1),
            active=True,
            invoice_type=InvoiceType.RENTAL,
            frequency=RecurringFrequency.MONTHLY,
            auto_generate=True,
        )
        logger.info(
            "recurring_template_created",
            extra={
                "agreement_id": str(agreement.id),
                "template_id": str(template.id),
                "next_due_date": template.next_due_date.isoformat(),
                "amount": str(template.amount),
            },
        )
        return template

    def deactivate(
        self,
        templates: Iterable[RecurringChargeTemplate],
    ) -> list[RecurringChargeTemplate]:
        """Inactive copies of every active template in ``templates``."""
        deactivated = [replace(t, active=False) for t in templates if t.active]
        if deactivated:
            logger.info(
                "recurring_templates_deactivated",
                extra={
                    "template_ids": [str(t.id) for t in deactivated],
                    "count": len(deactivated),
                },
            )
        return deactivated

    def advance(self, template: RecurringChargeTemplate, generated_on: date) -> RecurringChargeTemplate:
        """Move ``template`` past one generated occurrence."""
        generated_count = template.generated_count + 1
        active = template.active
        if template.max_occurrences is not None and generated_count >= template.max_occurrences:
            active = False
            logger.info(
                "recurring_template_completed",
                extra={"template_id": str(template.id), "generated_count": generated_count},
            )

        return replace(
            template,
            next_due_date=next_occurrence(
                template.next_due_date, template.frequency, template.day_of_month,
            ),
            generated_count=generated_count,
            last_generated_date=generated_on,
            active=active,
        )

    # -------------------------------------------------------------------------
    # Materialization
    # -------------------------------------------------------------------------

    def materialize_due(
        self,
        state: RentalState,
        today: date,
        bindings: CategoryBindings,
        series_defaults: Mapping[SeriesKind, NumberingSeries] | None = None,
    ) -> MaterializedCharges:
        """
        Invoices for every occurrence of every active template due by ``today``.

        Occurrences past the agreement's end date are not billed, and a
        template that runs past that date is deactivated.
        """
        view = AgreementRepositoryView(state)
        due = [
            t for t in state.templates
            if t.active and t.auto_generate and t.next_due_date <= today
        ]
        if not due:
            return MaterializedCharges()

        series = resolve_series(state, SeriesKind.INVOICE, series_defaults)
        issued = list(state.document_numbers(SeriesKind.INVOICE))
        billed: set[tuple] = set()
        invoices: list[Invoice] = []
        templates: list[RecurringChargeTemplate] = []
        skipped: list[str] = []

        for template in sorted(due, key=lambda t: (t.next_due_date, str(t.id))):
            agreement = state.get_agreement(template.agreement_id)
            if agreement is None or not agreement.is_active:
                logger.warning(
                    "recurring_template_orphaned",
                    extra={"template_id": str(template.id), "agreement_id": str(template.agreement_id)},
                )
                continue

            role = ROLE_FOR_INVOICE_TYPE.get(template.invoice_type)
            category_id = bindings.require(role) if role is not None else None
            current = template

            while (
                current.active
                and current.next_due_date <= today
                and current.next_due_date <= agreement.end_date
            ):
                issue_date = current.next_due_date
                month = rental_month_key(issue_date)
                key = (agreement.id, month)

                if current.invoice_type is InvoiceType.RENTAL and (
                    key in billed or view.rent_invoice_for_month(agreement.id, month)
                ):
                    skipped.append(f"{agreement.agreement_number}: rent for {month} already invoiced")
                    logger.info(
                        "recurring_occurrence_skipped",
                        extra={"template_id": str(current.id), "rental_month": month},
                    )
                else:
                    allocation = self._allocator.allocate(series, issued)
                    series = allocation.series
                    issued.append(allocation.number)
                    billed.add(key)
                    label = month_label(issue_date, self._config.month_label_format)
                    invoices.append(
                        Invoice(
                            id=uuid4(),
                            invoice_number=allocation.number,
                            contact_id=current.contact_id,
                            amount=current.amount,
                            issue_date=issue_date,
                            due_date=issue_date + timedelta(days=self._config.recurring_due_days),
                            invoice_type=current.invoice_type,
                            description=current.description_template.replace(MONTH_PLACEHOLDER, label),
                            category_id=category_id,
                            property_id=current.property_id,
                            building_id=current.building_id,
                            agreement_id=agreement.id,
                            rental_month=month if current.invoice_type is InvoiceType.RENTAL else None,
                        )
                    )

                current = self.advance(current, issue_date)

            if current.active and current.next_due_date > agreement.end_date:
                current = replace(current, active=False)
                logger.info(
                    "recurring_template_ended",
                    extra={
                        "template_id": str(current.id),
                        "agreement_id": str(agreement.id),
                        "end_date": agreement.end_date.isoformat(),
                    },
                )

            if current != template:
                templates.append(current)

        logger.info(
            "recurring_charges_materialized",
            extra={
                "as_of": today.isoformat(),
                "invoice_count": len(invoices),
                "template_count": len(templates),
                "skipped_count": len(skipped),
            },
        )
        return MaterializedCharges(
            invoices=tuple(invoices),
            templates=tuple(templates),
            series=series if invoices else None,
            skipped=tuple(skipped),
        )
