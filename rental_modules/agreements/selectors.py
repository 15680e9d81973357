"""
Agreement Repository View (``rental_modules.agreements.selectors``).

Responsibility
--------------
Read-only queries over a ``RentalState`` that the lifecycle service and
invoice generator use to check preconditions: property occupancy, open
invoices, existing deposit and rent invoices, expiring agreements and the
renewal chain of an agreement.

Architecture position
---------------------
**Modules layer** -- pure reads, ZERO I/O, never mutates.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from rental_modules.agreements.models import (
    AgreementStatus,
    Invoice,
    InvoiceType,
    Property,
    RecurringChargeTemplate,
    RentalAgreement,
)
from rental_modules.agreements.state import RentalState

DEFAULT_DEPOSIT_TOLERANCE = Decimal("0.01")


class AgreementRepositoryView:
    """Query helpers bound to one state snapshot."""

    def __init__(self, state: RentalState):
        self._state = state

    @property
    def state(self) -> RentalState:
        return self._state

    # -------------------------------------------------------------------------
    # Occupancy
    # -------------------------------------------------------------------------

    def occupying_agreement(
        self,
        property_id: UUID,
        excluding_agreement_id: UUID | None = None,
    ) -> RentalAgreement | None:
        """The ACTIVE agreement holding ``property_id``, if any."""
        for agreement in self._state.agreements:
            if (
                agreement.property_id == property_id
                and agreement.status is AgreementStatus.ACTIVE
                and agreement.id != excluding_agreement_id
            ):
                return agreement
        return None

    def is_property_occupied(
        self,
        property_id: UUID,
        excluding_agreement_id: UUID | None = None,
    ) -> bool:
        return self.occupying_agreement(property_id, excluding_agreement_id) is not None

    def available_properties(
        self,
        building_id: UUID | None = None,
        excluding_agreement_id: UUID | None = None,
    ) -> list[Property]:
        """
        Properties a new (or edited) agreement may be placed on.

        ``excluding_agreement_id`` keeps the property of the agreement being
        edited selectable.
        """
        return [
            p for p in self._state.properties
            if (building_id is None or p.building_id == building_id)
            and not self.is_property_occupied(p.id, excluding_agreement_id)
        ]

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def open_invoices_for(self, agreement_id: UUID) -> list[Invoice]:
        return [i for i in self._state.invoices_for(agreement_id) if i.is_open]

    def has_any_invoices(self, agreement_id: UUID) -> bool:
        return any(i.agreement_id == agreement_id for i in self._state.invoices)

    def find_security_deposit_invoice(
        self,
        agreement_id: UUID,
        target_amount: Decimal,
        tolerance: Decimal = DEFAULT_DEPOSIT_TOLERANCE,
    ) -> Invoice | None:
        """
        Existing invoice that already bills ``target_amount`` of deposit.

        A SECURITY_DEPOSIT invoice matches when its deposit charge reaches
        the target less ``tolerance``.  Older data sometimes billed the
        deposit on a rental-type invoice, so any non service-charge invoice
        whose charge and amount both reach the threshold matches too.
        """
        threshold = target_amount * (Decimal("1") - tolerance)
        for invoice in self._state.invoices_for(agreement_id):
            if invoice.invoice_type is InvoiceType.SECURITY_DEPOSIT:
                if invoice.security_deposit_charge >= threshold:
                    return invoice
            elif invoice.invoice_type is not InvoiceType.SERVICE_CHARGE:
                if (
                    invoice.security_deposit_charge >= threshold
                    and invoice.amount >= threshold
                ):
                    return invoice
        return None

    def has_security_deposit_invoice(
        self,
        agreement_id: UUID,
        target_amount: Decimal,
        tolerance: Decimal = DEFAULT_DEPOSIT_TOLERANCE,
    ) -> bool:
        return self.find_security_deposit_invoice(agreement_id, target_amount, tolerance) is not None

    def rent_invoice_for_month(self, agreement_id: UUID, rental_month: str) -> Invoice | None:
        for invoice in self._state.invoices_for(agreement_id):
            if invoice.invoice_type is InvoiceType.RENTAL and invoice.rental_month == rental_month:
                return invoice
        return None

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def active_templates_for(self, agreement_id: UUID) -> list[RecurringChargeTemplate]:
        return [t for t in self._state.templates_for(agreement_id) if t.active]

    # -------------------------------------------------------------------------
    # Term queries
    # -------------------------------------------------------------------------

    def expiring_agreements(self, today: date, within_days: int = 30) -> list[RentalAgreement]:
        """ACTIVE agreements ending between ``today`` and ``today + within_days``."""
        horizon = today + timedelta(days=within_days)
        return sorted(
            (
                a for a in self._state.agreements
                if a.is_active and today <= a.end_date <= horizon
            ),
            key=lambda a: a.end_date,
        )

    def overdue_for_expiry(self, today: date) -> list[RentalAgreement]:
        """ACTIVE agreements whose end date has passed."""
        return [a for a in self._state.agreements if a.is_active and a.end_date < today]

    def renewal_chain(self, agreement_id: UUID) -> list[RentalAgreement]:
        """
        Every agreement linked to ``agreement_id`` by renewal, oldest first.
        """
        agreement = self._state.get_agreement(agreement_id)
        if agreement is None:
            return []

        # Walk back to the first agreement of the chain
        seen = {agreement.id}
        while agreement.previous_agreement_id is not None:
            previous = self._state.get_agreement(agreement.previous_agreement_id)
            if previous is None or previous.id in seen:
                break
            seen.add(previous.id)
            agreement = previous

        chain = [agreement]
        successors = {a.previous_agreement_id: a for a in self._state.agreements if a.previous_agreement_id}
        while chain[-1].id in successors and successors[chain[-1].id] not in chain:
            chain.append(successors[chain[-1].id])
        return chain
