"""
Tenant-scoped state snapshot (``rental_modules.agreements.state``).

Responsibility
--------------
``RentalState`` is the read-only input every lifecycle operation works
against: the already-loaded agreements, invoices, recurring templates,
properties, categories, refund transactions and numbering series of one
tenant.  ``apply`` merges a ``MutationBatch`` into a new snapshot, for
hosts that keep state in memory and for chaining operations in tests.

Architecture position
---------------------
**Modules layer** -- pure data, ZERO I/O.

Invariants enforced
-------------------
* The snapshot is immutable; ``apply`` returns a new instance.
* Merging is data-driven: each mutation kind maps to one collection and a
  key, with no per-kind branching.
* An update for an entity that is not in the snapshot is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable
from uuid import UUID

from rental_kernel.domain.mutations import MutationBatch, MutationKind
from rental_modules.agreements.models import (
    Category,
    Invoice,
    NumberingSeries,
    Property,
    RecurringChargeTemplate,
    RefundTransaction,
    RentalAgreement,
    SeriesKind,
)


def _by_id(entity: Any) -> Any:
    return entity.id


def _by_kind(entity: Any) -> Any:
    return entity.kind


# kind -> (collection attribute, key function, upsert allowed)
_APPLY_TABLE: dict[MutationKind, tuple[str, Callable[[Any], Any], bool]] = {
    MutationKind.ADD_AGREEMENT: ("agreements", _by_id, False),
    MutationKind.UPDATE_AGREEMENT: ("agreements", _by_id, False),
    MutationKind.ADD_INVOICE: ("invoices", _by_id, False),
    MutationKind.ADD_RECURRING_TEMPLATE: ("templates", _by_id, False),
    MutationKind.UPDATE_RECURRING_TEMPLATE: ("templates", _by_id, False),
    MutationKind.UPDATE_NUMBERING_SERIES: ("numbering", _by_kind, True),
    MutationKind.ADD_TRANSACTION: ("transactions", _by_id, False),
}


@dataclass(frozen=True)
class RentalState:
    """Everything the engine may read for one tenant."""

    agreements: tuple[RentalAgreement, ...] = ()
    invoices: tuple[Invoice, ...] = ()
    templates: tuple[RecurringChargeTemplate, ...] = ()
    properties: tuple[Property, ...] = ()
    categories: tuple[Category, ...] = ()
    transactions: tuple[RefundTransaction, ...] = ()
    numbering: tuple[NumberingSeries, ...] = ()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_agreement(self, agreement_id: UUID) -> RentalAgreement | None:
        return next((a for a in self.agreements if a.id == agreement_id), None)

    def get_property(self, property_id: UUID) -> Property | None:
        return next((p for p in self.properties if p.id == property_id), None)

    def get_series(self, kind: SeriesKind) -> NumberingSeries | None:
        return next((s for s in self.numbering if s.kind is kind), None)

    def invoices_for(self, agreement_id: UUID) -> list[Invoice]:
        return [i for i in self.invoices if i.agreement_id == agreement_id]

    def templates_for(self, agreement_id: UUID) -> list[RecurringChargeTemplate]:
        return [t for t in self.templates if t.agreement_id == agreement_id]

    def document_numbers(self, kind: SeriesKind) -> list[str]:
        """All issued numbers of a document kind."""
        if kind is SeriesKind.AGREEMENT:
            return [a.agreement_number for a in self.agreements if a.agreement_number]
        return [i.invoice_number for i in self.invoices if i.invoice_number]

    # -------------------------------------------------------------------------
    # Merging
    # -------------------------------------------------------------------------

    def apply(self, batch: MutationBatch) -> RentalState:
        """Return a new snapshot with ``batch`` merged in, in order."""
        collections: dict[str, list[Any]] = {}

        for mutation in batch:
            attr, key_fn, upsert = _APPLY_TABLE[mutation.kind]
            items = collections.setdefault(attr, list(getattr(self, attr)))
            key = key_fn(mutation.entity)
            index = next((n for n, e in enumerate(items) if key_fn(e) == key), None)

            if mutation.kind.is_create:
                if index is not None:
                    raise ValueError(f"{mutation.kind.value}: {key} already exists")
                items.append(mutation.entity)
            elif index is not None:
                items[index] = mutation.entity
            elif upsert:
                items.append(mutation.entity)
            else:
                raise ValueError(f"{mutation.kind.value}: {key} not found")

        return replace(self, **{attr: tuple(items) for attr, items in collections.items()})
