"""
Mutations -- outbound create/update instructions.

Responsibility:
    The engine never persists anything.  Every operation returns an ordered
    ``MutationBatch`` of ``Mutation`` records ("add this invoice", "update
    this agreement", "advance this numbering series") that the host
    application commits, atomically where the lifecycle invariants need it.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Batches are immutable; combining batches preserves order.
    - The entity carried by a mutation is a frozen value object.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator


class MutationKind(str, Enum):
    """What the host application must do with the carried entity."""

    ADD_AGREEMENT = "add_agreement"
    UPDATE_AGREEMENT = "update_agreement"
    ADD_INVOICE = "add_invoice"
    ADD_RECURRING_TEMPLATE = "add_recurring_template"
    UPDATE_RECURRING_TEMPLATE = "update_recurring_template"
    UPDATE_NUMBERING_SERIES = "update_numbering_series"
    ADD_TRANSACTION = "add_transaction"

    @property
    def is_create(self) -> bool:
        return self.value.startswith("add_")


@dataclass(frozen=True)
class Mutation:
    """A single create/update instruction."""

    kind: MutationKind
    entity: Any


@dataclass(frozen=True)
class MutationBatch:
    """Ordered, immutable collection of mutations produced by one operation."""

    mutations: tuple[Mutation, ...] = ()

    def __iter__(self) -> Iterator[Mutation]:
        return iter(self.mutations)

    def __len__(self) -> int:
        return len(self.mutations)

    def __bool__(self) -> bool:
        return bool(self.mutations)

    def __add__(self, other: MutationBatch) -> MutationBatch:
        return MutationBatch(self.mutations + other.mutations)

    def with_mutation(self, kind: MutationKind, entity: Any) -> MutationBatch:
        return MutationBatch(self.mutations + (Mutation(kind, entity),))

    def of_kind(self, kind: MutationKind) -> list[Any]:
        """Entities carried by mutations of ``kind``, in order."""
        return [m.entity for m in self.mutations if m.kind is kind]

    def kinds(self) -> list[MutationKind]:
        return [m.kind for m in self.mutations]


class MutationBuilder:
    """Accumulates mutations while an operation is being computed."""

    def __init__(self) -> None:
        self._mutations: list[Mutation] = []

    def add(self, kind: MutationKind, entity: Any) -> None:
        self._mutations.append(Mutation(kind, entity))

    def extend(self, batch: MutationBatch) -> None:
        self._mutations.extend(batch.mutations)

    def build(self) -> MutationBatch:
        return MutationBatch(tuple(self._mutations))
