"""
Sequence Allocator (``rental_modules.agreements.numbering``).

Responsibility
--------------
Hands out the next agreement or invoice number for a ``NumberingSeries``
(prefix + zero-padded counter) without ever re-issuing a number that is
already present among documents of that kind, even when the stored
counter lags behind documents created out of band (imports, manual edits).

Architecture position
---------------------
**Modules layer**.  ``allocate`` is a pure function; ``ScanNumberAllocator``
wraps it for single-writer hosts.  ``PersistentNumberAllocator`` adds the
kernel ``SequenceService`` (locked counter row) for concurrent writers.

Invariants enforced
-------------------
* Collision avoidance: candidate = ``max(stored next_number, highest
  existing suffix + 1)``.
* Monotonic: the advanced series always has ``next_number = candidate + 1``.
* Only all-digit suffixes take part in the scan.

Failure modes
-------------
* ``NumberingSeriesNotConfiguredError`` -- series missing, empty prefix, or
  missing/negative padding.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Protocol

from sqlalchemy.orm import Session

from rental_kernel.exceptions import NumberingSeriesNotConfiguredError
from rental_kernel.logging_config import get_logger
from rental_kernel.services.sequence_service import DEFAULT_SCOPE, SequenceService
from rental_modules.agreements.models import NumberingSeries, SeriesKind
from rental_modules.agreements.state import RentalState

logger = get_logger("modules.agreements.numbering")


@dataclass(frozen=True)
class NumberAllocation:
    """A formatted number plus the series advanced past it."""
    number: str
    value: int
    series: NumberingSeries


def _require_configured(series: NumberingSeries | None) -> NumberingSeries:
    if series is None:
        raise NumberingSeriesNotConfiguredError("unknown")
    if not series.prefix or series.padding is None or series.padding < 0:
        raise NumberingSeriesNotConfiguredError(series.kind.value)
    return series


def highest_existing(prefix: str, existing_numbers: Iterable[str]) -> int:
    """Largest numeric suffix among numbers carrying ``prefix`` (0 if none)."""
    highest = 0
    for number in existing_numbers:
        if not number or not number.startswith(prefix):
            continue
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def format_number(series: NumberingSeries, value: int) -> str:
    return f"{series.prefix}{str(value).zfill(series.padding)}"


def allocate(series: NumberingSeries | None, existing_numbers: Iterable[str]) -> NumberAllocation:
    """
    Compute the next number of ``series``.

    Args:
        series: Configured numbering series for the document kind.
        existing_numbers: Every number already issued for that kind.

    Returns:
        ``NumberAllocation`` whose ``series`` the caller must persist for
        the allocation to stick.

    Raises:
        NumberingSeriesNotConfiguredError: If the series is unusable.
    """
    series = _require_configured(series)
    scan_next = highest_existing(series.prefix, existing_numbers) + 1
    candidate = max(series.next_number, scan_next)

    if candidate != series.next_number:
        logger.debug(
            "numbering_counter_behind_documents",
            extra={
                "series_kind": series.kind.value,
                "stored_next": series.next_number,
                "scan_next": scan_next,
            },
        )

    return NumberAllocation(
        number=format_number(series, candidate),
        value=candidate,
        series=replace(series, next_number=candidate + 1),
    )


class NumberAllocator(Protocol):
    """Strategy the generator and lifecycle service allocate through."""

    def allocate(self, series: NumberingSeries | None, existing_numbers: Iterable[str]) -> NumberAllocation:
        ...


class ScanNumberAllocator:
    """Single-writer allocator: scan of existing documents plus stored counter."""

    def allocate(self, series: NumberingSeries | None, existing_numbers: Iterable[str]) -> NumberAllocation:
        return allocate(series, existing_numbers)


class PersistentNumberAllocator:
    """
    Allocator backed by the kernel ``SequenceService``.

    The scan result and the stored ``next_number`` only provide a floor.
    The locked counter row for ``(scope, series kind)`` decides the value,
    so two writers in the same scope never receive the same number.  The
    caller owns the session's transaction.
    """

    def __init__(self, session: Session, scope: str = DEFAULT_SCOPE):
        self._sequences = SequenceService(session)
        self._scope = scope

    def allocate(self, series: NumberingSeries | None, existing_numbers: Iterable[str]) -> NumberAllocation:
        series = _require_configured(series)
        floor = max(
            series.next_number,
            highest_existing(series.prefix, existing_numbers) + 1,
        )
        value = self._sequences.next_value(series.kind.value, scope=self._scope, floor=floor)

        return NumberAllocation(
            number=format_number(series, value),
            value=value,
            series=replace(series, next_number=value + 1),
        )


def resolve_series(
    state: RentalState,
    kind: SeriesKind,
    defaults: Mapping[SeriesKind, NumberingSeries] | None = None,
) -> NumberingSeries:
    """
    Series for ``kind``: the tenant's own, else the configured default.

    Raises:
        NumberingSeriesNotConfiguredError: If neither exists.
    """
    series = state.get_series(kind)
    if series is None and defaults:
        series = defaults.get(kind)
    if series is None:
        raise NumberingSeriesNotConfiguredError(kind.value)
    return series
