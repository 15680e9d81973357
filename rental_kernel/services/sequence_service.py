"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing document sequence values (agreement
    numbers, invoice numbers) per tenant scope and series.  Uses a
    dedicated counter table with row-level locking (``SELECT ... FOR
    UPDATE``) so that two clients allocating from the same series at the
    same time can never receive the same value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Used by ``rental_modules.agreements.numbering.PersistentNumberAllocator``.

Invariants enforced:
    - Uniqueness under concurrency: the locked counter row is the sole
      source of truth for the next value.  Callers may pass a ``floor``
      (e.g. derived from documents imported out of band) that the next
      value must reach; the counter jumps forward to it, never backward.
    - Transactional: an increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).

Audit relevance:
    Allocation is logged at DEBUG level with scope, sequence name and value.
"""

from sqlalchemy import BigInteger, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from rental_kernel.db.base import Base
from rental_kernel.logging_config import get_logger

logger = get_logger("services.sequence")

DEFAULT_SCOPE = "default"


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is one named series inside one tenant scope, holding the last
    value handed out.  Row-level locking serializes allocations.
    """

    __tablename__ = "sequence_counters"
    __table_args__ = (
        UniqueConstraint("scope", "name", name="uq_sequence_counter_scope_name"),
    )

    # Tenant / organization scope
    scope: Mapped[str] = mapped_column(String(64), nullable=False)

    # Series name (e.g., "agreement", "invoice")
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    # Last value handed out (0 = nothing allocated yet)
    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence values.

    Contract:
        Accepts a scope and series name and returns the next value, which is
        strictly greater than every value previously returned for that
        ``(scope, name)`` and at least ``floor``.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations for
          the same series.
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        with session_scope() as session:
            value = SequenceService(session).next_value("invoice", scope=org)
            # If the transaction rolls back, value is not consumed
    """

    AGREEMENT = "agreement"
    INVOICE = "invoice"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, name: str, scope: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.scope == scope, SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, name: str, scope: str = DEFAULT_SCOPE, floor: int = 1) -> int:
        """
        Get the next value for a named series.

        1. Locks the counter row (or creates it if it does not exist)
        2. Moves it to ``max(current + 1, floor)``
        3. Returns the new value

        Args:
            name: Series name.
            scope: Tenant scope the series belongs to.
            floor: Lowest acceptable value (stored "next number" setting
                or one past the highest number found among existing
                documents).

        Returns:
            The allocated value (always >= 1).
        """
        # Expire cached counters so the read below hits the database
        self._session.expire_all()

        counter = self._locked_counter(name, scope)

        if counter is None:
            # First use of this series; another writer may be creating it too
            savepoint = self._session.begin_nested()
            try:
                value = max(1, floor)
                counter = SequenceCounter(scope=scope, name=name, current_value=value)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_scope": scope, "sequence_name": name, "value": value},
                )
                return value
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_scope": scope, "sequence_name": name},
                )
                savepoint.rollback()
                self._session.expire_all()
                counter = self._locked_counter(name, scope)
                if counter is None:
                    raise

        counter.current_value = max(counter.current_value + 1, floor, 1)
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "sequence_scope": scope,
                "sequence_name": name,
                "value": counter.current_value,
            },
        )
        return counter.current_value

    def current_value(self, name: str, scope: str = DEFAULT_SCOPE) -> int | None:
        """Last allocated value, or None if the series does not exist."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.scope == scope, SequenceCounter.name == name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, name: str, scope: str = DEFAULT_SCOPE, value: int = 0) -> None:
        """
        Reset a series to a specific value.

        WARNING: only for tests and migration scripts.
        """
        counter = self._locked_counter(name, scope)

        if counter is None:
            self._session.add(SequenceCounter(scope=scope, name=name, current_value=value))
        else:
            counter.current_value = value

        self._session.flush()

    def initialize_sequences(self, scope: str = DEFAULT_SCOPE) -> None:
        """Create the well-known series for a scope if they do not exist."""
        for name in (self.AGREEMENT, self.INVOICE):
            existing = self._session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.scope == scope, SequenceCounter.name == name)
            ).scalar_one_or_none()

            if existing is None:
                self._session.add(SequenceCounter(scope=scope, name=name, current_value=0))

        self._session.flush()
