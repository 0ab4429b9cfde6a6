"""
SequenceService -- monotonic counter allocation and reference-code formatting.

Responsibility:
    Issues the next integer in a named counter series and renders it as a
    zero-padded, optionally prefixed/suffixed reference code.  The counter
    lives behind a ``CounterStore``; the SQL store uses locked counter rows
    (``SELECT ... FOR UPDATE``) plus a guarded compare-and-swap increment.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  The only core
    component that touches storage.

Invariants enforced:
    - No duplicates: two callers for the same sequence type never receive
      the same number.  The aggregate-max-plus-one anti-pattern is never
      used; the counter row is the sole source of truth.
    - Starts at 1: a missing row is created with next_number = 2 and the
      caller receives 1.
    - Per-type serialization: callers for different sequence types never
      wait on each other.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback (or cancellation) leaves the counter
      unchanged.

Failure modes:
    - DigitWidthExceededError: the value no longer fits its code width.
      The number was consumed inside the caller's transaction; rolling back
      returns it.
    - SequenceCreateError / SequenceIncrementError: storage failed.  Both
      are ``retryable``; the service itself never retries a storage error.
    - IntegrityError on concurrent counter creation is not a failure: the
      savepoint is rolled back and the existing row is incremented instead.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from typing import ContextManager, Protocol

from sqlalchemy import BigInteger, String, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column

from pms_kernel.db.base import Base
from pms_kernel.domain.sequence import ConcatPosition, CounterState, SequenceType
from pms_kernel.exceptions import (
    DigitWidthExceededError,
    PersistenceError,
    SequenceCreateError,
    SequenceIncrementError,
)
from pms_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Exactly one row per sequence type for the lifetime of the system; rows
    are created lazily and never deleted.
    """

    __tablename__ = "sequence_counters"

    sequence_type: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    description: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="",
    )

    # The number the next caller will receive
    next_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=1,
    )


# ---------------------------------------------------------------------------
# Counter stores
# ---------------------------------------------------------------------------


class CounterStore(Protocol):
    """Persistence collaborator for counter rows.

    Every method must honour the per-type isolation guarantee: between
    ``get_counter`` and ``increment_counter`` inside ``serialized()``, no
    other caller may issue a number for the same type.
    """

    def serialized(self, sequence_type: int) -> ContextManager[None]:
        """Scope within which reads and increments for one type are isolated."""
        ...

    def get_counter(self, sequence_type: int) -> CounterState | None:
        """Read (and lock, where supported) the counter row, or None."""
        ...

    def create_counter(self, counter: CounterState) -> bool:
        """Insert a counter row.  False when a concurrent creator won."""
        ...

    def increment_counter(self, counter: CounterState) -> bool:
        """Advance next_number by one if it still equals ``counter.next_number``."""
        ...


class SqlCounterStore:
    """
    Counter store over the ``sequence_counters`` table.

    Contract:
        Runs inside the caller's session transaction and never commits.

    Guarantees:
        - ``get_counter`` takes a row lock (``SELECT ... FOR UPDATE``) held
          until the transaction ends.
        - ``increment_counter`` is a compare-and-swap ``UPDATE`` guarded on
          the observed value, so a backend without row locks still cannot
          lose an update.
        - ``create_counter`` runs in a SAVEPOINT so a creation race does not
          roll back the caller's other work.
    """

    def __init__(self, session: Session):
        self._session = session

    def serialized(self, sequence_type: int) -> ContextManager[None]:
        # The row lock taken by get_counter is the serialization point.
        return nullcontext()

    def get_counter(self, sequence_type: int) -> CounterState | None:
        try:
            row = self._session.execute(
                select(
                    SequenceCounter.sequence_type,
                    SequenceCounter.next_number,
                    SequenceCounter.description,
                )
                .where(SequenceCounter.sequence_type == sequence_type)
                .with_for_update()  # Row-level lock
            ).one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Reading sequence counter for type {sequence_type} failed"
            ) from exc

        if row is None:
            return None
        return CounterState(
            sequence_type=row.sequence_type,
            next_number=row.next_number,
            description=row.description,
        )

    def create_counter(self, counter: CounterState) -> bool:
        try:
            # Rolled back to the savepoint on any error; the caller's
            # outer transaction survives.
            with self._session.begin_nested():
                self._session.add(
                    SequenceCounter(
                        sequence_type=counter.sequence_type,
                        description=counter.description,
                        next_number=counter.next_number,
                    )
                )
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_type": counter.sequence_type},
            )
            return False
        except SQLAlchemyError as exc:
            raise SequenceCreateError(counter.sequence_type, str(exc)) from exc
        return True

    def increment_counter(self, counter: CounterState) -> bool:
        try:
            result = self._session.execute(
                update(SequenceCounter)
                .where(
                    SequenceCounter.sequence_type == counter.sequence_type,
                    SequenceCounter.next_number == counter.next_number,
                )
                .values(next_number=SequenceCounter.next_number + 1)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            raise SequenceIncrementError(counter.sequence_type, str(exc)) from exc
        return result.rowcount == 1


class InMemoryCounterStore:
    """
    Process-local counter store with one lock per sequence type.

    For callers that do not need durability, and for exercising the
    generator without a database.  Counters for different types never
    share a lock.
    """

    def __init__(self) -> None:
        self._rows: dict[int, CounterState] = {}
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, sequence_type: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(sequence_type)
            if lock is None:
                lock = self._locks[sequence_type] = threading.Lock()
            return lock

    @contextmanager
    def serialized(self, sequence_type: int) -> Iterator[None]:
        with self._lock_for(sequence_type):
            yield

    def get_counter(self, sequence_type: int) -> CounterState | None:
        return self._rows.get(sequence_type)

    def create_counter(self, counter: CounterState) -> bool:
        if counter.sequence_type in self._rows:
            return False
        self._rows[counter.sequence_type] = counter
        return True

    def increment_counter(self, counter: CounterState) -> bool:
        current = self._rows.get(counter.sequence_type)
        if current is None or current.next_number != counter.next_number:
            return False
        self._rows[counter.sequence_type] = CounterState(
            sequence_type=current.sequence_type,
            next_number=current.next_number + 1,
            description=current.description,
        )
        return True


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def pad_with_zeros(
    value: int,
    digit_width: int,
    sequence_type: int | None = None,
) -> str:
    """Left-pad the decimal form of ``value`` with zeros to ``digit_width``.

    Raises:
        DigitWidthExceededError: if the decimal form is already wider than
            ``digit_width``.  Never truncates.
    """
    digits = str(value)
    if len(digits) > digit_width:
        raise DigitWidthExceededError(value, digit_width, sequence_type)
    return digits.rjust(digit_width, "0")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class SequenceService:
    """
    Service for issuing sequence numbers and reference codes.

    Contract:
        Accepts a sequence type and returns the next integer in that
        series.  Storage and its transaction belong to the injected
        ``CounterStore``.

    Guarantees:
        - Numbers for one type start at 1 and increase by exactly one per
          successful call, with no duplicates under concurrency.
        - Gap-free under normal operation: a rolled-back transaction
          returns its number.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT retry storage errors.

    Usage:
        with session_scope() as session:
            service = SequenceService(SqlCounterStore(session))
            code = service.generate_code(SequenceType.REVIEW_PERIOD, 6, "RP")
    """

    # Bound on compare-and-swap losses before giving up.  With a locking
    # store the first attempt always wins.
    MAX_ATTEMPTS = 5

    def __init__(self, store: CounterStore):
        self._store = store

    def next_number(self, sequence_type: SequenceType | int) -> int:
        """
        Issue the next number for ``sequence_type``.

        Preconditions:
            - The caller is within an active transaction when the store is
              transactional.

        Postconditions:
            - Returns an integer >= 1, strictly greater than any number
              previously issued for this type.
            - The stored counter holds the returned value + 1.

        Raises:
            SequenceCreateError, SequenceIncrementError, PersistenceError.
        """
        seq_type = int(sequence_type)

        with LogContext.bind(sequence_type=seq_type), self._store.serialized(seq_type):
            for attempt in range(1, self.MAX_ATTEMPTS + 1):
                counter = self._store.get_counter(seq_type)

                if counter is None:
                    # First use of this series: store 2, issue 1.
                    created = self._store.create_counter(
                        CounterState(
                            sequence_type=seq_type,
                            next_number=2,
                            description=_describe(seq_type),
                        )
                    )
                    if created:
                        logger.debug("sequence_allocated", extra={"value": 1})
                        return 1
                    # Another caller created it first; read it again.
                    continue

                if self._store.increment_counter(counter):
                    assert counter.next_number > 0, (
                        "sequence value must be strictly positive"
                    )
                    logger.debug(
                        "sequence_allocated",
                        extra={"value": counter.next_number},
                    )
                    return counter.next_number

                logger.debug("sequence_increment_conflict", extra={"attempt": attempt})

        raise SequenceIncrementError(
            seq_type, f"lost compare-and-swap {self.MAX_ATTEMPTS} times"
        )

    def generate_code(
        self,
        sequence_type: SequenceType | int,
        digit_width: int,
        concat: str = "",
        position: ConcatPosition = ConcatPosition.BEFORE,
    ) -> str:
        """
        Issue the next number and render it as a reference code.

        The number is zero-padded to exactly ``digit_width`` characters;
        ``concat`` is prepended, or appended when ``position`` is AFTER.

        Raises:
            DigitWidthExceededError: the series has outgrown its width.
        """
        seq_type = int(sequence_type)
        with LogContext.bind(sequence_type=seq_type):
            value = self.next_number(seq_type)
            try:
                padded = pad_with_zeros(value, digit_width, seq_type)
            except DigitWidthExceededError:
                logger.error(
                    "sequence_digit_width_exceeded",
                    extra={"value": value, "digit_width": digit_width},
                )
                raise

        if position == ConcatPosition.AFTER:
            return padded + concat
        return concat + padded

    def current_value(self, sequence_type: SequenceType | int) -> int | None:
        """
        The most recently issued number for a type, without incrementing.

        Returns:
            The last issued value, or None if the series was never used.
        """
        seq_type = int(sequence_type)
        with self._store.serialized(seq_type):
            counter = self._store.get_counter(seq_type)
        if counter is None:
            return None
        return counter.next_number - 1


def _describe(sequence_type: int) -> str:
    try:
        return SequenceType(sequence_type).description
    except ValueError:
        return f"SequenceNumberType_{sequence_type}"
