"""MVCC snapshots, the commit log they consult, and SSI read/write tracking.

Every stored row carries two timestamps: ``tx_min``, the transaction that
created it, and ``tx_max``, the transaction that logically deleted it (``0``
while it is live). A reader captures a :class:`Snapshot` at statement start
and checks every row against it before emitting the row.

Serializable snapshot isolation runs alongside. Each in-flight writer has an
:class:`SsiState` in a shared :class:`SsiRegistry`. Reads add locks to the
reader's read set, and writes mark rw-edges against peers whose read sets
cover the written data. A transaction that has both an incoming and an
outgoing edge is the pivot of a dangerous structure and must not commit.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Union


class CommitLog:
    """The outcome of every finished write transaction.

    A transaction ID that has not been recorded is either still in flight or
    was lost to a crash; either way it does not count as committed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: dict[int, bool] = {}

    def record_commit(self, tx: int) -> None:
        """Record that ``tx`` committed."""
        with self._lock:
            self._outcomes[tx] = True

    def record_rollback(self, tx: int) -> None:
        """Record that ``tx`` rolled back."""
        with self._lock:
            self._outcomes[tx] = False

    def is_committed(self, tx: int) -> bool:
        """Whether ``tx`` is recorded as committed."""
        with self._lock:
            return self._outcomes.get(tx) is True

    def is_rolled_back(self, tx: int) -> bool:
        """Whether ``tx`` is recorded as rolled back."""
        with self._lock:
            return self._outcomes.get(tx) is False


@dataclass(frozen=True)
class TupleLock:
    """One tuple a transaction observed: table tree root plus rowid bytes."""

    table_root: int
    rowid_key: bytes


@dataclass(frozen=True)
class RelationLock:
    """A whole table a transaction scanned; catches phantom inserts."""

    table_root: int


@dataclass(frozen=True)
class IndexRangeLock:
    """A half-open byte range ``[lower, upper)`` over an index's encoded keys.

    ``upper`` of ``None`` means the range runs to the end of the index.
    """

    index_root: int
    lower: bytes
    upper: Optional[bytes] = None

    def __contains__(self, key: bytes) -> bool:
        return key >= self.lower and (self.upper is None or key < self.upper)


ReadLock = Union[TupleLock, RelationLock, IndexRangeLock]


@dataclass
class SsiState:
    """One transaction's read set and its two rw-conflict flags."""

    read_set: set = field(default_factory=set)
    out_conflict: bool = False
    in_conflict: bool = False


class SsiRegistry:
    """SSI bookkeeping for every in-flight write transaction, keyed by TX ID."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[int, SsiState] = {}

    def begin(self, tx: int) -> None:
        """Open an empty bookkeeping slot for ``tx``."""
        with self._lock:
            self._states[tx] = SsiState()

    def end(self, tx: int) -> None:
        """Drop the bookkeeping for ``tx``; unknown IDs are ignored."""
        with self._lock:
            self._states.pop(tx, None)

    def is_dangerous(self, tx: int) -> bool:
        """Whether ``tx`` has both an incoming and an outgoing rw-edge."""
        with self._lock:
            state = self._states.get(tx)
            return state is not None and state.in_conflict and state.out_conflict

    def __contains__(self, tx: object) -> bool:
        with self._lock:
            return tx in self._states

    def __getitem__(self, tx: int) -> SsiState:
        with self._lock:
            return self._states[tx]

    def _add_read(self, tx: int, lock: ReadLock, tombstone_by: Optional[int] = None) -> None:
        with self._lock:
            state = self._states.get(tx)
            if state is not None:
                state.read_set.add(lock)
            if tombstone_by is not None and tombstone_by != tx and tombstone_by in self._states:
                if state is not None:
                    state.out_conflict = True
                self._states[tombstone_by].in_conflict = True

    def _mark_readers(self, writer_tx: int, covers: Callable[[ReadLock], bool]) -> None:
        """Mark ``reader -> writer`` edges for every peer holding a covering lock."""
        with self._lock:
            readers = [
                state
                for tx, state in self._states.items()
                if tx != writer_tx and any(covers(lock) for lock in state.read_set)
            ]
            if not readers:
                return
            writer = self._states.get(writer_tx)
            if writer is not None:
                writer.in_conflict = True
            for state in readers:
                state.out_conflict = True


class RowidCounters:
    """Per-table rowid counters that hand out unique rowids to concurrent writers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next: dict[str, int] = {}

    def _raised(self, table: str, floor: int) -> int:
        current = max(self._next.get(table, floor), floor)
        self._next[table] = current
        return current

    def reserve(self, table: str, floor: int) -> int:
        """Reserve and return the next rowid for ``table``, never below ``floor``."""
        with self._lock:
            rowid = self._raised(table, floor)
            self._next[table] = rowid + 1
            return rowid

    def current(self, table: str, floor: int) -> int:
        """The rowid ``reserve`` would hand out next, never below ``floor``."""
        with self._lock:
            return self._raised(table, floor)


@dataclass
class Snapshot:
    """The visibility frame for one read, captured at statement start."""

    next_tx: int
    in_flight: frozenset = frozenset()
    own_tx: Optional[int] = None
    clog: CommitLog = field(default_factory=CommitLog)
    ssi: SsiRegistry = field(default_factory=SsiRegistry)
    rowid_counters: RowidCounters = field(default_factory=RowidCounters)

    def __post_init__(self) -> None:
        self.in_flight = frozenset(self.in_flight)

    def reserve_rowid(self, table: str, schema_next_rowid: int) -> int:
        """Reserve a fresh, unique rowid for ``table``."""
        return self.rowid_counters.reserve(table, schema_next_rowid)

    def current_next_rowid(self, table: str, schema_next_rowid: int) -> int:
        """The next rowid the counter for ``table`` would hand out."""
        return self.rowid_counters.current(table, schema_next_rowid)

    def record_read(self, table_root: int, rowid_key: bytes, tombstone_by: Optional[int]) -> None:
        """Note that the own transaction observed one tuple.

        ``tombstone_by`` is the in-flight peer that is deleting the observed
        version, if any; it gets an rw-edge with the reader.
        """
        if self.own_tx is None:
            return
        self.ssi._add_read(self.own_tx, TupleLock(table_root, bytes(rowid_key)), tombstone_by)

    def record_relation_read(self, table_root: int) -> None:
        """Note that the own transaction scanned the whole table."""
        if self.own_tx is None:
            return
        self.ssi._add_read(self.own_tx, RelationLock(table_root))

    def record_write(self, table_root: int, rowid_key: bytes) -> None:
        """Note that the own transaction is tombstoning one tuple."""
        if self.own_tx is None:
            return
        tuple_lock = TupleLock(table_root, bytes(rowid_key))
        relation_lock = RelationLock(table_root)
        self.ssi._mark_readers(
            self.own_tx, lambda lock: lock == tuple_lock or lock == relation_lock
        )

    def record_insert(self, table_root: int) -> None:
        """Note that the own transaction is inserting a new row into the table."""
        if self.own_tx is None:
            return
        relation_lock = RelationLock(table_root)
        self.ssi._mark_readers(self.own_tx, lambda lock: lock == relation_lock)

    def record_index_range_read(
        self, index_root: int, lower: bytes, upper: Optional[bytes]
    ) -> None:
        """Note that the own transaction scanned ``[lower, upper)`` of an index."""
        if self.own_tx is None:
            return
        lock = IndexRangeLock(index_root, bytes(lower), None if upper is None else bytes(upper))
        self.ssi._add_read(self.own_tx, lock)

    def record_index_write(self, index_root: int, encoded_key: bytes) -> None:
        """Note that the own transaction is writing ``encoded_key`` into an index."""
        if self.own_tx is None:
            return
        key = bytes(encoded_key)
        self.ssi._mark_readers(
            self.own_tx,
            lambda lock: isinstance(lock, IndexRangeLock)
            and lock.index_root == index_root
            and key in lock,
        )

    def visible(self, tx_min: int, tx_max: int) -> bool:
        """Whether a row with this ``(tx_min, tx_max)`` header is visible here."""
        if tx_min == self.own_tx or tx_min == 0:
            created = True
        elif not self.clog.is_committed(tx_min):
            created = False
        else:
            created = tx_min < self.next_tx and tx_min not in self.in_flight
        if not created:
            return False
        if tx_max == 0:
            return True
        if tx_max == self.own_tx:
            return False
        if not self.clog.is_committed(tx_max):
            return True
        return tx_max >= self.next_tx or tx_max in self.in_flight