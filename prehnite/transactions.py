"""The process-wide transaction coordinator.

:class:`TxState` hands out transaction IDs, tracks which write transactions
are in flight, records outcomes in the commit log, and owns the runtime locks
that serialise writers: one reader-writer lock per table, one catalog lock,
and one commit lock. Every database handle open on one file shares a single
coordinator.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from prehnite.errors import SerializationError
from prehnite.snapshot import CommitLog, RowidCounters, Snapshot, SsiRegistry


class RwLock:
    """A reader-writer lock: many readers at once, or one writer alone.

    Waiting writers take priority over newly arriving readers, so a steady
    stream of readers cannot starve a writer.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the shared side for the duration of the block."""
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the exclusive side for the duration of the block."""
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class TxState:
    """Coordinates write transactions, snapshots and write locks for one file.

    ``persisted_next_tx_id`` is the value last written to the database
    header; any lower ID missing from the commit log counts as rolled back.
    """

    def __init__(self, persisted_next_tx_id: int = 1, clog: Optional[CommitLog] = None) -> None:
        self._lock = threading.Lock()
        self._next_tx_id = max(persisted_next_tx_id, 1)
        self._in_flight: set[int] = set()
        self.clog = clog if clog is not None else CommitLog()
        self._table_locks: dict[str, RwLock] = {}
        self._table_locks_guard = threading.Lock()
        self._catalog_lock = threading.Lock()
        self._commit_lock = threading.Lock()
        self.ssi = SsiRegistry()
        self.rowid_counters = RowidCounters()

    def next_rowid(self, table: str, schema_next_rowid: int) -> int:
        """Atomically reserve a fresh rowid for ``table``.

        ``schema_next_rowid`` is the persisted floor: the counter is raised to
        it before the reservation.
        """
        return self.rowid_counters.reserve(table, schema_next_rowid)

    def current_next_rowid(self, table: str, schema_next_rowid: int) -> int:
        """The rowid the counter for ``table`` would hand out next."""
        return self.rowid_counters.current(table, schema_next_rowid)

    def table_lock(self, table: str) -> RwLock:
        """The reader-writer lock for ``table``, created on first request."""
        with self._table_locks_guard:
            lock = self._table_locks.get(table)
            if lock is None:
                lock = self._table_locks[table] = RwLock()
            return lock

    def catalog_lock(self) -> threading.Lock:
        """The lock taken for catalog mutations."""
        return self._catalog_lock

    def commit_lock(self) -> threading.Lock:
        """The lock held across a commit's physical I/O."""
        return self._commit_lock

    def snapshot(self, own_tx: Optional[int] = None) -> Snapshot:
        """Capture a snapshot of the whole in-flight set at this instant."""
        with self._lock:
            next_tx = self._next_tx_id
            in_flight = frozenset(self._in_flight)
        return Snapshot(
            next_tx=next_tx,
            in_flight=in_flight,
            own_tx=own_tx,
            clog=self.clog,
            ssi=self.ssi,
            rowid_counters=self.rowid_counters,
        )

    def begin_write(self) -> int:
        """Reserve a TX ID for a new write transaction and mark it in flight."""
        with self._lock:
            tx = self._next_tx_id
            self._next_tx_id += 1
            self._in_flight.add(tx)
        self.ssi.begin(tx)
        return tx

    def commit_write(self, tx_id: int) -> None:
        """Record ``tx_id`` as committed and retire it."""
        self.clog.record_commit(tx_id)
        self._retire(tx_id)

    def rollback_write(self, tx_id: int) -> None:
        """Record ``tx_id`` as rolled back and retire it."""
        self.clog.record_rollback(tx_id)
        self._retire(tx_id)

    def _retire(self, tx_id: int) -> None:
        with self._lock:
            self._in_flight.discard(tx_id)
        self.ssi.end(tx_id)

    def ssi_check_commit(self, tx: int) -> None:
        """Raise :class:`SerializationError` if ``tx`` is the pivot of a dangerous structure."""
        if self.ssi.is_dangerous(tx):
            raise SerializationError(
                f"transaction {tx} would close a dangerous rw-dependency cycle"
            )

    def oldest_active_tx_id(self) -> int:
        """The smallest in-flight TX ID, or the next TX ID when none is in flight."""
        with self._lock:
            return min(self._in_flight, default=self._next_tx_id)

    def next_tx_id(self) -> int:
        """The TX ID the next write transaction will receive."""
        with self._lock:
            return self._next_tx_id

    def in_flight_count(self) -> int:
        """How many write transactions are in flight."""
        with self._lock:
            return len(self._in_flight)