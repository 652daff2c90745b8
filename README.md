# prehnite

The core pieces of a small relational database engine. It is written in plain
Python and needs no third-party packages.

## Modules

- `prehnite.errors`: the exception hierarchy. Everything is rooted at
  `PrehniteError`. The subclasses name the layer that found the fault:
  `StorageIOError` wraps an `OSError`, and the others are `CorruptionError`,
  `ParseError`, `ExecError`, `TooLargeError`, `ExhaustedError`,
  `ProtocolError`, `ConflictError` and `SerializationError`. `str(exc)` puts
  the layer's prefix in front of the message (for example
  `"protocol error: ..."`). `ExecError` has no prefix.
- `prehnite.values`: the SQL value model. There are four column types:
  `Type.INT`, `Type.REAL`, `Type.TEXT` and `Type.BOOL`. Runtime values are
  plain Python objects:
  - `None` is NULL.
  - `int`, `float`, `str` and `bool` stand for INT, REAL, TEXT and BOOL.

  The module has three functions:
  - `type_name(value)` gives the SQL type name of a value.
  - `format_value(value)` renders a value for display. NULL becomes `NULL`,
    booleans become `true`/`false`, and reals are written without exponent
    notation.
  - `coerce(value, target)` adapts a value to a column type. NULL fits
    anywhere and an integer widens into `REAL`. Any other mismatch raises
    `ExecError`.
- `prehnite.schema`: dataclasses that describe tables: `Schema`, `Column`,
  `Index`, `ForeignKeyTarget` (with a `ForeignKeyAction`), `ColumnStats` and
  `HistogramBucket`. `Schema.column_index(name)` finds a column's position;
  the match is case-sensitive. `Schema.column_names()` lists the column names
  in declaration order.
- `prehnite.protocol`: the length-prefixed, big-endian wire protocol. Each
  frame is `[tag: u8][length: u32][payload]`, and a payload may be at most
  64 MiB.
  - Requests: `Query`, `Prepare`, `Execute` and `Deallocate`.
  - Responses: `Ack`, `ErrorReply`, `RowsBegin`, `Row`, `RowsEnd` and
    `Prepared`.
  - Functions: `write_request`, `read_request`, `write_response` and
    `read_response`. They work on any binary stream with `read`, `write` and
    `flush`.

  `read_request` returns `None` when the stream ends cleanly between frames.
  `read_response` raises `ProtocolError` in that case. Truncated or malformed
  frames also raise `ProtocolError`.
- `prehnite.snapshot`: MVCC visibility and SSI tracking.
  - `CommitLog` records the outcome of each finished transaction.
  - `Snapshot.visible(tx_min, tx_max)` decides whether a row version is
    visible to the snapshot.
  - The `Snapshot.record_*` methods add `TupleLock`, `RelationLock` and
    `IndexRangeLock` entries to the transaction's read set and mark rw-edges
    in a shared `SsiRegistry`.
  - `RowidCounters` hands out unique rowids per table.
- `prehnite.transactions`: `TxState`, the transaction coordinator. It
  provides:
  - transaction IDs (`begin_write`, `commit_write`, `rollback_write`);
  - snapshots;
  - the SSI commit check (`ssi_check_commit`);
  - rowid reservation;
  - a per-table `RwLock` (`read()` / `write()` context managers), a catalog
    lock and a commit lock.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Framing a query and reading it back:

```python
import io
from prehnite.protocol import Query, Row, RowsEnd, read_request, write_request, write_response, read_response

buf = io.BytesIO()
write_request(buf, Query("SELECT name FROM users WHERE id = 1"))
buf.seek(0)
assert read_request(buf) == Query("SELECT name FROM users WHERE id = 1")
assert read_request(buf) is None   # clean end of stream

out = io.BytesIO()
write_response(out, Row([1, 2.5, "ada", True, None]))
write_response(out, RowsEnd())
out.seek(0)
print(read_response(out))  # Row(values=[1, 2.5, 'ada', True, None])
```

Coercing values to column types:

```python
from prehnite.values import Type, coerce
from prehnite.errors import ExecError

coerce(4, Type.REAL)      # 4.0
coerce(None, Type.BOOL)   # None
try:
    coerce("x", Type.INT)
except ExecError as exc:
    print(exc)            # cannot store TEXT in a INT column
```

Running a write transaction and taking snapshots:

```python
from prehnite.transactions import TxState

state = TxState(1)
tx = state.begin_write()
snap = state.snapshot(tx)
assert snap.visible(tx, 0)          # a writer sees its own rows
with state.table_lock("users").read():
    rowid = snap.reserve_rowid("users", 1)
state.ssi_check_commit(tx)          # raises SerializationError on a dangerous cycle
state.commit_write(tx)
assert state.snapshot(None).visible(tx, 0)
```

## What this package does not do

This package provides building blocks, not a complete database. It has no SQL
lexer or parser and no query planner or executor. It also has no pages,
B+trees or write-ahead log on disk. It includes no network server and no
client command. The protocol functions only frame and read messages on a
stream you supply.

`CommitLog` is kept in memory, so transaction outcomes do not survive a
restart.