"""Table schemas: the description of a table that the catalog stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from prehnite.values import Type, Value


class ForeignKeyAction(Enum):
    """What happens to a child row when its parent row is deleted."""

    RESTRICT = "RESTRICT"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"


@dataclass(frozen=True)
class ForeignKeyTarget:
    """The parent ``(table, column)`` a foreign-key column points at."""

    table: str
    column: str
    on_delete: ForeignKeyAction = ForeignKeyAction.RESTRICT


@dataclass
class HistogramBucket:
    """One equi-depth bucket covering non-NULL values in ``[lower, upper]``."""

    lower: Value
    upper: Value
    count: int


@dataclass
class ColumnStats:
    """Per-column statistics gathered by ANALYZE."""

    n_distinct: int
    null_count: int
    total_rows: int
    histogram: list[HistogramBucket] = field(default_factory=list)


@dataclass
class Column:
    """One column of a table."""

    name: str
    ty: Type
    not_null: bool = False
    foreign_key: Optional[ForeignKeyTarget] = None
    stats: Optional[ColumnStats] = None


@dataclass
class Index:
    """A secondary index over one or more columns of a table.

    ``columns`` holds column positions in index order; the first is the
    leading column. ``root`` is the root page of the index's own tree.
    """

    name: str
    columns: list[int]
    root: int
    unique: bool = False
    is_building: bool = False


@dataclass
class Schema:
    """Everything the engine needs to know about a table."""

    name: str
    columns: list[Column]
    root: int
    next_rowid: int = 1
    row_count: int = 0
    indexes: list[Index] = field(default_factory=list)
    primary_key_column: Optional[int] = None
    mutations_since_analyze: int = 0

    def column_index(self, name: str) -> Optional[int]:
        """Position of the column called ``name`` (case-sensitive), or None."""
        return next(
            (i for i, column in enumerate(self.columns) if column.name == name),
            None,
        )

    def column_names(self) -> list[str]:
        """The column names in declaration order."""
        return [column.name for column in self.columns]