"""Value model, schemas, wire protocol and MVCC transaction state for a small relational database."""

__version__ = "0.59.0"
__all__ = ["errors", "values", "schema", "protocol", "snapshot", "transactions"]