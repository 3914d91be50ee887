"""
Schema-aware SQL helper over a single PostgreSQL connection.
"""
from pgworker.config import WorkerConfig, write_snapshot
from pgworker.connection import ColumnDescriptor, PGConnection, ResultSet
from pgworker.errors import (
	CardinalityError,
	ConfigLoadError,
	DBConnectionError,
	IntrospectionError,
	Outcome,
	QueryError,
	SnapshotError,
	WorkerError,
)
from pgworker.schema_cache import NO_PRIMARY_KEY, SchemaCache, TableMetadata, split_qualified_name
from pgworker.statements import Statement, StatementBuilder, columns_for_insert
from pgworker.worker import DatabaseWorker

__version__ = "0.1.0"

__all__ = [
	"CardinalityError",
	"ColumnDescriptor",
	"ConfigLoadError",
	"DatabaseWorker",
	"DBConnectionError",
	"IntrospectionError",
	"NO_PRIMARY_KEY",
	"Outcome",
	"PGConnection",
	"QueryError",
	"ResultSet",
	"SchemaCache",
	"SnapshotError",
	"Statement",
	"StatementBuilder",
	"TableMetadata",
	"WorkerConfig",
	"WorkerError",
	"columns_for_insert",
	"split_qualified_name",
	"write_snapshot",
]
