import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence, TextIO

from psycopg2 import sql

from pgworker.config import WorkerConfig, write_snapshot
from pgworker.connection import PGConnection, ResultSet
from pgworker.errors import DBConnectionError, IntrospectionError, Outcome, SnapshotError, WorkerError
from pgworker.formatter import ResultFormatter
from pgworker.introspection import Introspector
from pgworker.schema_cache import SchemaCache, TableMetadata
from pgworker.statements import (
	DEFAULT_LIMIT,
	ParameterizedStatementBuilder,
	Statement,
	StatementBuilder,
	columns_for_insert,
)
from pgworker.type_names import TypeNameResolver

logger = logging.getLogger(__name__)


class DatabaseWorker:
	"""
	Schema-aware helper over one PostgreSQL connection.

	Construct from a config file (YAML or JSON) or a WorkerConfig:
		worker = DatabaseWorker("db.yaml")
		worker.insert("public.events", "'click'", "'2024-05-01 10:00:00'")
		rows = worker.select("public.events", ["name"], "name <> ''", limit=5)
		worker.print(rows)

	Table schemas are introspected on first use and cached. Every statement runs in its
	own transaction. By default failures are logged and turned into empty results;
	pass strict=True to get the typed WorkerError subclasses raised instead.
	"""

	def __init__(
		self,
		config: WorkerConfig | str | Path,
		output_file: str | Path | None = None,
		*,
		strict: bool = False,
		parameterized: bool = False,
		explore: bool = True,
		connection: PGConnection | None = None,
	):
		self.config = config if isinstance(config, WorkerConfig) else WorkerConfig.load(config)
		self.strict = strict
		self.parameterized = parameterized
		self.cache: SchemaCache = self.config.seed_cache()
		self.resolver = TypeNameResolver(self._query_one)
		self.introspector = Introspector(self._query, self.cache, self.resolver)
		self.builder = ParameterizedStatementBuilder() if parameterized else StatementBuilder()
		self.formatter = ResultFormatter(self.resolver, self.config.field_length_mapping)

		self._conn: PGConnection | None = connection
		if self._conn is None:
			self.connect(self.config.connection)

		if explore:
			self.introspector.introspect_all()

		if output_file:
			self.persist_cache(output_file)

	@classmethod
	def from_file(cls, path: str | Path, **kwargs) -> "DatabaseWorker":
		return cls(WorkerConfig.load(path), **kwargs)

	def __repr__(self) -> str:
		return f"<DatabaseWorker tables={len(self.cache)} strict={self.strict} conn={self._conn!r}>"

	def __enter__(self) -> "DatabaseWorker":
		return self

	def __exit__(self, exc_type, exc, tb) -> None:
		self.close()

	# ---------- Connection plumbing ----------
	def connect(self, params: Mapping[str, Any] | str) -> bool:
		"""
		Open the connection; on failure log it and leave the worker unconnected.
		"""
		try:
			self._conn = PGConnection.open(params)
		except DBConnectionError:
			logger.exception("Could not open database connection")
			self._conn = None
			if self.strict:
				raise
			return False
		return True

	@property
	def connected(self) -> bool:
		return self._conn is not None and not self._conn.closed

	def close(self) -> None:
		if self._conn is not None:
			self._conn.close()

	def _require_conn(self) -> PGConnection:
		if self._conn is None:
			raise DBConnectionError("No database connection.")
		return self._conn

	def _query(self, query: str | sql.Composable, params: Optional[Iterable] = None) -> ResultSet:
		return self._require_conn().execute(query, params)

	def _query_one(self, query: str | sql.Composable, params: Optional[Iterable] = None) -> dict:
		return self._require_conn().execute_one(query, params)

	# ---------- Execution with error policy ----------
	def try_execute(self, statement: str | Statement, params: Optional[Iterable] = None) -> Outcome:
		query, params = self._unpack(statement, params)
		try:
			return Outcome(value=self._query(query, params))
		except WorkerError as exc:
			return Outcome(error=exc)

	def try_execute_one(self, statement: str | Statement, params: Optional[Iterable] = None) -> Outcome:
		query, params = self._unpack(statement, params)
		try:
			return Outcome(value=self._query_one(query, params))
		except WorkerError as exc:
			return Outcome(error=exc)

	def execute(self, statement: str | Statement, params: Optional[Iterable] = None) -> ResultSet:
		"""
		Run one statement. Returns an empty ResultSet on failure unless strict.
		"""
		return self._settle(self.try_execute(statement, params), statement, ResultSet())

	def execute_one(self, statement: str | Statement, params: Optional[Iterable] = None) -> dict | None:
		"""
		Run a statement expected to yield exactly one row. Returns None on failure unless strict.
		"""
		return self._settle(self.try_execute_one(statement, params), statement, None)

	@staticmethod
	def _unpack(statement: str | Statement, params: Optional[Iterable]) -> tuple[Any, Optional[Iterable]]:
		if isinstance(statement, Statement):
			return statement.query, statement.params if params is None else params
		return statement, params

	def _settle(self, outcome: Outcome, statement: str | Statement, default: Any) -> Any:
		if outcome.ok:
			return outcome.value
		if self.strict:
			raise outcome.error
		logger.error("%s while executing %s: %s", outcome.error_kind, statement, outcome.error)
		return default

	# ---------- Schema cache ----------
	def ensure_known(self, table: str) -> None:
		self.introspector.ensure_known(table)

	@property
	def known_tables(self) -> list[str]:
		return self.cache.known_tables

	def metadata(self, table: str) -> TableMetadata | None:
		self.ensure_known(table)
		return self.cache.get(table)

	def columns_for_insert(self, table: str) -> list[str]:
		meta = self.metadata(table)
		return columns_for_insert(meta) if meta is not None else []

	def _meta_for_insert(self, table: str) -> TableMetadata | None:
		meta = self.metadata(table)
		if meta is None or not meta.columns:
			logger.error("No schema known for %s, insert skipped", table)
			if self.strict:
				raise IntrospectionError(f"Schema of '{table}' could not be introspected.")
			return None
		return meta

	def persist_cache(self, path: str | Path) -> Path | None:
		"""
		Write the configuration plus every discovered table schema to `path`.
		"""
		document = self.config.export(self.cache)
		try:
			return write_snapshot(path, document)
		except (OSError, SnapshotError):
			logger.exception("Could not write snapshot to %s", path)
			if self.strict:
				raise
			return None

	def snapshot(self) -> dict[str, Any]:
		return self.config.export(self.cache)

	# ---------- SELECT ----------
	def select(
		self,
		table: str,
		fields: Sequence[str] | None = None,
		condition: str = "",
		limit: int = DEFAULT_LIMIT,
	) -> ResultSet:
		self.ensure_known(table)
		return self.execute(self.builder.select(table, fields, condition, limit))

	def select_all_columns(self, table: str, condition: str = "") -> ResultSet:
		return self.select(table, None, condition)

	# ---------- INSERT ----------
	def insert(self, table: str, *values: Any) -> ResultSet:
		"""
		Insert one row from positional values, in `columns_for_insert(table)` order.
		"""
		meta = self._meta_for_insert(table)
		if meta is None:
			return ResultSet()
		return self.execute(self.builder.insert_values(meta, *values))

	def insert_sequence(self, table: str, values: Iterable[Any]) -> ResultSet:
		meta = self._meta_for_insert(table)
		if meta is None:
			return ResultSet()
		return self.execute(self.builder.insert_sequence(meta, values))

	def insert_timed(self, table: str, tp: datetime, values: Iterable[Any]) -> ResultSet:
		"""
		Insert `tp` as the first column value followed by `values`.
		"""
		meta = self._meta_for_insert(table)
		if meta is None:
			return ResultSet()
		return self.execute(self.builder.insert_timed_sequence(meta, tp, values))

	def insert_from_maps(self, table: str, *mappings: Mapping[str, Any]) -> ResultSet:
		"""
		Insert one row from merged column -> value mappings; later mappings win on key clashes.
		"""
		statement = self.builder.insert_mappings(table, *mappings)
		self.ensure_known(table)
		return self.execute(statement)

	# ---------- TRUNCATE ----------
	def clear(self, table: str) -> ResultSet:
		return self.execute(self.builder.clear(table))

	# ---------- Output ----------
	def format(self, result: ResultSet) -> str:
		try:
			return self.formatter.format(result)
		except WorkerError:
			logger.exception("Could not format result")
			if self.strict:
				raise
			return ""

	def print(self, result: ResultSet | str, stream: TextIO | None = None) -> None:
		"""
		Print a result, or every column of a table when given its name.
		"""
		if isinstance(result, str):
			result = self.select_all_columns(result)
		(stream or sys.stdout).write(self.format(result))
