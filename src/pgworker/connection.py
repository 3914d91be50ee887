import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional

import psycopg2
from psycopg2 import sql

from pgworker.errors import CardinalityError, DBConnectionError, QueryError
from pgworker.utils import flatten_connection_params

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnDescriptor:
	"""
	Name and type oid of one result column, as reported by the server.
	"""
	name: str
	type_oid: int


@dataclass
class ResultSet:
	"""
	Rows returned by one statement together with their column descriptors.
	Statements without a result set (INSERT, TRUNCATE) produce an empty ResultSet.
	"""
	columns: list[ColumnDescriptor] = field(default_factory=list)
	rows: list[tuple] = field(default_factory=list)

	def __len__(self) -> int:
		return len(self.rows)

	def __iter__(self) -> Iterator[tuple]:
		return iter(self.rows)

	def __bool__(self) -> bool:
		return bool(self.rows)

	@property
	def column_names(self) -> list[str]:
		return [c.name for c in self.columns]

	def records(self) -> list[dict]:
		names = self.column_names
		return [dict(zip(names, r)) for r in self.rows]


class PGConnection:
	"""
	Single PostgreSQL connection running one statement per implicit transaction.

	Open from a parameter mapping (flattened to a libpq connection string):
		conn = PGConnection.open({"host": "localhost", "dbname": "metrics", "user": "postgres"})

	Every call to `execute()` commits on success and rolls back on failure.
	psycopg2 errors surface as DBConnectionError or QueryError.
	"""

	def __init__(self, conn, dsn: str = ""):
		self._conn = conn
		self.dsn = dsn
		self._closed = False

	@classmethod
	def open(cls, params: Mapping[str, Any] | str) -> "PGConnection":
		dsn = params if isinstance(params, str) else flatten_connection_params(params)
		try:
			conn = psycopg2.connect(dsn)
		except psycopg2.Error as exc:
			raise DBConnectionError(f"Could not connect: {exc}".strip()) from exc
		logger.debug("Opened connection (%s)", cls._redact(dsn))
		return cls(conn, dsn)

	@staticmethod
	def _redact(dsn: str) -> str:
		parts = []
		for part in dsn.split():
			key, sep, _ = part.partition("=")
			parts.append(f"{key}=***" if sep and key == "password" else part)
		return " ".join(parts)

	def __repr__(self) -> str:
		state = "closed" if self.closed else "open"
		return f"<PGConnection {self._redact(self.dsn)} {state}>"

	def __enter__(self) -> "PGConnection":
		return self

	def __exit__(self, exc_type, exc, tb) -> None:
		self.close()

	@property
	def closed(self) -> bool:
		return self._closed or bool(getattr(self._conn, "closed", False))

	def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		try:
			self._conn.close()
		except psycopg2.Error:
			logger.exception("Error closing connection")

	# ---------- Execution helpers ----------
	def _normalize_query(self, query) -> str:
		if isinstance(query, str):
			return query
		return query.as_string(self._conn)

	@staticmethod
	def _result_from_cursor(cur) -> ResultSet:
		if cur.description is None:
			return ResultSet()
		columns = [ColumnDescriptor(name=d[0], type_oid=d[1]) for d in cur.description]
		return ResultSet(columns=columns, rows=[tuple(r) for r in cur.fetchall()])

	def execute(self, query: str | sql.Composable, params: Optional[Iterable] = None) -> ResultSet:
		"""
		Run one statement in its own transaction and return its rows.
		"""
		if self.closed:
			raise DBConnectionError("Connection is closed.")
		try:
			query_text = self._normalize_query(query)
			with self._conn.cursor() as cur:
				cur.execute(query_text, None if params is None else list(params))
				result = self._result_from_cursor(cur)
			self._conn.commit()
			return result
		except psycopg2.Error as exc:
			self._rollback()
			if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
				raise DBConnectionError(str(exc).strip()) from exc
			raise QueryError(str(exc).strip()) from exc

	def execute_one(self, query: str | sql.Composable, params: Optional[Iterable] = None) -> dict:
		"""
		Run one statement that must produce exactly one row; return it as a dict.
		"""
		result = self.execute(query, params)
		if len(result) != 1:
			raise CardinalityError(len(result))
		return result.records()[0]

	def _rollback(self) -> None:
		try:
			self._conn.rollback()
		except psycopg2.Error:
			# Connection already broken; keep the first error.
			logger.debug("Rollback failed", exc_info=True)
