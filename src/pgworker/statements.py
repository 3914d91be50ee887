from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from psycopg2 import sql

from pgworker.schema_cache import TableMetadata
from pgworker.utils import iso_8601

DEFAULT_LIMIT = 100


@dataclass(frozen=True)
class Statement:
	"""
	SQL ready to execute: plain text or a psycopg2.sql Composable, with optional bound parameters.
	"""
	query: str | sql.Composable
	params: Optional[tuple[Any, ...]] = None

	def __str__(self) -> str:
		return self.query if isinstance(self.query, str) else repr(self.query)


def columns_for_insert(meta: TableMetadata) -> list[str]:
	"""
	Columns an INSERT supplies values for, in cached column order.

	The primary key is skipped unless its type is a timestamp, so that explicitly
	supplied timestamp keys are still inserted.
	"""
	return [
		name for name, type_name in meta.columns.items()
		if name != meta.primary_key or "timestamp" in type_name
	]


def merge_mappings(*mappings: Mapping[str, Any]) -> dict[str, Any]:
	"""
	Merge column -> value mappings (later ones win) and order the result by column name.
	"""
	merged: dict[str, Any] = {}
	for m in mappings:
		merged.update(m)
	return {k: merged[k] for k in sorted(merged)}


def build_insert(table: str, columns: Sequence[str], tokens: Iterable[Any], *, spaced: bool = False) -> str:
	"""
	INSERT statement from a column list and already rendered literal tokens.
	"""
	cols = ", ".join(columns)
	values = ", ".join(str(t) for t in tokens)
	if spaced:
		return f"INSERT INTO {table} ({cols}) VALUES ({values})"
	return f"INSERT INTO {table}({cols}) VALUES({values})"


class StatementBuilder:
	"""
	Build SELECT / INSERT / TRUNCATE text from cached table metadata.

	Values are embedded exactly as given (their str() form); quoting literals is
	the caller's job. The number and order of positional values must match
	`columns_for_insert(meta)`; no check is made.
	"""

	# ---------- SELECT / TRUNCATE ----------
	def select(
		self,
		table: str,
		fields: Sequence[str] | None = None,
		condition: str = "",
		limit: int = DEFAULT_LIMIT,
	) -> Statement:
		projection = ", ".join(fields) if fields else "*"
		text = f"SELECT {projection} FROM {table}"
		if condition:
			text += f" WHERE {condition}"
		text += f" LIMIT {limit}"
		return Statement(text)

	def clear(self, table: str) -> Statement:
		return Statement(f"TRUNCATE {table} CASCADE")

	# ---------- INSERT shapes ----------
	def insert_values(self, meta: TableMetadata, *values: Any) -> Statement:
		return self._insert(meta, list(values))

	def insert_sequence(self, meta: TableMetadata, values: Iterable[Any]) -> Statement:
		return self._insert(meta, list(values))

	def insert_timed_sequence(self, meta: TableMetadata, tp: datetime, values: Iterable[Any]) -> Statement:
		return self._insert(meta, [f"'{iso_8601(tp)}'", *values])

	def insert_mappings(self, table: str, *mappings: Mapping[str, Any]) -> Statement:
		merged = merge_mappings(*mappings)
		return Statement(build_insert(table, list(merged), merged.values(), spaced=True))

	def _insert(self, meta: TableMetadata, tokens: list[Any]) -> Statement:
		return Statement(build_insert(meta.qualified_name, columns_for_insert(meta), tokens))


class ParameterizedStatementBuilder(StatementBuilder):
	"""
	INSERT shapes composed with psycopg2.sql: quoted identifiers and bound values.

	The timestamp shape binds the datetime itself instead of an ISO string literal.
	"""

	@staticmethod
	def _ident_qualified(table: str) -> sql.Composable:
		if "." in table:
			schema, name = table.split(".", 1)
			return sql.SQL("{}.{}").format(sql.Identifier(schema.strip('"')), sql.Identifier(name.strip('"')))
		return sql.Identifier(table.strip('"'))

	def _compose(self, table: str, columns: Sequence[str], values: Sequence[Any]) -> Statement:
		query = sql.SQL("INSERT INTO {tbl} ({fields}) VALUES ({placeholders})").format(
			tbl=self._ident_qualified(table),
			fields=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
			placeholders=sql.SQL(", ").join(sql.Placeholder() for _ in values),
		)
		return Statement(query, tuple(values))

	def insert_timed_sequence(self, meta: TableMetadata, tp: datetime, values: Iterable[Any]) -> Statement:
		return self._insert(meta, [tp, *values])

	def insert_mappings(self, table: str, *mappings: Mapping[str, Any]) -> Statement:
		merged = merge_mappings(*mappings)
		return self._compose(table, list(merged), list(merged.values()))

	def _insert(self, meta: TableMetadata, tokens: list[Any]) -> Statement:
		return self._compose(meta.qualified_name, columns_for_insert(meta), tokens)
