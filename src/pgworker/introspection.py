import logging
from typing import Callable

from pgworker.connection import ResultSet
from pgworker.errors import WorkerError
from pgworker.schema_cache import NO_PRIMARY_KEY, SchemaCache, TableMetadata, split_qualified_name
from pgworker.type_names import TypeNameResolver

logger = logging.getLogger(__name__)

PRIMARY_KEY_QUERY = """
	SELECT c.column_name, c.data_type
	FROM information_schema.table_constraints tc
	JOIN information_schema.constraint_column_usage AS ccu USING (constraint_schema, constraint_name)
	JOIN information_schema.columns AS c
		ON c.table_schema = %s
		AND tc.table_name = %s
		AND ccu.column_name = c.column_name
	WHERE constraint_type = 'PRIMARY KEY';
"""


class Introspector:
	"""
	Discover table schemas from the live catalogs and keep them in a SchemaCache.

	Failures never propagate: they are logged and the table stays out of the cache
	(or keeps its previous entry), so the next access retries from scratch.
	"""

	def __init__(
		self,
		execute: Callable[..., ResultSet],
		cache: SchemaCache,
		resolver: TypeNameResolver,
	):
		self._execute = execute
		self.cache = cache
		self.resolver = resolver

	def ensure_known(self, table: str) -> None:
		"""
		Make sure `table` has cached metadata.

		Known tables return immediately. An unknown table is appended to the known
		list and every known table is introspected again.
		"""
		if table in self.cache:
			return
		self.cache.add_known(table)
		logger.debug("Unknown table %s, rescanning %d tables", table, len(self.cache.known_tables))
		self.introspect_all()

	def introspect_all(self) -> None:
		for table in self.cache.known_tables:
			self.introspect(table)

	def introspect(self, table: str) -> bool:
		"""
		Introspect one table; returns True when its metadata was stored.
		"""
		try:
			meta = self._describe(table)
		except WorkerError:
			logger.exception("Introspection of %s failed", table)
			return False
		self.cache.store(meta)
		return True

	def _describe(self, table: str) -> TableMetadata:
		schema, bare_name = split_qualified_name(table)

		probe = self._execute(f"SELECT * FROM {table} LIMIT 0")
		columns: dict[str, str] = {}
		for col in probe.columns:
			columns[col.name] = self.resolver.resolve(col.type_oid)

		pk_rows = self._execute(PRIMARY_KEY_QUERY, [schema, bare_name])
		primary_key = str(pk_rows.rows[0][0]) if pk_rows else NO_PRIMARY_KEY

		return TableMetadata(
			qualified_name=table,
			schema=schema,
			table=bare_name,
			columns=columns,
			primary_key=primary_key,
		)
