import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

logger = logging.getLogger(__name__)

NO_PRIMARY_KEY = "_none_"


def split_qualified_name(qualified_name: str) -> tuple[str, str]:
	"""
	Split 'schema.table' on the first dot.

	A name without a dot yields ('', name). Anything after a second dot is dropped,
	so 'a.b.c' yields ('a', 'b').
	"""
	parts = str(qualified_name).split(".")
	if len(parts) == 1:
		return "", parts[0]
	return parts[0], parts[1]


@dataclass
class TableMetadata:
	"""
	Cached schema of one table: ordered column -> type name mapping and primary key.
	"""
	qualified_name: str
	schema: str
	table: str
	columns: dict[str, str] = field(default_factory=dict)
	primary_key: str = NO_PRIMARY_KEY

	@property
	def has_primary_key(self) -> bool:
		return self.primary_key != NO_PRIMARY_KEY

	def to_dict(self) -> dict[str, Any]:
		return {
			"schema": self.schema,
			"table": self.table,
			"columns": dict(self.columns),
			"primary_key": self.primary_key,
		}

	@classmethod
	def from_dict(cls, qualified_name: str, data: Mapping[str, Any]) -> "TableMetadata":
		schema, table = split_qualified_name(qualified_name)
		columns = data.get("columns") or {}
		if not isinstance(columns, Mapping):
			raise ValueError(f"columns of '{qualified_name}' must be a mapping.")
		return cls(
			qualified_name=qualified_name,
			schema=str(data.get("schema", schema) or ""),
			table=str(data.get("table", table) or ""),
			columns={str(k): str(v) for k, v in columns.items()},
			primary_key=str(data.get("primary_key") or NO_PRIMARY_KEY),
		)


class SchemaCache:
	"""
	Per-table metadata keyed by qualified name, plus the ordered list of known tables.

	The cache only grows: entries are added or replaced, never removed.
	"""

	def __init__(self, tables: Iterable[str] = ()):
		self._entries: dict[str, TableMetadata] = {}
		self._known: list[str] = []
		for name in tables:
			self.add_known(name)

	def __contains__(self, qualified_name: object) -> bool:
		return qualified_name in self._entries

	def __len__(self) -> int:
		return len(self._entries)

	def __iter__(self) -> Iterator[TableMetadata]:
		return iter(list(self._entries.values()))

	@property
	def known_tables(self) -> list[str]:
		return list(self._known)

	def add_known(self, qualified_name: str) -> bool:
		"""
		Append a table name to the known list; returns False when it was already there.
		"""
		if qualified_name in self._known:
			return False
		self._known.append(qualified_name)
		return True

	def get(self, qualified_name: str) -> TableMetadata | None:
		return self._entries.get(qualified_name)

	def require(self, qualified_name: str) -> TableMetadata:
		meta = self._entries.get(qualified_name)
		if meta is None:
			raise KeyError(f"Table '{qualified_name}' is not in the schema cache.")
		return meta

	def store(self, meta: TableMetadata) -> None:
		self.add_known(meta.qualified_name)
		if meta.qualified_name not in self._entries:
			logger.info("Cached schema for %s (%d columns)", meta.qualified_name, len(meta.columns))
		self._entries[meta.qualified_name] = meta

	def to_dict(self) -> dict[str, dict[str, Any]]:
		return {name: self._entries[name].to_dict() for name in self._known if name in self._entries}

	def load(self, details: Mapping[str, Mapping[str, Any] | None]) -> None:
		"""
		Seed entries from a previously exported `tables_details` mapping.

		Entries without columns are skipped so those tables get introspected on first use.
		"""
		for name, data in details.items():
			meta = TableMetadata.from_dict(str(name), data or {})
			if not meta.columns:
				logger.warning("Ignoring cached schema for %s: no columns", name)
				continue
			self.store(meta)
