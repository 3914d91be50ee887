"""
Startup configuration for DatabaseWorker and the snapshot document it exports.

Document layout (YAML or JSON):

	connection:            # flattened to "k=v k=v ..." for libpq
	  host: localhost
	  dbname: metrics
	tables:                # tables introspected at startup
	  - public.events
	field_length_mapping:  # optional display widths per type name
	  text: 20
	tables_details:        # written by snapshots; seeds the schema cache when present
	  public.events: {schema: public, table: events, columns: {...}, primary_key: id}
"""
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from pgworker.errors import ConfigLoadError, SnapshotError
from pgworker.schema_cache import SchemaCache

logger = logging.getLogger(__name__)

KNOWN_KEYS = ("connection", "tables", "field_length_mapping", "tables_details")
JSON_SUFFIXES = {".json"}


def _is_json(path: Path) -> bool:
	return path.suffix.lower() in JSON_SUFFIXES


@dataclass(frozen=True)
class WorkerConfig:
	connection: dict[str, str] = field(default_factory=dict)
	tables: tuple[str, ...] = ()
	field_length_mapping: dict[str, int] = field(default_factory=dict)
	tables_details: dict[str, dict] = field(default_factory=dict)
	extra: dict[str, Any] = field(default_factory=dict)
	source: str | None = None

	@classmethod
	def from_mapping(cls, data: Any, source: str | None = None) -> "WorkerConfig":
		label = source or "<mapping>"
		if data is None:
			data = {}
		if not isinstance(data, Mapping):
			raise ConfigLoadError(f"Configuration {label} must be a mapping at the top level.")

		connection = data.get("connection") or {}
		if not isinstance(connection, Mapping):
			raise ConfigLoadError(f"'connection' in {label} must be a mapping.")

		tables = data.get("tables") or []
		if isinstance(tables, str) or not isinstance(tables, (list, tuple)):
			raise ConfigLoadError(f"'tables' in {label} must be a list of qualified table names.")

		widths = data.get("field_length_mapping") or {}
		if not isinstance(widths, Mapping):
			raise ConfigLoadError(f"'field_length_mapping' in {label} must be a mapping.")
		try:
			widths = {str(k): int(v) for k, v in widths.items()}
		except (TypeError, ValueError) as exc:
			raise ConfigLoadError(f"'field_length_mapping' in {label} must map type names to integers.") from exc

		details = data.get("tables_details") or {}
		if not isinstance(details, Mapping) or not all(isinstance(v, Mapping) or v is None for v in details.values()):
			raise ConfigLoadError(f"'tables_details' in {label} must map table names to mappings.")

		return cls(
			connection={str(k): str(v) for k, v in connection.items()},
			tables=tuple(str(t) for t in tables),
			field_length_mapping=widths,
			tables_details={str(k): dict(v or {}) for k, v in details.items()},
			extra={k: copy.deepcopy(v) for k, v in data.items() if k not in KNOWN_KEYS},
			source=source,
		)

	@classmethod
	def load(cls, path: str | Path) -> "WorkerConfig":
		config_path = Path(path)
		if not config_path.is_file():
			raise ConfigLoadError(f"Config file not found: {config_path}")
		try:
			text = config_path.read_text(encoding="utf-8")
			data = json.loads(text) if _is_json(config_path) else yaml.safe_load(text)
		except (OSError, ValueError, yaml.YAMLError) as exc:
			raise ConfigLoadError(f"Failed to parse config: {config_path}") from exc
		logger.debug("Loaded configuration from %s", config_path)
		return cls.from_mapping(data, source=str(config_path))

	def seed_cache(self) -> SchemaCache:
		"""
		Fresh schema cache holding the configured tables and any pre-warmed details.
		"""
		cache = SchemaCache(self.tables)
		try:
			cache.load(self.tables_details)
		except (AttributeError, TypeError, ValueError) as exc:
			raise ConfigLoadError(f"Invalid 'tables_details' in {self.source or '<mapping>'}: {exc}") from exc
		return cache

	def export(self, cache: SchemaCache) -> dict[str, Any]:
		"""
		Configuration merged with the discovered schema, in the document layout above.
		"""
		document: dict[str, Any] = {
			"connection": dict(self.connection),
			"tables": cache.known_tables,
		}
		if self.field_length_mapping:
			document["field_length_mapping"] = dict(self.field_length_mapping)
		document.update(copy.deepcopy(self.extra))
		details = {name: data for name, data in self.tables_details.items() if data.get("columns")}
		details.update(cache.to_dict())
		document["tables_details"] = details
		return document


def write_snapshot(path: str | Path, document: Mapping[str, Any]) -> Path:
	"""
	Serialize `document` as JSON or YAML, chosen by the suffix of `path`.

	Raises SnapshotError when the document holds values the format cannot represent.
	"""
	out = Path(path)
	try:
		if _is_json(out):
			text = json.dumps(document, indent=2) + "\n"
		else:
			text = yaml.safe_dump(dict(document), default_flow_style=False, sort_keys=False)
	except (TypeError, ValueError, yaml.YAMLError) as exc:
		raise SnapshotError(f"Could not serialize snapshot for {out}: {exc}") from exc
	if out.parent and not out.parent.exists():
		out.parent.mkdir(parents=True, exist_ok=True)
	out.write_text(text, encoding="utf-8")
	logger.info("Wrote schema snapshot to %s", out)
	return out
