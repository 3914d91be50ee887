from dataclasses import dataclass
from typing import Any, Optional


class WorkerError(Exception):
	"""
	Base class for every failure raised by pgworker.
	"""
	kind = "WorkerError"


class ConfigLoadError(WorkerError):
	kind = "ConfigLoadError"


class SnapshotError(WorkerError):
	"""
	The snapshot document could not be serialized.
	"""
	kind = "SnapshotError"


class DBConnectionError(WorkerError):
	"""
	The database connection could not be opened or was lost.
	"""
	kind = "ConnectionError"


class IntrospectionError(WorkerError):
	kind = "IntrospectionError"


class QueryError(WorkerError):
	kind = "QueryError"


class CardinalityError(QueryError):
	"""
	A single-row statement produced zero or several rows.
	"""
	kind = "CardinalityError"

	def __init__(self, rowcount: int):
		super().__init__(f"Expected exactly one row, got {rowcount}.")
		self.rowcount = rowcount


@dataclass(frozen=True)
class Outcome:
	"""
	Explicit result of a best-effort operation: either a value or the error that prevented it.
	"""
	value: Any = None
	error: Optional[WorkerError] = None

	@property
	def ok(self) -> bool:
		return self.error is None

	@property
	def error_kind(self) -> str | None:
		return self.error.kind if self.error is not None else None

	def unwrap(self) -> Any:
		if self.error is not None:
			raise self.error
		return self.value
