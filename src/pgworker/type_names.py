import logging
from typing import Callable

from pgworker.errors import CardinalityError, IntrospectionError

logger = logging.getLogger(__name__)

TYPNAME_QUERY = "SELECT t.typname FROM pg_type t WHERE t.oid = %s"


class TypeNameResolver:
	"""
	Resolve PostgreSQL type oids to type names (e.g. 23 -> "int4") through pg_type.

	Lookups are memoized per oid when `memoize` is set; oids are stable for the
	lifetime of a database, so a cached name never goes stale.
	"""

	def __init__(self, execute_one: Callable[..., dict], *, memoize: bool = True):
		self._execute_one = execute_one
		self.memoize = memoize
		self._names: dict[int, str] = {}

	def resolve(self, oid: int) -> str:
		oid = int(oid)
		if self.memoize and oid in self._names:
			return self._names[oid]
		try:
			row = self._execute_one(TYPNAME_QUERY, [oid])
		except CardinalityError as exc:
			raise IntrospectionError(f"Unknown type oid: {oid}") from exc
		name = str(row["typname"])
		if self.memoize:
			self._names[oid] = name
		logger.debug("Resolved type oid %s to %s", oid, name)
		return name

	__call__ = resolve

	def clear(self) -> None:
		self._names.clear()
