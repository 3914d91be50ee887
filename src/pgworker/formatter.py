from typing import Any, Callable, Mapping, Sequence

from pgworker.connection import ColumnDescriptor, ResultSet
from pgworker.utils import truncate

DEFAULT_FIELD_WIDTH = 10
SEPARATOR = " |"


class ResultFormatter:
	"""
	Render a ResultSet as fixed-width text columns.

	Column width is max(len(column name), configured width for its type), where the
	configured width comes from `field_length_mapping` and defaults to 10.
	Values longer than the width are cut. The first row is preceded by a header line.
	"""

	def __init__(
		self,
		type_name: Callable[[int], str],
		field_length_mapping: Mapping[str, int] | None = None,
		default_width: int = DEFAULT_FIELD_WIDTH,
	):
		self._type_name = type_name
		self.field_length_mapping = dict(field_length_mapping or {})
		self.default_width = default_width

	def column_width(self, column: ColumnDescriptor) -> int:
		type_name = self._type_name(column.type_oid)
		width = int(self.field_length_mapping.get(type_name, self.default_width))
		return max(len(column.name), width)

	@staticmethod
	def _cell(value: Any, width: int) -> str:
		text = "" if value is None else value
		return truncate(text, width).ljust(width) + SEPARATOR

	def format_row(self, row: Sequence[Any], columns: Sequence[ColumnDescriptor], header: bool = False) -> str:
		widths = [self.column_width(c) for c in columns]
		line = "".join(self._cell(v, w) for v, w in zip(row, widths))
		if not header:
			return line
		head = "".join(self._cell(c.name, w) for c, w in zip(columns, widths))
		return head + "\n" + line

	def format(self, result: ResultSet) -> str:
		lines = [
			self.format_row(row, result.columns, header=(i == 0)) + "\n"
			for i, row in enumerate(result.rows)
		]
		return "".join(lines)
