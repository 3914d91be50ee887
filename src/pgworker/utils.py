from datetime import datetime
from typing import Any, Mapping


def flatten_connection_params(params: Mapping[str, Any]) -> str:
	"""
	Flatten connection parameters to a libpq key=value string, keeping their order.
	"""
	return " ".join(f"{key}={value}" for key, value in params.items())


def truncate(text: Any, width: int) -> str:
	return str(text)[:width]


def iso_8601(tp: datetime) -> str:
	return tp.isoformat()
