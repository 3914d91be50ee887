"""Command line entry point: snapshot schemas and peek at tables."""

import logging
from pathlib import Path
from typing import Optional

import typer

from pgworker.errors import ConfigLoadError
from pgworker.worker import DatabaseWorker

app = typer.Typer(
	name="pgworker",
	help="Schema-aware PostgreSQL helper",
	no_args_is_help=True,
)

CONFIG_OPTION = typer.Option(..., "--config", "-c", envvar="PGWORKER_CONFIG", help="YAML or JSON configuration file")


@app.callback()
def main(
	verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug information"),
) -> None:
	logging.basicConfig(
		level=logging.DEBUG if verbose else logging.WARNING,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)


def _open_worker(config: Path, output: Path | None = None) -> DatabaseWorker:
	try:
		worker = DatabaseWorker(config, output)
	except ConfigLoadError as exc:
		typer.echo(f"Error: {exc}", err=True)
		raise typer.Exit(2)
	if not worker.connected:
		typer.echo("Error: could not connect to the database", err=True)
		raise typer.Exit(1)
	return worker


@app.command()
def snapshot(
	config: Path = CONFIG_OPTION,
	output: Path = typer.Argument(..., help="File the schema snapshot is written to"),
) -> None:
	"""Introspect the configured tables and write config plus schemas to OUTPUT."""
	worker = _open_worker(config)
	try:
		if worker.persist_cache(output) is None:
			typer.echo(f"Error: could not write {output}", err=True)
			raise typer.Exit(1)
		for meta in worker.cache:
			typer.echo(f"{meta.qualified_name}: {len(meta.columns)} column(s)")
		typer.echo(f"Wrote {len(worker.cache)} table(s) to {output}")
	finally:
		worker.close()


@app.command()
def show(
	config: Path = CONFIG_OPTION,
	table: str = typer.Argument(..., help="Qualified table name, e.g. public.events"),
	where: str = typer.Option("", "--where", "-w", help="Raw WHERE condition"),
	limit: int = typer.Option(100, "--limit", "-n", help="Maximum rows"),
	fields: Optional[list[str]] = typer.Option(None, "--field", "-f", help="Column to show (repeatable)"),
) -> None:
	"""Print rows of TABLE as a fixed-width table."""
	worker = _open_worker(config)
	try:
		rows = worker.select(table, fields or None, where, limit)
		if not rows:
			typer.echo("No rows")
			return
		typer.echo(worker.format(rows), nl=False)
	finally:
		worker.close()


@app.command()
def columns(
	config: Path = CONFIG_OPTION,
	table: str = typer.Argument(..., help="Qualified table name, e.g. public.events"),
) -> None:
	"""Print cached columns of TABLE and the column order used by inserts."""
	worker = _open_worker(config)
	try:
		meta = worker.metadata(table)
		if meta is None:
			typer.echo(f"Error: could not introspect {table}", err=True)
			raise typer.Exit(1)
		for name, type_name in meta.columns.items():
			marker = " (primary key)" if meta.has_primary_key and name == meta.primary_key else ""
			typer.echo(f"{name}: {type_name}{marker}")
		typer.echo("insert order: " + ", ".join(worker.columns_for_insert(table)))
	finally:
		worker.close()
