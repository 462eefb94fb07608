"""osqt command line: export table schemas and query them through a virtual database."""

from __future__ import annotations

import json
import sys

import click

from osqt.core.config import VERSION
from osqt.core.logging import configure_logging, get_logger
from osqt.specs.__main__ import load_parser, run_export_on_path
from osqt.specs.errors import SpecError
from osqt.specs.platforms import OS_APPLICABLE_NAMESPACES, default_target_os
from osqt.virtual.database import build_database

_target_os_option = click.option(
    "--target-os",
    default=default_target_os,
    show_default="current platform",
    envvar="OSQT_TARGET_OS",
    type=click.Choice(sorted(OS_APPLICABLE_NAMESPACES)),
    help="Runtime to target for the table set (which namespaces and extended schemas to use).",
)
_specs_dir_option = click.option(
    "--specs-dir",
    envvar="OSQT_SPECS_DIR",
    type=click.Path(file_okay=False, dir_okay=True),
    help="Directory of .table spec files (e.g. osquery's specs/).",
)
_schema_option = click.option(
    "--schema",
    "schema_path",
    envvar="OSQT_SCHEMA_PATH",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a previously exported JSON or YAML schema file.",
)


def _fail(err: SpecError) -> click.ClickException:
    return click.ClickException(str(err))


@click.group()
@click.version_option(VERSION, prog_name="osqt")
@click.option("--log-level", envvar="OSQT_LOG_LEVEL", default="INFO", show_default=True, help="DEBUG|INFO|WARNING|ERROR")
@click.option("--log-json", is_flag=True, envvar="OSQT_LOG_JSON", help="Emit NDJSON log lines on stderr.")
def main(log_level: str, log_json: bool) -> None:
    """Extract structured table definitions from spec files."""
    configure_logging(level=log_level, json_mode=log_json)


# ---- export ------------------------------------------------------------------


@main.group()
def export() -> None:
    """Export extracted schemas."""


@export.command("schema")
@click.option("--specs-dir", required=True, envvar="OSQT_SPECS_DIR", type=click.Path(file_okay=False, dir_okay=True), help="Directory of .table spec files (required).")
@click.option("--output-file", envvar="OSQT_OUTPUT_FILE", type=click.Path(dir_okay=False), help="Path to write the generated schema file (STDOUT if empty).")
@click.option("--output-format", default="json", show_default=True, envvar="OSQT_OUTPUT_FORMAT", type=click.Choice(["json", "yaml"]), help="Format to write the generated schema in.")
def export_schema(specs_dir: str, output_file: str, output_format: str) -> None:
    """Export a structured JSON or YAML file containing the schema of every table."""
    try:
        summary = run_export_on_path(specs_dir, out_path=output_file or None, fmt=output_format)
    except SpecError as e:
        raise _fail(e) from e

    if not output_file:
        click.echo(summary["document"])


# ---- run ---------------------------------------------------------------------


@main.group()
def run() -> None:
    """Serve the extracted tables through an in-memory SQL engine."""


@run.command("query")
@_specs_dir_option
@_schema_option
@_target_os_option
@click.option("--format", "out_format", default="table", show_default=True, type=click.Choice(["table", "json"]), help="Output rendering.")
@click.argument("sql")
def run_query(specs_dir: str, schema_path: str, target_os: str, out_format: str, sql: str) -> None:
    """Run SQL against the (empty) tables applicable to TARGET_OS."""
    if not specs_dir and not schema_path:
        raise click.UsageError("--schema PATH or --specs-dir PATH is required")
    try:
        parser = load_parser(specs_dir=specs_dir or None, schema_path=schema_path or None)
        db = build_database(parser, target_os, logger=get_logger("db"))
        try:
            frame = db.query(sql)
        finally:
            db.close()
    except SpecError as e:
        raise _fail(e) from e
    except Exception as e:  # duckdb binder / parser errors surface as CLI errors
        raise click.ClickException(f"query failed: {e}") from e

    if out_format == "json":
        click.echo(frame.to_json(orient="records"))
    else:
        click.echo(frame.to_string(index=False))


# ---- generate ----------------------------------------------------------------


@main.group()
def generate() -> None:
    """Generate artefacts derived from the table schemas."""


@generate.command("result-schema")
@click.option("--query", "query", required=True, envvar="OSQT_INPUT_QUERY", help="Query whose result columns should be described.")
@_specs_dir_option
@_schema_option
@_target_os_option
def generate_result_schema(query: str, specs_dir: str, schema_path: str, target_os: str) -> None:
    """Create a structured column descriptor for the result of QUERY."""
    if not specs_dir and not schema_path:
        raise click.UsageError("--schema PATH or --specs-dir PATH is required")
    try:
        parser = load_parser(specs_dir=specs_dir or None, schema_path=schema_path or None)
        db = build_database(parser, target_os, logger=get_logger("db"))
        try:
            columns = db.describe(query)
        finally:
            db.close()
    except SpecError as e:
        raise _fail(e) from e
    except Exception as e:
        raise click.ClickException(f"could not describe query: {e}") from e

    click.echo(json.dumps({"query": query, "target_os": target_os, "columns": columns}, indent=2))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
