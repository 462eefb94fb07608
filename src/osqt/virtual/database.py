# src/osqt/virtual/database.py
from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

import duckdb
import pandas as pd
import pyarrow as pa

from ..core.logging import get_logger
from ..specs.errors import (
    ColumnTypeError,
    DatabaseInitializedError,
    DatabaseNotInitializedError,
    SpecError,
)
from ..specs.parser import Parser
from ..specs.platforms import applicable_namespaces
from ..specs.table import Table

_STAGING_VIEW = "__osqt_staging"


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _dedupe_fields(schema: pa.Schema, log) -> pa.Schema:
    """Keep the first field of each name; the engine rejects duplicate column names."""
    seen = set()
    fields: List[pa.Field] = []
    for f in schema:
        if f.name in seen:
            log.warning("Dropping duplicate column {!r}", f.name)
            continue
        seen.add(f.name)
        fields.append(f)
    return pa.schema(fields, metadata=schema.metadata)


class VirtualDatabase:
    """
    In-memory relational view over extracted table schemas.

    Lifecycle: add_table() any number of times, initialize() once (after which
    the manifest is locked), then query()/describe(). Tables are created empty;
    the point is to plan, validate and describe queries against the schema.
    """

    def __init__(self, name: str = "osquery", parser: Optional[Parser] = None, logger=None) -> None:
        if parser is None:
            raise SpecError("must provide a parser to construct a database from", code="NO_PARSER")
        self.name = name or "osquery"
        self.parser = parser
        self.logger = logger or get_logger(f"vdb.{self.name}")
        self._lock = threading.RLock()
        self._schemas: Dict[str, pa.Schema] = {}
        self._con: Optional[duckdb.DuckDBPyConnection] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ---- manifest ------------------------------------------------------------

    def add_table(self, table: Table, platforms: Iterable[str]) -> None:
        """Record the table's column descriptor for `platforms` (ColumnTypeError on bad types)."""
        with self._lock:
            if self._initialized:
                raise DatabaseInitializedError()
            self._schemas[table.name] = table.to_sql_schema(list(platforms))

    def table_names(self) -> List[str]:
        with self._lock:
            return sorted(self._schemas)

    def schema_of(self, table_name: str) -> Optional[pa.Schema]:
        with self._lock:
            return self._schemas.get(table_name)

    def initialize(self) -> None:
        with self._lock:
            if self._initialized:
                raise DatabaseInitializedError()

            con = duckdb.connect(database=":memory:")
            for tblname, schema in self._schemas.items():
                if len(schema) == 0:
                    self.logger.warning("Table {} has no columns; not created", tblname)
                    continue
                empty = _dedupe_fields(schema, self.logger).empty_table()
                con.register(_STAGING_VIEW, empty)
                try:
                    con.execute(f"CREATE TABLE {_quote_ident(tblname)} AS SELECT * FROM {_STAGING_VIEW}")
                except duckdb.Error as e:
                    con.close()
                    raise SpecError(f"error initializing table {tblname!r}", code="DB_INIT_FAILED", detail=str(e)) from e
                finally:
                    con.unregister(_STAGING_VIEW)

            self._con = con
            self._initialized = True
            self.logger.debug("Initialized database with {} tables", len(self._schemas))

    # ---- serving -------------------------------------------------------------

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if not self._initialized or self._con is None:
            raise DatabaseNotInitializedError()
        return self._con

    def query(self, sql: str) -> pd.DataFrame:
        with self._lock:
            return self._connection().execute(sql).df()

    def describe(self, sql: str) -> List[Dict[str, str]]:
        """Result columns of `sql` as [{"name": ..., "type": ...}] without running it."""
        with self._lock:
            rows = self._connection().execute(f"DESCRIBE {sql}").fetchall()
        return [{"name": str(r[0]), "type": str(r[1])} for r in rows]

    def close(self) -> None:
        with self._lock:
            if self._con is not None:
                self._con.close()
                self._con = None


def build_database(
    parser: Parser,
    target_os: str,
    *,
    name: str = "vosqt",
    logger=None,
) -> VirtualDatabase:
    """
    Register every table applicable to `target_os` (its extended schemas for that
    OS included) and initialize the database.
    """
    db = VirtualDatabase(name, parser, logger)
    log = db.logger
    for nsid in applicable_namespaces(target_os):
        ns = parser.namespaces.get(nsid)
        if ns is None:
            log.warning("Could not locate {} namespace within the parser", nsid)
            continue
        for tblname, table in ns.tables.items():
            try:
                db.add_table(table, [target_os])
            except ColumnTypeError as e:
                log.error("Error adding table {} to the database: {}", tblname, e)
                continue
            log.debug("Added table {} to the database", tblname)

    db.initialize()
    return db
