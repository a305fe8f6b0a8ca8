# duckview/session.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from duckview.config.defaults import default, logger
from duckview.engine.engine import Connection, Engine, Row
from duckview.engine.engine_common import (
    count_statement,
    materialize_statement,
    quote_if_needed,
    registration_key,
)
from duckview.engine.provisioner import EngineProvisioner
from duckview.errors import DuckViewError, LoadError, QueryError, ValidationError


LOAD_SUCCESS_MESSAGE = "Parquet file loaded successfully"
PREVIEW_ROWS = 100


@dataclass
class LoadResult:
    table_name: str
    row_count: int
    engine: Engine
    connection: Connection
    message: str = LOAD_SUCCESS_MESSAGE


@dataclass
class ResultPreview:
    """First `limit` rows of a result set plus its true size."""
    columns: List[str]
    rows: List[Row]
    total_rows: int

    @property
    def truncated(self) -> bool:
        return self.total_rows > len(self.rows)


def preview(rows: List[Row], limit: int = PREVIEW_ROWS) -> ResultPreview:
    columns = list(rows[0].keys()) if rows else []
    return ResultPreview(columns=columns, rows=rows[:max(0, limit)], total_rows=len(rows))


def sample_queries(table_name: str) -> List[str]:
    """Canned queries offered once a table is loaded."""
    ident = quote_if_needed(table_name)
    literal = table_name.replace("'", "''")
    return [
        f"SELECT * FROM {ident} LIMIT 10",
        f"SELECT COUNT(*) as total_rows FROM {ident}",
        f"SELECT column_name, data_type FROM information_schema.columns WHERE table_name = '{literal}'",
    ]


class DatasetSessionManager:
    """
    Loads remote parquet files into named tables and runs queries against them.

    Every load opens its own connection and hands ownership of it to the
    caller. Table names are global to the engine catalog.
    """

    def __init__(self, provisioner: EngineProvisioner):
        self.provisioner = provisioner

    async def load_remote_table(self, url: str, table_name: str = default.DEFAULT_TABLE) -> LoadResult:
        if not url or not url.strip():
            raise ValidationError("URL is required")
        if not table_name or not table_name.strip():
            raise ValidationError("Table name is required")
        table_name = table_name.strip()

        engine = await self.provisioner.get_engine()

        connection: Optional[Connection] = None
        stage = "connect"
        try:
            connection = await engine.connect()

            stage = "register"
            key = registration_key(table_name)
            await engine.register_file_url(key, url)

            stage = "materialize"
            await connection.execute(materialize_statement(table_name, key))

            stage = "count"
            rows = await connection.execute(count_statement(table_name))
        except Exception as e:
            logger.error(f"[duckview.session] Error loading parquet ({stage}): {e}")
            if connection is not None:
                try:
                    await connection.close()
                except Exception as close_error:
                    logger.error(f"[duckview.session] Error closing connection: {close_error}")
            raise LoadError(
                f"Failed to load parquet file: {stage} failed: {e}", stage=stage, cause=e
            ) from e

        row_count = int(rows[0].get("row_count") or 0) if rows else 0
        logger.info(f"[duckview.session] loaded {row_count} rows into '{table_name}' from {url}")
        return LoadResult(
            table_name=table_name,
            row_count=row_count,
            engine=engine,
            connection=connection,
        )

    async def query(self, connection: Connection, sql: str) -> List[Row]:
        """Execute `sql` verbatim. Failures leave the connection open."""
        try:
            return await connection.execute(sql)
        except Exception as e:
            logger.error(f"[duckview.session] Query error: {e}")
            raise QueryError(f"Query failed: {e}", cause=e) from e

    async def close(self, connection: Connection) -> None:
        """Release `connection`. A failed close is logged and reported as DuckViewError;
        callers treat it as non-fatal and clear their own state regardless."""
        try:
            await connection.close()
        except Exception as e:
            logger.error(f"[duckview.session] Error closing connection: {e}")
            raise DuckViewError(f"Failed to close connection: {e}", cause=e) from e


@dataclass
class DatasetSession:
    """
    Caller-side state for one loaded dataset.

    A failed load keeps whatever was there before. A failed query keeps the
    connection and table. close() always clears the bookkeeping.
    """
    manager: DatasetSessionManager
    table_name: str = ""
    row_count: int = 0
    connection: Optional[Connection] = None
    engine: Optional[Engine] = None
    results: List[Row] = field(default_factory=list)
    error: Optional[str] = None
    success: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.connection is not None

    async def load(self, url: str, table_name: str = "episode") -> LoadResult:
        self.error = None
        self.success = None
        try:
            result = await self.manager.load_remote_table(url, table_name)
        except DuckViewError as e:
            self.error = e.message
            raise

        previous = self.connection
        self.connection = result.connection
        self.engine = result.engine
        self.table_name = result.table_name
        self.row_count = result.row_count
        self.success = result.message
        if previous is not None and previous is not result.connection:
            await self._release(previous)
        return result

    async def run_query(self, sql: str) -> List[Row]:
        if self.connection is None or not sql or not sql.strip():
            return []

        self.results = []
        try:
            self.results = await self.manager.query(self.connection, sql)
        except QueryError as e:
            self.error = e.message
            raise
        return self.results

    async def close(self) -> None:
        if self.connection is None:
            return
        await self._release(self.connection)
        self.connection = None
        self.engine = None
        self.success = None
        self.row_count = 0
        self.table_name = ""
        self.results = []

    async def _release(self, connection: Connection) -> None:
        try:
            await self.manager.close(connection)
        except DuckViewError as e:
            self.error = e.message

    def summary(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "row_count": self.row_count,
            "open": self.is_open,
            "success": self.success,
            "error": self.error,
        }
