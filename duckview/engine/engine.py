# duckview/engine/engine.py

from __future__ import annotations

import asyncio
import functools
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import duckdb

from duckview.config.defaults import default, logger
from duckview.engine.engine_common import (
    configure_httpfs,
    is_remote,
    normalize_url,
    rewrite_virtual_files,
)


Row = Dict[str, Any]


# =========================================================
# Runtime bundle
# =========================================================

@dataclass(frozen=True)
class EngineBundle:
    """Runtime parameters the engine is instantiated with."""
    database: str = ":memory:"
    threads: int = 1
    memory_limit: str = "2GB"
    temp_dir: str = ""
    workers: int = 4
    extensions: Tuple[str, ...] = ("httpfs",)
    config: Dict[str, str] = field(default_factory=dict)


def select_bundle(settings=default) -> EngineBundle:
    """Pick the runtime bundle for this host from the process settings."""
    threads = max(1, int(settings.DUCKDB_THREADS))
    return EngineBundle(
        threads=threads,
        memory_limit=settings.DUCKDB_MEMORY_LIMIT,
        temp_dir=settings.TEMP_DIR,
        workers=max(1, int(settings.WORKERS)),
        config={"threads": str(threads)},
    )


# =========================================================
# Connection
# =========================================================

class Connection:
    """One open connection onto an Engine's database.

    Calls on a single connection must be serialized by the caller.
    """

    def __init__(self, engine: "Engine", cursor: duckdb.DuckDBPyConnection, connection_id: int):
        self.engine = engine
        self.connection_id = connection_id
        self._cursor: Optional[duckdb.DuckDBPyConnection] = cursor

    @property
    def closed(self) -> bool:
        return self._cursor is None

    def _cursor_or_raise(self) -> duckdb.DuckDBPyConnection:
        if self._cursor is None:
            raise duckdb.ConnectionException("Connection already closed!")
        return self._cursor

    def _execute_sync(self, sql: str) -> List[Row]:
        cur = self._cursor_or_raise()
        executing = self.engine.resolve_virtual_files(sql)
        logger.debug(f"[duckview.engine] conn={self.connection_id} executing: {executing}")
        cur.execute(executing)
        if cur.description is None:
            return []
        columns = [d[0] for d in cur.description]
        return [dict(zip(columns, values)) for values in cur.fetchall()]

    async def execute(self, sql: str) -> List[Row]:
        """Run one statement and return its rows as column-ordered dicts."""
        return await self.engine.run(self._execute_sync, sql)

    def _close_sync(self) -> None:
        cur = self._cursor_or_raise()
        cur.close()
        self._cursor = None
        logger.debug(f"[duckview.engine] conn={self.connection_id} closed")

    async def close(self) -> None:
        await self.engine.run(self._close_sync)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Connection id={self.connection_id} {state}>"


# =========================================================
# Engine
# =========================================================

class Engine:
    """
    In-process DuckDB database plus the worker pool its blocking calls run on.

    Holds the catalog of remote file registrations (registration key → URL).
    Registrations are last-write-wins. Materialized tables live in the
    database catalog and are shared by every connection.
    """

    def __init__(self, bundle: EngineBundle, worker: ThreadPoolExecutor):
        self.bundle = bundle
        self._worker = worker
        self._database: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._registrations: Dict[str, str] = {}
        self._httpfs_loaded = False
        self._next_connection_id = 0

    # ---------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------

    def instantiate(self, bootstrap: Callable[[duckdb.DuckDBPyConnection], None]) -> None:
        """Open the database and run `bootstrap` on a short-lived connection.

        The bootstrap connection is closed before returning, whether or not
        `bootstrap` succeeds.
        """
        database = duckdb.connect(self.bundle.database, config=dict(self.bundle.config))
        boot = database.cursor()
        try:
            try:
                bootstrap(boot)
            finally:
                boot.close()
        except Exception:
            database.close()
            raise
        self._database = database
        logger.info(
            f"[duckview.engine] instantiated (threads={self.bundle.threads}, "
            f"memory_limit={self.bundle.memory_limit}, workers={self.bundle.workers})"
        )

    @property
    def ready(self) -> bool:
        return self._database is not None

    def _database_or_raise(self) -> duckdb.DuckDBPyConnection:
        if self._database is None:
            raise duckdb.ConnectionException("Engine is not instantiated")
        return self._database

    async def run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking call on the engine worker pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._worker, functools.partial(fn, *args))

    def _connect_sync(self) -> Connection:
        database = self._database_or_raise()
        with self._lock:
            self._next_connection_id += 1
            connection_id = self._next_connection_id
        return Connection(self, database.cursor(), connection_id)

    async def connect(self) -> Connection:
        connection = await self.run(self._connect_sync)
        logger.debug(f"[duckview.engine] conn={connection.connection_id} opened")
        return connection

    def shutdown(self) -> None:
        """Close the database and stop the worker pool. For process exit/tests."""
        with self._lock:
            database, self._database = self._database, None
            self._registrations.clear()
            self._httpfs_loaded = False
        if database is not None:
            try:
                database.close()
            except duckdb.Error as e:
                logger.warning(f"[duckview.engine] error closing database: {e}")
        self._worker.shutdown(wait=True)
        logger.info("[duckview.engine] shut down")

    # ---------------------------------------------------------
    # Remote file registrations
    # ---------------------------------------------------------

    def _ensure_httpfs(self, url: str) -> None:
        """Load httpfs once per engine lifetime, on the first remote URL."""
        if self._httpfs_loaded or not is_remote(url):
            return
        boot = self._database_or_raise().cursor()
        try:
            self._httpfs_loaded = configure_httpfs(boot, [url])
        finally:
            boot.close()
        logger.info("[duckview.engine] httpfs loaded")

    def _register_sync(self, key: str, url: str) -> None:
        url = normalize_url(url)
        with self._lock:
            self._ensure_httpfs(url)
            previous = self._registrations.get(key)
            self._registrations[key] = url
        if previous is not None and previous != url:
            logger.debug(f"[duckview.engine] registration '{key}' superseded: {previous} -> {url}")
        else:
            logger.debug(f"[duckview.engine] registered '{key}' -> {url}")

    async def register_file_url(self, key: str, url: str) -> None:
        """Make `url` readable under the virtual filename `key`."""
        await self.run(self._register_sync, key, url)

    def registered_url(self, key: str) -> Optional[str]:
        with self._lock:
            return self._registrations.get(key)

    def unregister(self, key: str) -> None:
        with self._lock:
            self._registrations.pop(key, None)

    def registrations(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._registrations)

    def resolve_virtual_files(self, sql: str) -> str:
        """Rewrite registered virtual filenames in `sql` to their URLs."""
        return rewrite_virtual_files(sql, self.registrations())
