# duckview/engine/provisioner.py

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import duckdb

from duckview.config.defaults import default, logger
from duckview.errors import EngineInitError
from duckview.engine.engine import Engine, EngineBundle, select_bundle
from duckview.engine.engine_common import init_connection


UNINITIALIZED = "uninitialized"
INITIALIZING = "initializing"
READY = "ready"
FAILED = "failed"


class EngineProvisioner:
    """
    Creates the Engine once and hands out the same instance afterwards.

    Obtain one provisioner at application startup and pass it to whatever
    needs an engine. Concurrent first calls share a single in-flight
    initialization and see the same instance or the same failure. A failed
    initialization leaves nothing cached, so the next call retries.
    """

    def __init__(
            self,
            settings=default,
            bundle_selector: Callable[..., EngineBundle] = select_bundle,
            worker_factory: Optional[Callable[[EngineBundle], ThreadPoolExecutor]] = None,
    ):
        self.settings = settings
        self._bundle_selector = bundle_selector
        self._worker_factory = worker_factory or _default_worker
        self._engine: Optional[Engine] = None
        self._pending: Optional[asyncio.Future] = None
        self._last_error: Optional[EngineInitError] = None
        self.instantiations = 0

    @property
    def engine(self) -> Optional[Engine]:
        """The cached engine, or None before the first successful call."""
        return self._engine

    @property
    def state(self) -> str:
        """One of uninitialized, initializing, ready, failed."""
        if self._engine is not None:
            return READY
        if self._pending is not None and not self._pending.done():
            return INITIALIZING
        if self._last_error is not None:
            return FAILED
        return UNINITIALIZED

    async def get_engine(self) -> Engine:
        if self._engine is not None:
            return self._engine

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._initialize())
            self._pending.add_done_callback(self._init_done)

        # shield: one cancelled waiter must not cancel the shared init
        return await asyncio.shield(self._pending)

    def _init_done(self, future: asyncio.Future) -> None:
        if self._pending is future:
            self._pending = None
        if not future.cancelled() and future.exception() is not None:
            self._last_error = future.exception()

    async def _initialize(self) -> Engine:
        self.instantiations += 1
        self._last_error = None
        stage = "bundle selection"
        worker: Optional[ThreadPoolExecutor] = None
        try:
            bundle = self._bundle_selector(self.settings)

            stage = "worker creation"
            worker = self._worker_factory(bundle)

            stage = "instantiation"
            engine = Engine(bundle, worker)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(worker, engine.instantiate, _bootstrap_for(bundle))
        except Exception as e:
            logger.error(f"[duckview.engine] Failed to initialize engine during {stage}: {e}")
            if worker is not None:
                worker.shutdown(wait=False)
            raise EngineInitError(f"Failed to initialize engine during {stage}: {e}", cause=e) from e

        self._engine = engine
        return engine

    def close(self) -> None:
        """Shut the cached engine down (process exit, tests)."""
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.shutdown()


def _default_worker(bundle: EngineBundle) -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=bundle.workers, thread_name_prefix="duckview-engine")


def _bootstrap_for(bundle: EngineBundle) -> Callable[[duckdb.DuckDBPyConnection], None]:
    def bootstrap(con: duckdb.DuckDBPyConnection) -> None:
        init_connection(
            con,
            temp_dir=bundle.temp_dir,
            memory_limit=bundle.memory_limit,
            threads=bundle.threads,
        )
    return bootstrap
