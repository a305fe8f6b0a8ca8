# duckview/engine/tests/test_provisioner.py
"""
Tests for EngineProvisioner: once-only initialization, shared in-flight
initialization, failure wrapping and retry after failure.
"""

from __future__ import annotations

import asyncio
import time
from unittest.mock import patch

import pytest

from duckview.engine.engine import Engine, select_bundle
from duckview.engine.provisioner import EngineProvisioner
from duckview.errors import EngineInitError


class TestGetEngine:

    @pytest.mark.asyncio
    async def test_first_call_creates_engine(self, provisioner):
        assert provisioner.engine is None
        engine = await provisioner.get_engine()
        assert isinstance(engine, Engine)
        assert engine.ready
        assert provisioner.engine is engine

    @pytest.mark.asyncio
    async def test_subsequent_calls_return_cached(self, provisioner):
        first = await provisioner.get_engine()
        second = await provisioner.get_engine()
        assert first is second
        assert provisioner.instantiations == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_initialization(self, provisioner):
        engines = await asyncio.gather(*(provisioner.get_engine() for _ in range(8)))
        assert all(e is engines[0] for e in engines)
        assert provisioner.instantiations == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_after_init(self, provisioner):
        first = await provisioner.get_engine()
        engines = await asyncio.gather(*(provisioner.get_engine() for _ in range(8)))
        assert all(e is first for e in engines)
        assert provisioner.instantiations == 1

    @pytest.mark.asyncio
    async def test_bundle_applied(self, provisioner, settings):
        engine = await provisioner.get_engine()
        conn = await engine.connect()
        try:
            rows = await conn.execute("SELECT current_setting('threads') AS threads")
            assert int(rows[0]["threads"]) == settings.DUCKDB_THREADS
        finally:
            await conn.close()


class TestInitFailure:

    @pytest.mark.asyncio
    async def test_bundle_selection_failure(self, settings):
        def broken(_settings):
            raise RuntimeError("no bundle")

        p = EngineProvisioner(settings=settings, bundle_selector=broken)
        with pytest.raises(EngineInitError) as ei:
            await p.get_engine()
        assert "bundle selection" in str(ei.value)
        assert isinstance(ei.value.cause, RuntimeError)
        assert isinstance(ei.value.__cause__, RuntimeError)
        assert p.engine is None

    @pytest.mark.asyncio
    async def test_worker_creation_failure(self, settings):
        def broken(_bundle):
            raise OSError("cannot start threads")

        p = EngineProvisioner(settings=settings, worker_factory=broken)
        with pytest.raises(EngineInitError) as ei:
            await p.get_engine()
        assert "worker creation" in str(ei.value)
        assert p.engine is None

    @pytest.mark.asyncio
    async def test_instantiation_failure(self, settings):
        p = EngineProvisioner(settings=settings)
        with patch.object(Engine, "instantiate", side_effect=RuntimeError("boom")):
            with pytest.raises(EngineInitError) as ei:
                await p.get_engine()
        assert "instantiation" in str(ei.value)
        assert "boom" in str(ei.value)
        assert p.engine is None

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, settings):
        calls = {"n": 0}

        def flaky(s):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("transient")
            return select_bundle(s)

        p = EngineProvisioner(settings=settings, bundle_selector=flaky)
        try:
            with pytest.raises(EngineInitError):
                await p.get_engine()
            engine = await p.get_engine()
            assert engine.ready
            assert p.instantiations == 2
        finally:
            p.close()

    @pytest.mark.asyncio
    async def test_concurrent_callers_see_same_failure(self, settings):
        def broken(_settings):
            raise RuntimeError("no bundle")

        p = EngineProvisioner(settings=settings, bundle_selector=broken)
        results = await asyncio.gather(*(p.get_engine() for _ in range(5)), return_exceptions=True)
        assert all(isinstance(r, EngineInitError) for r in results)
        assert p.instantiations == 1
        assert p.engine is None


class TestClose:

    @pytest.mark.asyncio
    async def test_close_resets(self, settings):
        p = EngineProvisioner(settings=settings)
        engine = await p.get_engine()
        p.close()
        assert p.engine is None
        assert not engine.ready
        p.close()


class TestState:

    @pytest.mark.asyncio
    async def test_uninitialized_then_ready(self, provisioner):
        assert provisioner.state == "uninitialized"
        await provisioner.get_engine()
        assert provisioner.state == "ready"

    @pytest.mark.asyncio
    async def test_initializing_while_in_flight(self, settings):
        p = EngineProvisioner(settings=settings)
        try:
            task = asyncio.ensure_future(p.get_engine())
            await asyncio.sleep(0)
            assert p.state == "initializing"
            await task
            assert p.state == "ready"
        finally:
            p.close()

    @pytest.mark.asyncio
    async def test_failed_after_error(self, settings):
        def broken(_settings):
            raise RuntimeError("no bundle")

        p = EngineProvisioner(settings=settings, bundle_selector=broken)
        with pytest.raises(EngineInitError):
            await p.get_engine()
        assert p.state == "failed"


class TestCancelledWaiter:

    @pytest.mark.asyncio
    async def test_failure_after_sole_waiter_cancelled_is_not_cached(self, settings):
        def slow_failure(self, bootstrap):
            time.sleep(0.05)
            raise RuntimeError("late failure")

        p = EngineProvisioner(settings=settings)
        try:
            with patch.object(Engine, "instantiate", slow_failure):
                waiter = asyncio.ensure_future(p.get_engine())
                await asyncio.sleep(0)
                waiter.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await waiter

                for _ in range(200):
                    if p.state != "initializing":
                        break
                    await asyncio.sleep(0.01)

                assert p.state == "failed"
                assert p.engine is None

            engine = await p.get_engine()
            assert engine.ready
            assert p.instantiations == 2
            assert p.state == "ready"
        finally:
            p.close()
