# duckview/conftest.py
"""
Pytest conftest shared by every duckview test package.

Provides parquet fixtures written by DuckDB itself, an isolated engine
settings object and a provisioner that is shut down after each test.
"""

from __future__ import annotations

import dataclasses
import logging

import duckdb
import pytest

from duckview.config.defaults import default
from duckview.engine.provisioner import EngineProvisioner


def write_parquet(path, n_rows: int) -> str:
    """Write an `n_rows` x 3 parquet file (frame_index, frame_time, label)."""
    con = duckdb.connect()
    try:
        con.execute(
            "COPY (SELECT i AS frame_index, i * 0.5 AS frame_time, 'ep_' || i AS label "
            f"FROM range({int(n_rows)}) t(i)) TO '{path}' (FORMAT PARQUET)"
        )
    finally:
        con.close()
    return str(path)


@pytest.fixture(autouse=True, scope="session")
def _suppress_test_log_noise():
    """
    Silence duckview logging during tests.

    Error-path tests (failed loads, bad queries, close failures) log at ERROR
    on purpose.
    """
    logging.getLogger("duckview").setLevel(logging.CRITICAL)
    yield
    logging.getLogger("duckview").setLevel(logging.NOTSET)


@pytest.fixture()
def settings(tmp_path):
    return dataclasses.replace(
        default,
        TEMP_DIR=str(tmp_path / "spill"),
        DUCKDB_THREADS=2,
        DUCKDB_MEMORY_LIMIT="1GB",
        WORKERS=2,
    )


@pytest.fixture()
def provisioner(settings):
    p = EngineProvisioner(settings=settings)
    yield p
    p.close()


@pytest.fixture()
def episode_42(tmp_path):
    return write_parquet(tmp_path / "episode_000042.parquet", 42)


@pytest.fixture()
def episode_7(tmp_path):
    return write_parquet(tmp_path / "episode_000007.parquet", 7)


@pytest.fixture()
def broken_parquet(tmp_path):
    path = tmp_path / "broken.parquet"
    path.write_bytes(b"this is not a parquet file")
    return str(path)
