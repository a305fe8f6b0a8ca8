# duckview/engine/tests/conftest.py
"""Fixtures local to the engine tests."""

from __future__ import annotations

import duckdb
import pytest


@pytest.fixture()
def duckdb_con():
    """Provide a real in-memory DuckDB connection, closed after each test."""
    con = duckdb.connect()
    yield con
    try:
        con.close()
    except duckdb.Error:
        pass
