# duckview/__init__.py
#
# Remote parquet exploration on an in-process DuckDB engine.

from duckview.errors import (  # noqa: F401
    DuckViewError,
    EngineInitError,
    LoadError,
    QueryError,
    ValidationError,
)
from duckview.engine import Connection, Engine, EngineProvisioner  # noqa: F401
from duckview.session import (  # noqa: F401
    DatasetSession,
    DatasetSessionManager,
    LoadResult,
)

__all__ = [
    "Connection",
    "DatasetSession",
    "DatasetSessionManager",
    "DuckViewError",
    "Engine",
    "EngineInitError",
    "EngineProvisioner",
    "LoadError",
    "LoadResult",
    "QueryError",
    "ValidationError",
]
