# duckview/engine/__init__.py
#
# Engine subpackage.
# Groups the DuckDB engine and its connections, runtime bundle selection,
# the provisioner that creates the engine once, and shared SQL helpers.

from duckview.engine.engine import Connection, Engine, EngineBundle, select_bundle  # noqa: F401
from duckview.engine.provisioner import EngineProvisioner  # noqa: F401

__all__ = [
    "Connection",
    "Engine",
    "EngineBundle",
    "EngineProvisioner",
    "select_bundle",
]
