# duckview/errors.py

from __future__ import annotations

from typing import Optional


class DuckViewError(Exception):
    """Base class for every failure surfaced by the session API."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(DuckViewError):
    """Required input missing or blank. Raised before any resource is acquired."""


class EngineInitError(DuckViewError):
    """Bundle selection, worker creation or instantiation failed."""


class LoadError(DuckViewError):
    """Registration, materialization or counting failed during a load.

    The connection opened for the attempt has already been closed when this
    is raised.
    """

    def __init__(self, message: str, stage: str, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.stage = stage


class QueryError(DuckViewError):
    """Statement execution failed. The connection stays usable."""
