"""Exception types raised by the engine's store and pipeline layers.

Blueprints translate these into JSON error responses (see app.py).
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for expected, user-facing engine failures."""

    status_code = 400


class ValidationError(EngineError):
    status_code = 400


class PermissionDenied(EngineError):
    status_code = 403


class NotFound(EngineError):
    status_code = 404


class InvalidTransition(EngineError):
    """A submission status change that the lifecycle does not allow."""

    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move submission from '{current}' to '{requested}'")
