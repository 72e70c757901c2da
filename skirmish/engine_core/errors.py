"""
Engine errors.

Pure engine helpers raise these; the reducer turns them into
ActionResult failures carrying the error code. Nothing raised here
should ever escape to the transport.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for rule-engine failures."""
    error_code = "ENGINE_ERROR"

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


class ValidationError(EngineError):
    """Illegal action: wrong turn, bad target, insufficient resources."""
    error_code = "INVALID_ACTION"


class DataIntegrityError(EngineError):
    """Missing static data or a missing transient session."""
    error_code = "DATA_INTEGRITY"
