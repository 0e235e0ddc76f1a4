"""
Error taxonomy for the specification engine.

NotFoundError and ValidationError surface to callers (4xx at the HTTP edge);
CorruptStateError is raised internally when a persisted snapshot cannot be
thawed and is handled by falling back to a live computation.
"""

from typing import Any, Optional


class SpecEngineError(Exception):
    """Base class for all engine errors"""

    def __init__(self, message: str, code: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.value = value


class NotFoundError(SpecEngineError):
    """Unknown attribute code, enum code, item or collection id"""


class ValidationError(SpecEngineError):
    """Value does not fit the attribute's declared type or vocabulary"""


class CorruptStateError(SpecEngineError):
    """A persisted snapshot cannot be deserialized"""
