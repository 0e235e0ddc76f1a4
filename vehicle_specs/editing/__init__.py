"""
Spec Editing Module
"""
from .writer import (
    PurgeMode,
    SpecDocument,
    SpecWriteRequest,
    SpecWriter,
    TextInput,
    ValueInput,
    WriteSummary,
)

__all__ = [
    "PurgeMode",
    "SpecDocument",
    "SpecWriteRequest",
    "SpecWriter",
    "TextInput",
    "ValueInput",
    "WriteSummary",
]
