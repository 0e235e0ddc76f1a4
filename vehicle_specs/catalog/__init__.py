"""
Attribute Catalog Module
"""
from .definitions import (
    AttributeDefinition,
    EnumEntry,
    Language,
    label_from_code,
    normalize_code,
    synthesize_definition,
)
from .registry import AttributeCatalog

__all__ = [
    "AttributeCatalog",
    "AttributeDefinition",
    "EnumEntry",
    "Language",
    "label_from_code",
    "normalize_code",
    "synthesize_definition",
]
