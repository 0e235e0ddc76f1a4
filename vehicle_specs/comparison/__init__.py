"""
Comparison Module
"""
from .engine import ComparisonEngine
from .models import (
    AttributeListing,
    ComparisonOptions,
    ComparisonResult,
    ComparisonRow,
    ItemHeader,
)

__all__ = [
    "ComparisonEngine",
    "AttributeListing",
    "ComparisonOptions",
    "ComparisonResult",
    "ComparisonRow",
    "ItemHeader",
]
