"""
Collections & Snapshot Freeze Module
"""
from .collections import (
    CollectionCreate,
    CollectionPage,
    CollectionService,
    CollectionSummary,
    CollectionUpdate,
)
from .freeze import ResolvedCollection, SnapshotManager, collection_options
from .selection import resolve_item_ids

__all__ = [
    "CollectionCreate",
    "CollectionPage",
    "CollectionService",
    "CollectionSummary",
    "CollectionUpdate",
    "ResolvedCollection",
    "SnapshotManager",
    "collection_options",
    "resolve_item_ids",
]
