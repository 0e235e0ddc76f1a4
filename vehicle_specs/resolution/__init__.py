"""
Value Resolution Module
"""
from .effective import EffectiveValue, EffectiveValueResolver, Lineage
from .sidecar import (
    MergePolicy,
    SidecarDocument,
    SidecarEntry,
    json_merge_patch,
    load_sidecars,
    merge_sidecar,
)
from .values import canonical_value, coerce

__all__ = [
    "EffectiveValue",
    "EffectiveValueResolver",
    "Lineage",
    "MergePolicy",
    "SidecarDocument",
    "SidecarEntry",
    "json_merge_patch",
    "load_sidecars",
    "merge_sidecar",
    "canonical_value",
    "coerce",
]
