"""
Sidecar Document Merge Engine

The sidecar is a freeform per-edition JSON overlay:

    specs_json  {"attributes": {CODE: {"v": value, "dt": type hint, "u": unit hint}}}
    specs_i18n  {lang: {"attributes": {CODE: text}}}

Writes either merge-patch the stored document (RFC 7386) or replace it.
Reads overlay it on catalog-resolved values under an explicit MergePolicy:

- SIDECAR_WINS: a present sidecar value overrides the effective value
- CATALOG_WINS: the sidecar only fills attributes the catalog has no value for

A sidecar value that coerces to absent never overrides anything.
"""

import json
from dataclasses import replace
from typing import Any, Dict, Iterable, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import AttributeDefinition, Language, normalize_code, synthesize_definition
from vehicle_specs.config import get_settings
from vehicle_specs.database.models import DataType, EditionSpecs, InheritanceLevel, MergePolicy
from vehicle_specs.resolution.effective import EffectiveValue
from vehicle_specs.resolution.values import as_data_type, coerce

logger = structlog.get_logger(__name__)
settings = get_settings()

__all__ = [
    "MergePolicy",
    "SidecarEntry",
    "SidecarDocument",
    "json_merge_patch",
    "merge_sidecar",
    "load_sidecars",
]


def json_merge_patch(target: Any, patch: Any) -> Any:
    """
    Apply a JSON merge patch (RFC 7386).

    Keys present in the patch overwrite, nested objects merge recursively,
    a null value deletes the key, every other key of the target is kept.
    """
    if not isinstance(patch, Mapping):
        return patch

    merged = dict(target) if isinstance(target, Mapping) else {}
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = json_merge_patch(merged.get(key), value)
    return merged


class SidecarEntry(BaseModel):
    """One sidecar attribute: value plus optional type and unit hints"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    value: Any = Field(default=None, alias="v")
    data_type: Optional[str] = Field(default=None, alias="dt")
    unit: Optional[str] = Field(default=None, alias="u")

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SidecarDocument(BaseModel):
    """Parsed sidecar of one edition"""
    attributes: Dict[str, SidecarEntry] = Field(default_factory=dict)
    texts: Dict[str, Dict[str, str]] = Field(default_factory=dict)  # lang -> code -> text

    @classmethod
    def from_storage(cls, specs_json: Any, specs_i18n: Any = None, edition_id: Optional[int] = None) -> "SidecarDocument":
        """
        Parse stored sidecar columns.

        A column that cannot be parsed is logged and treated as empty; a
        single malformed entry is skipped.
        """
        root = _parse_maybe(specs_json, "specs_json", edition_id)
        i18n = _parse_maybe(specs_i18n, "specs_i18n", edition_id)

        attributes: Dict[str, SidecarEntry] = {}
        raw_attributes = root.get("attributes") if isinstance(root.get("attributes"), dict) else {}
        for code, raw in raw_attributes.items():
            try:
                entry = SidecarEntry.model_validate(raw) if isinstance(raw, dict) else SidecarEntry(value=raw)
            except PydanticValidationError as e:
                logger.warning("Skipping malformed sidecar entry", edition_id=edition_id, code=code, error=str(e))
                continue
            attributes[str(code)] = entry

        texts: Dict[str, Dict[str, str]] = {}
        for lang, block in i18n.items():
            block_attributes = block.get("attributes") if isinstance(block, dict) else None
            if not isinstance(block_attributes, dict):
                continue
            texts[str(lang)] = {
                str(code): str(text) for code, text in block_attributes.items() if text is not None
            }

        return cls(attributes=attributes, texts=texts)

    @property
    def is_empty(self) -> bool:
        return not self.attributes and not any(self.texts.values())

    def text_for(self, lang: str, code: str) -> Optional[str]:
        return self.texts.get(lang, {}).get(code)


def _parse_maybe(raw: Any, column: str, edition_id: Optional[int]) -> Dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning("Unparseable sidecar document, treating as empty", edition_id=edition_id, column=column, error=str(e))
            return {}
    if not isinstance(raw, dict):
        logger.warning("Sidecar document is not an object, treating as empty", edition_id=edition_id, column=column)
        return {}
    return raw


async def load_sidecars(session: AsyncSession, edition_ids: Iterable[int]) -> Dict[int, SidecarDocument]:
    """Sidecar documents for several editions (editions without one are omitted)"""
    ids = list(dict.fromkeys(edition_ids))
    if not ids:
        return {}
    rows = await session.execute(select(EditionSpecs).where(EditionSpecs.edition_id.in_(ids)))
    return {
        row.edition_id: SidecarDocument.from_storage(row.specs_json, row.specs_i18n, row.edition_id)
        for row in rows.scalars()
    }


def _sidecar_definition(
    code: str,
    entry: SidecarEntry,
    definition: Optional[AttributeDefinition],
) -> AttributeDefinition:
    hinted = as_data_type(entry.data_type)
    if definition is None:
        return synthesize_definition(code, hinted, entry.unit)
    if definition.unit is None and entry.unit:
        return replace(definition, unit=entry.unit)
    return definition


def merge_sidecar(
    effective: Mapping[str, EffectiveValue],
    document: Optional[SidecarDocument],
    language: Language,
    definitions: Mapping[str, AttributeDefinition],
    policy: MergePolicy,
) -> Dict[str, EffectiveValue]:
    """
    Overlay a sidecar document on effective values.

    Args:
        effective: Present effective values keyed by attribute code
        document: The edition's sidecar (None when it has none)
        language: Output language; selects the localized sidecar text
        definitions: Catalog definitions keyed by code
        policy: Which side wins when both have a value

    Returns:
        New mapping of present values keyed by attribute code
    """
    merged = dict(effective)
    if document is None or document.is_empty:
        return merged

    lang = settings.catalog.language_code(language)
    for code, entry in document.attributes.items():
        key = normalize_code(code)
        if policy == MergePolicy.CATALOG_WINS and key in merged:
            continue

        definition = _sidecar_definition(key, entry, definitions.get(key))
        data_type = as_data_type(entry.data_type, definition.data_type)

        raw = entry.value
        if data_type == DataType.TEXT:
            localized = document.text_for(lang, code)
            if localized is not None:
                raw = localized

        value = coerce(data_type, raw)
        if value is None:
            continue

        merged[key] = EffectiveValue(
            definition=definition,
            value=value,
            source_level=InheritanceLevel.EDITION,
            from_sidecar=True,
        )
    return merged
