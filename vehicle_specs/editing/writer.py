"""
Spec Write Workflow

One write request covers every changed attribute of an edition: enum
selections, typed catalog values, localized catalog text and the sidecar
document. The whole request is validated before anything is written, and
all writes go through the caller's session, so a comparison never observes
a half-applied edition.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import AttributeCatalog, AttributeDefinition, Language, normalize_code
from vehicle_specs.config import get_settings
from vehicle_specs.database.models import (
    AttributeValue,
    AttributeValueI18n,
    DataType,
    Edition,
    EditionSpecs,
    InheritanceLevel,
    Model,
    ModelYear,
)
from vehicle_specs.errors import NotFoundError, ValidationError
from vehicle_specs.resolution import SidecarDocument, json_merge_patch
from vehicle_specs.resolution.values import as_data_type, coerce_text, slots_for_write

logger = structlog.get_logger(__name__)
settings = get_settings()

_OWNER_MODELS = {
    InheritanceLevel.EDITION: Edition,
    InheritanceLevel.MODEL_YEAR: ModelYear,
    InheritanceLevel.MODEL: Model,
}


class PurgeMode(str, Enum):
    """What a purge removes"""
    JSON = "json"
    EAV = "eav"
    BOTH = "both"


class ValueInput(BaseModel):
    """Typed catalog value"""
    code: str
    value: Any = None


class TextInput(BaseModel):
    """Localized text of a catalog text attribute"""
    code: str
    localized_text_by_language: Dict[Language, Optional[str]] = Field(default_factory=dict)


class SpecWriteRequest(BaseModel):
    """
    All changes to one edition.

    sidecar maps attribute code to {"v", "dt", "u"} or to a bare value;
    under merge-patch a null entry deletes the stored key.
    """
    enums: Dict[str, Any] = Field(default_factory=dict)
    values: List[ValueInput] = Field(default_factory=list)
    texts: List[TextInput] = Field(default_factory=list)
    sidecar: Dict[str, Any] = Field(default_factory=dict)
    sidecar_texts: Dict[Language, Dict[str, Optional[str]]] = Field(default_factory=dict)
    replace: bool = False

    @field_validator("enums", "sidecar")
    @classmethod
    def strip_codes(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return {str(code).strip(): value for code, value in v.items() if str(code).strip()}


class SpecDocument(BaseModel):
    """Edition-level stored specs, as an editor sees them"""
    edition_id: int
    enums: Dict[str, str] = Field(default_factory=dict)
    values: Dict[str, Any] = Field(default_factory=dict)
    texts: Dict[str, Optional[str]] = Field(default_factory=dict)
    sidecar: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    sidecar_texts: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class WriteSummary(BaseModel):
    """Counts of what a write changed"""
    ok: bool = True
    edition_id: int
    values_written: int = 0
    texts_written: int = 0
    sidecar_updated: bool = False
    sidecar_replaced: bool = False


class SpecWriter:
    """
    Validate-then-apply writer for edition specs.

    Example:
        writer = SpecWriter(catalog)
        await writer.write(db, edition_id, SpecWriteRequest(
            enums={"DRIVE_TYPE": "4x4"},
            values=[ValueInput(code="POWER_KW", value=180)],
        ))
    """

    def __init__(self, catalog: AttributeCatalog):
        self.catalog = catalog

    async def _require_owner(self, session: AsyncSession, level: InheritanceLevel, owner_id: int) -> None:
        if await session.get(_OWNER_MODELS[level], owner_id) is None:
            raise NotFoundError(f"Unknown {level.value} id: {owner_id}", value=owner_id)

    async def _slots(self, session: AsyncSession, definition: AttributeDefinition, raw: Any) -> Dict[str, Any]:
        if definition.data_type == DataType.ENUM:
            entry = await self.catalog.resolve_enum_entry(session, definition.code, raw)
            return {"value_numeric": None, "value_text": None, "value_boolean": None, "value_enum_id": entry.enum_id}
        return slots_for_write(definition.data_type, raw, definition.code)

    async def _upsert_record(
        self,
        session: AsyncSession,
        level: InheritanceLevel,
        owner_id: int,
        attribute_id: int,
        slots: Dict[str, Any],
    ) -> AttributeValue:
        record = (
            await session.execute(
                select(AttributeValue).where(
                    AttributeValue.level == level,
                    AttributeValue.owner_id == owner_id,
                    AttributeValue.attribute_id == attribute_id,
                )
            )
        ).scalar_one_or_none()
        if record is None:
            record = AttributeValue(level=level, owner_id=owner_id, attribute_id=attribute_id)
            session.add(record)
        for slot, value in slots.items():
            setattr(record, slot, value)
        return record

    async def _drop_translations(self, session: AsyncSession, edition_id: int, attribute_id: int) -> None:
        """A plain text write supersedes every stored translation of that attribute"""
        rows = await session.execute(
            select(AttributeValueI18n).where(
                AttributeValueI18n.edition_id == edition_id,
                AttributeValueI18n.attribute_id == attribute_id,
            )
        )
        for translation in rows.scalars().all():
            await session.delete(translation)

    async def upsert_value(
        self,
        session: AsyncSession,
        level: InheritanceLevel,
        owner_id: int,
        code: str,
        raw: Any,
    ) -> AttributeValue:
        """
        Write one catalog value at any inheritance level.

        Raises:
            NotFoundError: Unknown owner or attribute code
            ValidationError: The value does not fit the attribute
        """
        await self._require_owner(session, level, owner_id)
        definition = await self.catalog.get_definition(session, code)
        slots = await self._slots(session, definition, raw)
        record = await self._upsert_record(session, level, owner_id, definition.attribute_id, slots)
        if level == InheritanceLevel.EDITION and definition.data_type == DataType.TEXT:
            await self._drop_translations(session, owner_id, definition.attribute_id)
        await session.flush()
        logger.debug("Value upserted", level=level.value, owner_id=owner_id, code=definition.code)
        return record

    async def delete_value(self, session: AsyncSession, level: InheritanceLevel, owner_id: int, code: str) -> bool:
        """Remove one value record; True when a record existed"""
        definition = await self.catalog.get_definition(session, code)
        result = await session.execute(
            delete(AttributeValue).where(
                AttributeValue.level == level,
                AttributeValue.owner_id == owner_id,
                AttributeValue.attribute_id == definition.attribute_id,
            )
        )
        if level == InheritanceLevel.EDITION:
            await session.execute(
                delete(AttributeValueI18n).where(
                    AttributeValueI18n.edition_id == owner_id,
                    AttributeValueI18n.attribute_id == definition.attribute_id,
                )
            )
        return result.rowcount > 0

    async def _plan_values(self, session: AsyncSession, request: SpecWriteRequest) -> List[Tuple[AttributeDefinition, Dict[str, Any]]]:
        planned: Dict[str, Tuple[AttributeDefinition, Dict[str, Any]]] = {}

        for code, raw in request.enums.items():
            if raw is None:
                continue
            definition = await self.catalog.get_definition(session, code)
            if definition.data_type != DataType.ENUM:
                raise ValidationError(f"Attribute {definition.code} is not an enum", code=definition.code, value=raw)
            planned[definition.code] = (definition, await self._slots(session, definition, raw))

        for item in request.values:
            definition = await self.catalog.get_definition(session, item.code)
            planned[definition.code] = (definition, await self._slots(session, definition, item.value))

        return list(planned.values())

    async def _plan_texts(
        self, session: AsyncSession, edition_id: int, request: SpecWriteRequest
    ) -> List[Tuple[AttributeDefinition, Dict[str, str]]]:
        planned = []
        for item in request.texts:
            definition = await self.catalog.get_definition(session, item.code)
            if definition.data_type != DataType.TEXT:
                raise ValidationError(
                    f"Attribute {definition.code} is {definition.data_type.value}, not text",
                    code=definition.code,
                )
            by_lang = {}
            for language, raw in item.localized_text_by_language.items():
                text = coerce_text(raw)
                if text is not None:
                    by_lang[settings.catalog.language_code(language)] = text
            if not by_lang:
                raise ValidationError(f"Attribute {definition.code} needs at least one non-empty text", code=definition.code)
            if settings.catalog.default_language not in by_lang:
                # value_text only ever holds the default-language text
                stored = await session.execute(
                    select(AttributeValue.value_text).where(
                        AttributeValue.level == InheritanceLevel.EDITION,
                        AttributeValue.owner_id == edition_id,
                        AttributeValue.attribute_id == definition.attribute_id,
                    )
                )
                if stored.scalar_one_or_none() is None:
                    raise ValidationError(
                        f"Attribute {definition.code} needs a default-language text",
                        code=definition.code,
                    )
            planned.append((definition, by_lang))
        return planned

    @staticmethod
    def _sidecar_patch(request: SpecWriteRequest) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        attributes: Dict[str, Any] = {}
        for code, raw in request.sidecar.items():
            if raw is None:
                if not request.replace:
                    attributes[code] = None
                continue
            if isinstance(raw, dict):
                entry = {key: raw[key] for key in ("v", "dt", "u") if raw.get(key) is not None}
                if "dt" in entry and as_data_type(entry["dt"]) is None:
                    raise ValidationError(f"Unknown data type hint for {code}: {entry['dt']}", code=code, value=entry["dt"])
                if "dt" in entry:
                    entry["dt"] = as_data_type(entry["dt"]).value
            else:
                entry = {"v": raw}
            attributes[code] = entry

        i18n: Dict[str, Any] = {}
        for language, texts in request.sidecar_texts.items():
            lang = settings.catalog.language_code(language)
            block = {
                str(code).strip(): (None if text is None else str(text))
                for code, text in texts.items()
                if str(code).strip() and (text is not None or not request.replace)
            }
            if block:
                i18n[lang] = {"attributes": block}

        return {"attributes": attributes} if attributes else {}, i18n

    async def write(self, session: AsyncSession, edition_id: int, request: SpecWriteRequest) -> WriteSummary:
        """
        Validate and apply a write request for one edition.

        Raises:
            NotFoundError: Unknown edition or attribute code
            ValidationError: A value does not fit its attribute
        """
        await self._require_owner(session, InheritanceLevel.EDITION, edition_id)

        values = await self._plan_values(session, request)
        texts = await self._plan_texts(session, edition_id, request)
        json_patch, i18n_patch = self._sidecar_patch(request)

        for definition, slots in values:
            await self._upsert_record(session, InheritanceLevel.EDITION, edition_id, definition.attribute_id, slots)
            if definition.data_type == DataType.TEXT:
                await self._drop_translations(session, edition_id, definition.attribute_id)
        await session.flush()

        for definition, by_lang in texts:
            default_text = by_lang.get(settings.catalog.default_language)
            if default_text is not None:
                await self._upsert_record(
                    session,
                    InheritanceLevel.EDITION,
                    edition_id,
                    definition.attribute_id,
                    {"value_numeric": None, "value_text": default_text, "value_boolean": None, "value_enum_id": None},
                )
            for lang, text in by_lang.items():
                translation = await session.get(AttributeValueI18n, (edition_id, definition.attribute_id, lang))
                if translation is None:
                    session.add(AttributeValueI18n(
                        edition_id=edition_id, attribute_id=definition.attribute_id, lang=lang, value_text=text
                    ))
                else:
                    translation.value_text = text

        sidecar_updated = bool(json_patch or i18n_patch or request.replace)
        if sidecar_updated:
            await self._write_sidecar(session, edition_id, json_patch, i18n_patch, request.replace)

        await session.flush()
        logger.info(
            "Edition specs written",
            edition_id=edition_id,
            values=len(values),
            texts=len(texts),
            sidecar=sidecar_updated,
            replace=request.replace,
        )
        return WriteSummary(
            edition_id=edition_id,
            values_written=len(values),
            texts_written=len(texts),
            sidecar_updated=sidecar_updated,
            sidecar_replaced=request.replace,
        )

    async def _write_sidecar(
        self,
        session: AsyncSession,
        edition_id: int,
        json_patch: Dict[str, Any],
        i18n_patch: Dict[str, Any],
        replace: bool,
    ) -> None:
        specs = await session.get(EditionSpecs, edition_id)

        if replace:
            specs_json = {"attributes": dict(json_patch.get("attributes", {}))}
            specs_i18n = i18n_patch or None
        else:
            current_json = specs.specs_json if specs is not None else None
            current_i18n = specs.specs_i18n if specs is not None else None
            # stored documents that do not parse are patched as if empty
            if not isinstance(current_json, dict):
                current_json = {}
            if not isinstance(current_i18n, dict):
                current_i18n = {}
            specs_json = json_merge_patch(current_json, json_patch)
            specs_json.setdefault("attributes", {})
            specs_i18n = json_merge_patch(current_i18n, i18n_patch) or None

        if specs is None:
            session.add(EditionSpecs(edition_id=edition_id, specs_json=specs_json, specs_i18n=specs_i18n))
        else:
            specs.specs_json = specs_json
            specs.specs_i18n = specs_i18n

    async def purge(
        self,
        session: AsyncSession,
        edition_id: int,
        mode: PurgeMode = PurgeMode.JSON,
        codes: Optional[List[str]] = None,
    ) -> Dict[str, int]:
        """
        Remove the sidecar, selected edition-level records, or both.

        Unknown codes are ignored; with mode eav and no codes nothing is removed.
        """
        await self._require_owner(session, InheritanceLevel.EDITION, edition_id)
        removed = {"sidecar": 0, "values": 0}

        if mode in (PurgeMode.JSON, PurgeMode.BOTH):
            result = await session.execute(delete(EditionSpecs).where(EditionSpecs.edition_id == edition_id))
            removed["sidecar"] = result.rowcount

        wanted = [normalize_code(code) for code in (codes or []) if str(code).strip()]
        if mode in (PurgeMode.EAV, PurgeMode.BOTH) and wanted:
            definitions = await self.catalog.definitions(session)
            attribute_ids = [definitions[code].attribute_id for code in wanted if code in definitions]
            if attribute_ids:
                result = await session.execute(
                    delete(AttributeValue).where(
                        AttributeValue.level == InheritanceLevel.EDITION,
                        AttributeValue.owner_id == edition_id,
                        AttributeValue.attribute_id.in_(attribute_ids),
                    )
                )
                removed["values"] = result.rowcount
                await session.execute(
                    delete(AttributeValueI18n).where(
                        AttributeValueI18n.edition_id == edition_id,
                        AttributeValueI18n.attribute_id.in_(attribute_ids),
                    )
                )

        logger.info("Edition specs purged", edition_id=edition_id, mode=mode.value, **removed)
        return removed

    async def read(self, session: AsyncSession, edition_id: int) -> SpecDocument:
        """Stored edition-level values and sidecar, without inheritance"""
        await self._require_owner(session, InheritanceLevel.EDITION, edition_id)
        definitions = await self.catalog.definitions(session)
        by_id = {d.attribute_id: d for d in definitions.values()}

        document = SpecDocument(edition_id=edition_id)
        records = await session.execute(
            select(AttributeValue).where(
                AttributeValue.level == InheritanceLevel.EDITION,
                AttributeValue.owner_id == edition_id,
            )
        )
        for record in records.scalars():
            definition = by_id.get(record.attribute_id)
            if definition is None:
                continue
            if definition.data_type == DataType.ENUM:
                entry = await self.catalog.enum_entry(session, record.value_enum_id) if record.value_enum_id else None
                if entry is not None:
                    document.enums[definition.code] = entry.code
            elif definition.data_type == DataType.TEXT:
                document.texts[definition.code] = record.value_text
            elif definition.data_type == DataType.BOOLEAN:
                document.values[definition.code] = record.value_boolean
            else:
                document.values[definition.code] = record.value_numeric

        specs = await session.get(EditionSpecs, edition_id)
        if specs is not None:
            sidecar = SidecarDocument.from_storage(specs.specs_json, specs.specs_i18n, edition_id)
            document.sidecar = {code: entry.to_storage() for code, entry in sidecar.attributes.items()}
            document.sidecar_texts = sidecar.texts
        return document
