"""
Effective Value Resolver

Joins the three inheritance levels (edition, model year, model) into one
effective value per (edition, attribute). For each attribute the most
specific level that has a record wins and is reported as source_level.

Results are never cached: every call reads committed rows, so a write is
visible to the next read. Only catalog lookups go through the catalog cache.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import AttributeCatalog, AttributeDefinition, Language
from vehicle_specs.config import get_settings
from vehicle_specs.database.models import (
    AttributeValue,
    AttributeValueI18n,
    DataType,
    Edition,
    InheritanceLevel,
    LEVEL_PRECEDENCE,
    ModelYear,
)
from vehicle_specs.errors import NotFoundError
from vehicle_specs.resolution.values import Scalar, coerce

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class Lineage:
    """The owners of one edition at each inheritance level"""
    edition_id: int
    model_year_id: int
    model_id: int

    def owner_for(self, level: InheritanceLevel) -> int:
        if level == InheritanceLevel.EDITION:
            return self.edition_id
        if level == InheritanceLevel.MODEL_YEAR:
            return self.model_year_id
        return self.model_id


@dataclass(frozen=True)
class EffectiveValue:
    """Resolved value of one attribute for one edition"""
    definition: AttributeDefinition
    value: Optional[Scalar]
    source_level: Optional[InheritanceLevel]
    from_sidecar: bool = False

    @property
    def code(self) -> str:
        return self.definition.code

    @property
    def is_present(self) -> bool:
        return self.value is not None


class EffectiveValueResolver:
    """
    Resolve effective attribute values across inheritance levels.

    Example:
        resolver = EffectiveValueResolver(catalog)
        listing = await resolver.resolve_effective(db, edition_id)
        power = await resolver.resolve_attribute(db, edition_id, "POWER_KW")
    """

    def __init__(self, catalog: AttributeCatalog):
        self.catalog = catalog

    async def lineages(self, session: AsyncSession, edition_ids: Iterable[int]) -> Dict[int, Lineage]:
        """
        Level owners for each edition.

        Raises:
            NotFoundError: Any of the editions does not exist
        """
        ids = list(dict.fromkeys(edition_ids))
        if not ids:
            return {}

        rows = await session.execute(
            select(Edition.edition_id, Edition.model_year_id, ModelYear.model_id)
            .join(ModelYear, ModelYear.model_year_id == Edition.model_year_id)
            .where(Edition.edition_id.in_(ids))
        )
        found = {row.edition_id: Lineage(row.edition_id, row.model_year_id, row.model_id) for row in rows}

        missing = [edition_id for edition_id in ids if edition_id not in found]
        if missing:
            raise NotFoundError(f"Unknown edition id(s): {', '.join(map(str, missing))}", value=missing)
        return found

    async def resolve_many(
        self,
        session: AsyncSession,
        edition_ids: Iterable[int],
        language: Language = Language.DEFAULT,
        attribute_ids: Optional[Set[int]] = None,
    ) -> Dict[int, Dict[str, EffectiveValue]]:
        """
        Present effective values for several editions.

        Returns:
            edition_id -> attribute code -> EffectiveValue (absent values omitted)
        """
        lineages = await self.lineages(session, edition_ids)
        if not lineages:
            return {}

        records = await self._load_records(session, lineages.values(), attribute_ids)
        translations = await self._load_translations(session, lineages.keys(), language)

        by_key: Dict[Tuple[InheritanceLevel, int, int], AttributeValue] = {
            (record.level, record.owner_id, record.attribute_id): record for record in records
        }
        definitions = await self._definitions_by_id(session, {record.attribute_id for record in records})

        resolved: Dict[int, Dict[str, EffectiveValue]] = {}
        for edition_id, lineage in lineages.items():
            values: Dict[str, EffectiveValue] = {}
            for attribute_id, definition in definitions.items():
                hit = self._first_hit(by_key, lineage, attribute_id)
                if hit is None:
                    continue
                level, record = hit
                translation = translations.get((edition_id, attribute_id)) if level == InheritanceLevel.EDITION else None
                value = await self._coerce_record(session, definition, record, translation, language)
                if value is not None:
                    values[definition.code] = EffectiveValue(definition, value, level)
            resolved[edition_id] = values
        return resolved

    async def resolve_effective(
        self,
        session: AsyncSession,
        edition_id: int,
        language: Language = Language.DEFAULT,
    ) -> List[EffectiveValue]:
        """One entry per catalog attribute; absent attributes carry value None"""
        present = (await self.resolve_many(session, [edition_id], language))[edition_id]
        definitions = await self.catalog.definitions(session)

        listing = [
            present.get(code) or EffectiveValue(definition, None, None)
            for code, definition in definitions.items()
        ]
        listing.sort(key=lambda item: item.definition.sort_key(language))
        return listing

    async def resolve_attribute(
        self,
        session: AsyncSession,
        edition_id: int,
        attribute_code: str,
        language: Language = Language.DEFAULT,
    ) -> Optional[EffectiveValue]:
        """Effective value of one attribute, or None when absent at every level"""
        definition = await self.catalog.get_definition(session, attribute_code)
        resolved = await self.resolve_many(session, [edition_id], language, {definition.attribute_id})
        return resolved[edition_id].get(definition.code)

    @staticmethod
    def _first_hit(
        by_key: Dict[Tuple[InheritanceLevel, int, int], AttributeValue],
        lineage: Lineage,
        attribute_id: int,
    ) -> Optional[Tuple[InheritanceLevel, AttributeValue]]:
        for level in LEVEL_PRECEDENCE:
            record = by_key.get((level, lineage.owner_for(level), attribute_id))
            if record is not None:
                return level, record
        return None

    async def _load_records(
        self,
        session: AsyncSession,
        lineages: Iterable[Lineage],
        attribute_ids: Optional[Set[int]],
    ) -> List[AttributeValue]:
        owners: Dict[InheritanceLevel, Set[int]] = {level: set() for level in LEVEL_PRECEDENCE}
        for lineage in lineages:
            for level in LEVEL_PRECEDENCE:
                owners[level].add(lineage.owner_for(level))

        query = select(AttributeValue).where(
            or_(*[
                and_(AttributeValue.level == level, AttributeValue.owner_id.in_(ids))
                for level, ids in owners.items()
            ])
        )
        if attribute_ids is not None:
            query = query.where(AttributeValue.attribute_id.in_(attribute_ids))
        return list((await session.execute(query)).scalars().all())

    async def _load_translations(
        self,
        session: AsyncSession,
        edition_ids: Iterable[int],
        language: Language,
    ) -> Dict[Tuple[int, int], str]:
        lang = settings.catalog.language_code(language)
        rows = await session.execute(
            select(AttributeValueI18n).where(
                AttributeValueI18n.edition_id.in_(list(edition_ids)),
                AttributeValueI18n.lang == lang,
            )
        )
        return {(row.edition_id, row.attribute_id): row.value_text for row in rows.scalars()}

    async def _definitions_by_id(self, session: AsyncSession, attribute_ids: Set[int]) -> Dict[int, AttributeDefinition]:
        definitions = await self.catalog.definitions(session)
        by_id = {d.attribute_id: d for d in definitions.values()}
        if not attribute_ids <= by_id.keys():
            logger.info("Value records reference uncached attributes, refreshing catalog")
            await self.catalog.refresh(session)
            definitions = await self.catalog.definitions(session)
            by_id = {d.attribute_id: d for d in definitions.values()}
        return {attribute_id: by_id[attribute_id] for attribute_id in attribute_ids if attribute_id in by_id}

    async def _coerce_record(
        self,
        session: AsyncSession,
        definition: AttributeDefinition,
        record: AttributeValue,
        translation: Optional[str],
        language: Language,
    ) -> Optional[Scalar]:
        data_type = definition.data_type
        if data_type == DataType.ENUM:
            if record.value_enum_id is None:
                return None
            entry = await self.catalog.enum_entry(session, record.value_enum_id)
            return coerce(DataType.ENUM, entry.label_for(language)) if entry else None
        if data_type == DataType.TEXT:
            return coerce(DataType.TEXT, translation if translation is not None else record.value_text)
        if data_type == DataType.BOOLEAN:
            return coerce(DataType.BOOLEAN, record.value_boolean)
        return coerce(data_type, record.value_numeric)
