"""
Attribute Catalog Registry

Process-wide, explicitly invalidatable cache of attribute definitions and
enum vocabularies. The catalog is built once at process start (see
serving.api.deps) and loads lazily from the database on first use.

A lookup that misses on a cache loaded earlier triggers exactly one forced
refresh before the miss is reported, so an attribute added by the
administration tool after the last load is found without a restart.
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional, TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog.definitions import AttributeDefinition, EnumEntry, normalize_code
from vehicle_specs.config import get_settings
from vehicle_specs.database.models import Attribute, AttributeEnumValue, DataType, utc_now
from vehicle_specs.errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)
settings = get_settings()

T = TypeVar("T")


class AttributeCatalog:
    """
    Cached view of the attribute catalog.

    Example:
        catalog = AttributeCatalog()
        attribute_id = await catalog.resolve_attribute_id(db, "POWER_KW")
        entry = await catalog.resolve_enum_entry(db, "DRIVE_TYPE", "4x4")
        catalog.invalidate()  # after administrative changes
    """

    def __init__(self, enum_aliases: Optional[Dict[str, Dict[str, str]]] = None):
        aliases = settings.catalog.enum_aliases if enum_aliases is None else enum_aliases
        self._aliases: Dict[str, Dict[str, str]] = {
            code.strip().upper(): {
                alias.strip().casefold(): canonical.strip().upper()
                for alias, canonical in mapping.items()
            }
            for code, mapping in aliases.items()
        }
        self._definitions: Optional[Dict[str, AttributeDefinition]] = None
        self._enums_by_attribute: Dict[str, Dict[str, EnumEntry]] = {}
        self._enums_by_id: Dict[int, EnumEntry] = {}
        self._lock = asyncio.Lock()
        self.loaded_at: Optional[datetime] = None

    @property
    def is_loaded(self) -> bool:
        return self._definitions is not None

    def invalidate(self) -> None:
        """Drop all cached entries; the next lookup reloads from the database"""
        self._definitions = None
        self._enums_by_attribute = {}
        self._enums_by_id = {}
        self.loaded_at = None
        logger.info("Attribute catalog invalidated")

    async def refresh(self, session: AsyncSession) -> None:
        """Reload definitions and vocabularies from the database"""
        async with self._lock:
            attributes = (await session.execute(select(Attribute))).scalars().all()
            definitions = {normalize_code(row.code): AttributeDefinition.from_row(row) for row in attributes}
            code_by_id = {row.attribute_id: normalize_code(row.code) for row in attributes}

            enum_rows = (await session.execute(select(AttributeEnumValue))).scalars().all()
            by_attribute: Dict[str, Dict[str, EnumEntry]] = {}
            by_id: Dict[int, EnumEntry] = {}
            for row in enum_rows:
                attribute_code = code_by_id.get(row.attribute_id)
                if attribute_code is None:
                    continue
                entry = EnumEntry.from_row(row, attribute_code)
                by_attribute.setdefault(attribute_code, {})[entry.code.upper()] = entry
                by_id[entry.enum_id] = entry

            self._definitions = definitions
            self._enums_by_attribute = by_attribute
            self._enums_by_id = by_id
            self.loaded_at = utc_now()

        logger.info(
            "Attribute catalog loaded",
            attributes=len(definitions),
            enum_values=len(by_id),
        )

    async def _ensure_loaded(self, session: AsyncSession) -> bool:
        """Load if needed; True when this call performed the load"""
        if self._definitions is None:
            await self.refresh(session)
            return True
        return False

    async def _lookup(self, session: AsyncSession, finder: Callable[[], Optional[T]], what: str) -> Optional[T]:
        fresh = await self._ensure_loaded(session)
        found = finder()
        if found is None and not fresh:
            logger.info("Catalog cache miss, refreshing once", lookup=what)
            await self.refresh(session)
            found = finder()
        return found

    async def definitions(self, session: AsyncSession) -> Dict[str, AttributeDefinition]:
        """All catalog definitions keyed by code"""
        await self._ensure_loaded(session)
        return dict(self._definitions)

    async def get_definition(self, session: AsyncSession, code: str) -> AttributeDefinition:
        """
        Definition for one attribute code.

        Raises:
            NotFoundError: The code is not in the catalog
        """
        code = normalize_code(code)
        definition = await self._lookup(session, lambda: self._definitions.get(code), f"attribute:{code}")
        if definition is None:
            raise NotFoundError(f"Unknown attribute code: {code}", code=code)
        return definition

    async def resolve_attribute_id(self, session: AsyncSession, code: str) -> int:
        """Resolve an attribute code to its id (NotFoundError when unknown)"""
        definition = await self.get_definition(session, code)
        return definition.attribute_id

    def normalize_enum_code(self, attribute_code: str, raw: object) -> str:
        """Map an alias or label to the canonical vocabulary code for one attribute"""
        text = str(raw if raw is not None else "").strip()
        aliases = self._aliases.get(normalize_code(attribute_code), {})
        return aliases.get(text.casefold(), text.upper())

    async def resolve_enum_entry(self, session: AsyncSession, attribute_code: str, raw: object) -> EnumEntry:
        """
        Resolve a raw enum code or synonym to a vocabulary entry.

        Raises:
            NotFoundError: The attribute is unknown
            ValidationError: The attribute is not an enum, or the normalized
                code is outside its vocabulary
        """
        definition = await self.get_definition(session, attribute_code)
        if definition.data_type != DataType.ENUM:
            raise ValidationError(
                f"Attribute {definition.code} is {definition.data_type.value}, not enum",
                code=definition.code,
                value=raw,
            )

        normalized = self.normalize_enum_code(definition.code, raw)
        entry = await self._lookup(
            session,
            lambda: self._enums_by_attribute.get(definition.code, {}).get(normalized),
            f"enum:{definition.code}:{normalized}",
        )
        if entry is None:
            allowed = ", ".join(sorted(e.code for e in self._enums_by_attribute.get(definition.code, {}).values()))
            raise ValidationError(
                f"Invalid {definition.code}: {raw}. Allowed: {allowed}",
                code=definition.code,
                value=raw,
            )
        return entry

    async def enum_entry(self, session: AsyncSession, enum_id: int) -> Optional[EnumEntry]:
        """Vocabulary entry by id, or None when it no longer exists"""
        return await self._lookup(session, lambda: self._enums_by_id.get(enum_id), f"enum_id:{enum_id}")

    async def vocabulary(self, session: AsyncSession, attribute_code: str) -> List[EnumEntry]:
        definition = await self.get_definition(session, attribute_code)
        entries = self._enums_by_attribute.get(definition.code, {})
        return sorted(entries.values(), key=lambda e: e.code)
