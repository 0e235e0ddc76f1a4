"""
Collection Management

Saved comparisons (brochures / comparison sheets): each stores its own item
selection and comparison options. Updating a collection never touches an
existing snapshot; only SnapshotManager.lock / unlock do.
"""

import uuid
from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import Language
from vehicle_specs.config import get_settings
from vehicle_specs.database.models import (
    Collection,
    CollectionEdition,
    CollectionYear,
    Edition,
    MergePolicy,
    Model,
    ModelYear,
    SelectionMode,
    utc_now,
)
from vehicle_specs.errors import NotFoundError, ValidationError
from vehicle_specs.snapshots.freeze import SnapshotManager
from vehicle_specs.snapshots.selection import selected_edition_ids, selected_year_ids

logger = structlog.get_logger(__name__)
settings = get_settings()


def _default_policy() -> MergePolicy:
    return MergePolicy(settings.catalog.default_merge_policy)


class CollectionCreate(BaseModel):
    """New collection"""
    title: str = Field(..., max_length=200)
    description: Optional[str] = None
    selection_mode: SelectionMode = SelectionMode.EDITIONS
    model_id: Optional[int] = None
    edition_ids: List[int] = Field(default_factory=list)
    model_year_ids: List[int] = Field(default_factory=list)
    only_differences: bool = False
    language: Language = Language.DEFAULT
    merge_policy: MergePolicy = Field(default_factory=_default_policy)
    lock: bool = Field(default=False, description="Freeze immediately after creation")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("title required")
        return v.strip()

    @model_validator(mode="after")
    def validate_selection(self) -> "CollectionCreate":
        if self.selection_mode == SelectionMode.EDITIONS and not self.edition_ids:
            raise ValueError("edition_ids required for selection_mode=editions")
        if self.selection_mode == SelectionMode.YEARS and not self.model_year_ids:
            raise ValueError("model_year_ids required for selection_mode=years")
        if self.selection_mode == SelectionMode.ALL_YEARS and self.model_id is None:
            raise ValueError("model_id required for selection_mode=all_years")
        return self


class CollectionUpdate(BaseModel):
    """Partial update; omitted fields are left as they are"""
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    selection_mode: Optional[SelectionMode] = None
    model_id: Optional[int] = None
    edition_ids: Optional[List[int]] = None
    model_year_ids: Optional[List[int]] = None
    only_differences: Optional[bool] = None
    language: Optional[Language] = None
    merge_policy: Optional[MergePolicy] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        if not v.strip():
            raise ValueError("title cannot be blank")
        return v.strip()


class CollectionSummary(BaseModel):
    """Collection as returned to callers"""
    model_config = ConfigDict(from_attributes=True)

    collection_id: int
    public_uuid: str
    title: str
    description: Optional[str] = None
    selection_mode: SelectionMode
    model_id: Optional[int] = None
    only_differences: bool
    language: Language
    merge_policy: MergePolicy
    is_frozen: bool
    frozen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    edition_ids: List[int] = Field(default_factory=list)
    model_year_ids: List[int] = Field(default_factory=list)


class CollectionPage(BaseModel):
    """Paginated collection list"""
    items: List[CollectionSummary]
    total: int
    page: int
    page_size: int


class CollectionService:
    """
    CRUD for collections.

    Example:
        service = CollectionService(SnapshotManager(engine))
        summary = await service.create(db, CollectionCreate(title="Q3 sheet", edition_ids=[1, 2]))
    """

    def __init__(self, snapshots: SnapshotManager):
        self.snapshots = snapshots

    async def _get_row(self, session: AsyncSession, collection_id: int) -> Collection:
        collection = await session.get(Collection, collection_id)
        if collection is None:
            raise NotFoundError(f"Collection {collection_id} not found", value=collection_id)
        return collection

    async def _summary(self, session: AsyncSession, collection: Collection) -> CollectionSummary:
        summary = CollectionSummary.model_validate(collection)
        summary.edition_ids = await selected_edition_ids(session, collection.collection_id)
        summary.model_year_ids = await selected_year_ids(session, collection.collection_id)
        return summary

    async def _check_references(
        self,
        session: AsyncSession,
        model_id: Optional[int] = None,
        edition_ids: Optional[List[int]] = None,
        model_year_ids: Optional[List[int]] = None,
    ) -> None:
        if model_id is not None and await session.get(Model, model_id) is None:
            raise NotFoundError(f"Unknown model id: {model_id}", value=model_id)

        for column, ids, what in (
            (Edition.edition_id, edition_ids, "edition"),
            (ModelYear.model_year_id, model_year_ids, "model year"),
        ):
            if not ids:
                continue
            found = set((await session.execute(select(column).where(column.in_(ids)))).scalars().all())
            missing = [i for i in ids if i not in found]
            if missing:
                raise NotFoundError(f"Unknown {what} id(s): {', '.join(map(str, missing))}", value=missing)

    async def _replace_selection(
        self,
        session: AsyncSession,
        collection_id: int,
        edition_ids: Optional[List[int]],
        model_year_ids: Optional[List[int]],
    ) -> None:
        if edition_ids is not None:
            await session.execute(delete(CollectionEdition).where(CollectionEdition.collection_id == collection_id))
            session.add_all(
                CollectionEdition(collection_id=collection_id, edition_id=edition_id, sort_order=position)
                for position, edition_id in enumerate(dict.fromkeys(edition_ids))
            )
        if model_year_ids is not None:
            await session.execute(delete(CollectionYear).where(CollectionYear.collection_id == collection_id))
            session.add_all(
                CollectionYear(collection_id=collection_id, model_year_id=year_id)
                for year_id in dict.fromkeys(model_year_ids)
            )
        await session.flush()

    async def create(self, session: AsyncSession, data: CollectionCreate) -> CollectionSummary:
        """Create a collection, optionally locking it in the same unit of work"""
        await self._check_references(session, data.model_id, data.edition_ids, data.model_year_ids)

        collection = Collection(
            public_uuid=str(uuid.uuid4()),
            title=data.title,
            description=data.description,
            selection_mode=data.selection_mode,
            model_id=data.model_id,
            only_differences=data.only_differences,
            language=data.language.value,
            merge_policy=data.merge_policy,
            is_frozen=False,
        )
        session.add(collection)
        await session.flush()

        await self._replace_selection(
            session,
            collection.collection_id,
            data.edition_ids if data.selection_mode == SelectionMode.EDITIONS else None,
            data.model_year_ids if data.selection_mode == SelectionMode.YEARS else None,
        )

        logger.info(
            "Collection created",
            collection_id=collection.collection_id,
            selection_mode=data.selection_mode.value,
        )

        if data.lock:
            await self.snapshots.lock(session, collection.collection_id)

        await session.refresh(collection)
        return await self._summary(session, collection)

    async def get(self, session: AsyncSession, collection_id: int) -> CollectionSummary:
        return await self._summary(session, await self._get_row(session, collection_id))

    async def get_by_uuid(self, session: AsyncSession, public_uuid: str) -> CollectionSummary:
        collection = (
            await session.execute(select(Collection).where(Collection.public_uuid == public_uuid))
        ).scalar_one_or_none()
        if collection is None:
            raise NotFoundError(f"Collection {public_uuid} not found", value=public_uuid)
        return await self._summary(session, collection)

    async def list(
        self,
        session: AsyncSession,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> CollectionPage:
        """Newest first, optionally filtered by a title/description search"""
        conditions = []
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(or_(Collection.title.ilike(pattern), Collection.description.ilike(pattern)))

        total = (await session.execute(select(func.count(Collection.collection_id)).where(*conditions))).scalar() or 0

        offset = (page - 1) * page_size
        rows = await session.execute(
            select(Collection)
            .where(*conditions)
            .order_by(Collection.created_at.desc(), Collection.collection_id.desc())
            .offset(offset)
            .limit(page_size)
        )
        items = [await self._summary(session, collection) for collection in rows.scalars().all()]
        return CollectionPage(items=items, total=total, page=page, page_size=page_size)

    async def update(self, session: AsyncSession, collection_id: int, data: CollectionUpdate) -> CollectionSummary:
        """
        Apply a partial update.

        Raises:
            NotFoundError: Unknown collection or referenced ids
            ValidationError: The resulting selection is empty for its mode
        """
        collection = await self._get_row(session, collection_id)
        changes = data.model_dump(exclude_unset=True)
        await self._check_references(session, changes.get("model_id"), data.edition_ids, data.model_year_ids)

        for field in ("title", "description", "selection_mode", "model_id", "only_differences", "merge_policy"):
            if field in changes and (changes[field] is not None or field in ("description", "model_id")):
                setattr(collection, field, changes[field])
        if data.language is not None:
            collection.language = data.language.value

        await self._replace_selection(session, collection_id, data.edition_ids, data.model_year_ids)

        mode = collection.selection_mode
        if mode == SelectionMode.EDITIONS and not await selected_edition_ids(session, collection_id):
            raise ValidationError("edition_ids required for selection_mode=editions", value=collection_id)
        if mode == SelectionMode.YEARS and not await selected_year_ids(session, collection_id):
            raise ValidationError("model_year_ids required for selection_mode=years", value=collection_id)
        if mode == SelectionMode.ALL_YEARS and collection.model_id is None:
            raise ValidationError("model_id required for selection_mode=all_years", value=collection_id)

        collection.updated_at = utc_now()
        await session.flush()
        logger.info("Collection updated", collection_id=collection_id, fields=sorted(changes))
        return await self._summary(session, collection)

    async def delete(self, session: AsyncSession, collection_id: int) -> None:
        collection = await self._get_row(session, collection_id)
        await session.execute(delete(CollectionEdition).where(CollectionEdition.collection_id == collection_id))
        await session.execute(delete(CollectionYear).where(CollectionYear.collection_id == collection_id))
        await session.delete(collection)
        await session.flush()
        logger.info("Collection deleted", collection_id=collection_id)
