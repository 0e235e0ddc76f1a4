"""
Snapshot Freeze Manager

A collection is either Live (every read recomputes) or Frozen (the stored
snapshot is authoritative). lock() and unlock() take a row lock on the
collection inside the caller's unit of work, so concurrent transitions on
one collection serialize. Nothing else writes snapshot_json.

A frozen snapshot that cannot be thawed is logged at WARNING and the read
falls back to a live computation; a corrupt snapshot is never served and
never replaced by an empty result.
"""

from datetime import datetime
from typing import Literal, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import Language
from vehicle_specs.comparison import ComparisonEngine, ComparisonOptions, ComparisonResult
from vehicle_specs.database.models import Collection, MergePolicy, utc_now
from vehicle_specs.errors import CorruptStateError, NotFoundError, ValidationError
from vehicle_specs.snapshots.selection import resolve_item_ids

logger = structlog.get_logger(__name__)


class ResolvedCollection(ComparisonResult):
    """A collection's comparison, tagged with where it came from"""
    collection_id: int
    source: Literal["snapshot", "live"]
    frozen_at: Optional[datetime] = None


def collection_options(collection: Collection) -> Tuple[ComparisonOptions, MergePolicy]:
    """Comparison options stored on a collection"""
    options = ComparisonOptions(
        only_differences=bool(collection.only_differences),
        language=Language(collection.language or Language.DEFAULT.value),
    )
    return options, MergePolicy(collection.merge_policy)


class SnapshotManager:
    """
    Freeze / thaw collection comparisons.

    Example:
        snapshots = SnapshotManager(engine)
        async with get_db() as db:
            await snapshots.lock(db, collection_id)
        async with get_db() as db:
            view = await snapshots.resolve(db, collection_id)
    """

    def __init__(self, engine: ComparisonEngine):
        self.engine = engine

    async def _load(self, session: AsyncSession, collection_id: int, for_update: bool = False) -> Collection:
        query = select(Collection).where(Collection.collection_id == collection_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        collection = (await session.execute(query)).scalar_one_or_none()
        if collection is None:
            raise NotFoundError(f"Collection {collection_id} not found", value=collection_id)
        return collection

    async def compute_live(self, session: AsyncSession, collection: Collection) -> ComparisonResult:
        """Fresh comparison of the collection's current item set"""
        item_ids = await resolve_item_ids(session, collection)
        if not item_ids:
            return ComparisonResult()
        options, policy = collection_options(collection)
        return await self.engine.compare(session, item_ids, options, policy)

    async def lock(self, session: AsyncSession, collection_id: int) -> Collection:
        """
        Compute and persist a snapshot, setting the frozen flag.

        Re-locking a frozen collection replaces its snapshot with fresh data.

        Raises:
            NotFoundError: Unknown collection
            ValidationError: The collection selects no editions
        """
        collection = await self._load(session, collection_id, for_update=True)

        item_ids = await resolve_item_ids(session, collection)
        if not item_ids:
            raise ValidationError(f"Collection {collection_id} selects no editions; nothing to lock", value=collection_id)

        options, policy = collection_options(collection)
        result = await self.engine.compare(session, item_ids, options, policy)

        collection.snapshot_json = result.model_dump_json()
        collection.is_frozen = True
        collection.frozen_at = utc_now()
        collection.updated_at = collection.frozen_at
        await session.flush()

        logger.info(
            "Collection locked",
            collection_id=collection_id,
            items=len(result.items),
            rows=len(result.rows),
        )
        return collection

    async def unlock(self, session: AsyncSession, collection_id: int) -> Collection:
        """Discard the snapshot and return the collection to live reads"""
        collection = await self._load(session, collection_id, for_update=True)

        was_frozen = bool(collection.is_frozen)
        collection.is_frozen = False
        collection.snapshot_json = None
        collection.frozen_at = None
        collection.updated_at = utc_now()
        await session.flush()

        logger.info("Collection unlocked", collection_id=collection_id, was_frozen=was_frozen)
        return collection

    @staticmethod
    def thaw(collection: Collection) -> ComparisonResult:
        """
        Deserialize a stored snapshot.

        Raises:
            CorruptStateError: Missing or undecodable snapshot document
        """
        if not collection.snapshot_json:
            raise CorruptStateError(
                f"Collection {collection.collection_id} is frozen but has no snapshot",
                value=collection.collection_id,
            )
        try:
            return ComparisonResult.model_validate_json(collection.snapshot_json)
        except PydanticValidationError as e:
            raise CorruptStateError(
                f"Collection {collection.collection_id} snapshot cannot be decoded: {e.error_count()} error(s)",
                value=collection.collection_id,
            ) from e

    async def resolve(self, session: AsyncSession, collection_id: int) -> ResolvedCollection:
        """Frozen snapshot when present and readable, otherwise a live comparison"""
        collection = await self._load(session, collection_id)

        if collection.is_frozen:
            try:
                result = self.thaw(collection)
                return ResolvedCollection(
                    items=result.items,
                    rows=result.rows,
                    collection_id=collection_id,
                    source="snapshot",
                    frozen_at=collection.frozen_at,
                )
            except CorruptStateError as e:
                logger.warning(
                    "Corrupt collection snapshot, falling back to live comparison",
                    collection_id=collection_id,
                    error=e.message,
                )

        result = await self.compute_live(session, collection)
        return ResolvedCollection(
            items=result.items,
            rows=result.rows,
            collection_id=collection_id,
            source="live",
        )
