"""
Collection Endpoints

Saved comparisons with freeze control: lock pins the current comparison,
unlock returns the collection to live reads, resolve serves whichever
applies.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.database.connection import get_db_dependency
from vehicle_specs.serving.api.deps import Services, get_services
from vehicle_specs.snapshots import (
    CollectionCreate,
    CollectionPage,
    CollectionSummary,
    CollectionUpdate,
    ResolvedCollection,
)

router = APIRouter()


class FreezeResponse(BaseModel):
    """Result of a lock / unlock transition"""
    ok: bool = True
    collection_id: int
    is_frozen: bool
    frozen_at: Optional[datetime] = None


@router.get("", response_model=CollectionPage)
async def list_collections(
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> CollectionPage:
    """List collections, newest first, with optional text search."""
    return await services.collections.list(db, search=q, page=page, page_size=page_size)


@router.post("", response_model=CollectionSummary, status_code=201)
async def create_collection(
    data: CollectionCreate,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> CollectionSummary:
    """Create a collection; lock=true freezes it immediately."""
    return await services.collections.create(db, data)


@router.get("/by-uuid/{public_uuid}", response_model=CollectionSummary)
async def get_collection_by_uuid(
    public_uuid: str,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> CollectionSummary:
    return await services.collections.get_by_uuid(db, public_uuid)


@router.get("/{collection_id}", response_model=CollectionSummary)
async def get_collection(
    collection_id: int,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> CollectionSummary:
    return await services.collections.get(db, collection_id)


@router.put("/{collection_id}", response_model=CollectionSummary)
async def update_collection(
    collection_id: int,
    data: CollectionUpdate,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> CollectionSummary:
    """Update title, options or selection. An existing snapshot is kept as is."""
    return await services.collections.update(db, collection_id, data)


@router.delete("/{collection_id}", status_code=204)
async def delete_collection(
    collection_id: int,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> Response:
    await services.collections.delete(db, collection_id)
    return Response(status_code=204)


@router.post("/{collection_id}/lock", response_model=FreezeResponse)
async def lock_collection(
    collection_id: int,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> FreezeResponse:
    """Freeze the collection's current comparison."""
    collection = await services.snapshots.lock(db, collection_id)
    return FreezeResponse(collection_id=collection_id, is_frozen=True, frozen_at=collection.frozen_at)


@router.post("/{collection_id}/unlock", response_model=FreezeResponse)
async def unlock_collection(
    collection_id: int,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> FreezeResponse:
    """Discard the snapshot; reads become live again."""
    await services.snapshots.unlock(db, collection_id)
    return FreezeResponse(collection_id=collection_id, is_frozen=False)


@router.get("/{collection_id}/resolve", response_model=ResolvedCollection)
async def resolve_collection(
    collection_id: int,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> ResolvedCollection:
    """Frozen snapshot if present and readable, otherwise a live comparison."""
    return await services.snapshots.resolve(db, collection_id)
