"""
Edition Endpoints

Comparison, effective-attribute listing and the spec write workflow.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import Language
from vehicle_specs.comparison import AttributeListing, ComparisonOptions, ComparisonResult
from vehicle_specs.config import get_settings
from vehicle_specs.database.connection import get_db_dependency
from vehicle_specs.database.models import MergePolicy
from vehicle_specs.editing import PurgeMode, SpecDocument, SpecWriteRequest, WriteSummary
from vehicle_specs.serving.api.deps import Services, get_services

settings = get_settings()
router = APIRouter()


def _default_policy() -> MergePolicy:
    return MergePolicy(settings.catalog.default_merge_policy)


class CompareRequest(BaseModel):
    """Comparison request"""
    item_ids: List[int] = Field(default_factory=list, validation_alias=AliasChoices("item_ids", "edition_ids"))
    only_differences: bool = False
    codes: Optional[List[str]] = None
    language: Language = Language.DEFAULT
    merge_policy: MergePolicy = Field(default_factory=_default_policy)


class PurgeResponse(BaseModel):
    ok: bool = True
    sidecar: int
    values: int


@router.post("/compare", response_model=ComparisonResult)
async def compare_editions(
    request: CompareRequest,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> ComparisonResult:
    """
    Compare editions attribute by attribute.

    An empty item list is a 400; unknown ids are a 404.
    """
    options = ComparisonOptions(
        only_differences=request.only_differences,
        codes=request.codes,
        language=request.language,
    )
    return await services.comparison.compare(db, request.item_ids, options, request.merge_policy)


@router.get("/{edition_id}/attributes", response_model=List[AttributeListing])
async def list_edition_attributes(
    edition_id: int,
    language: Language = Query(Language.DEFAULT),
    merge_policy: Optional[MergePolicy] = Query(None),
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> List[AttributeListing]:
    """Every catalog attribute with its effective value and source level."""
    return await services.comparison.list_item_attributes(
        db, edition_id, language, merge_policy or _default_policy()
    )


@router.get("/{edition_id}/specs", response_model=SpecDocument)
async def get_edition_specs(
    edition_id: int,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> SpecDocument:
    """Stored edition-level values and sidecar, for editing."""
    return await services.writer.read(db, edition_id)


@router.put("/{edition_id}/specs", response_model=WriteSummary)
async def write_edition_specs(
    edition_id: int,
    request: SpecWriteRequest,
    replace: Optional[bool] = Query(None, description="Overrides the body's replace flag"),
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> WriteSummary:
    """
    Write enums, values, texts and the sidecar in one transaction.

    The sidecar is merge-patched unless replace is set.
    """
    if replace is not None:
        request = request.model_copy(update={"replace": replace})
    return await services.writer.write(db, edition_id, request)


@router.delete("/{edition_id}/specs", response_model=PurgeResponse)
async def purge_edition_specs(
    edition_id: int,
    purge: PurgeMode = Query(PurgeMode.JSON),
    codes: Optional[str] = Query(None, description="Comma-separated attribute codes (eav/both)"),
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> PurgeResponse:
    """Remove the sidecar, selected edition-level values, or both."""
    code_list = [code.strip() for code in (codes or "").split(",") if code.strip()]
    removed = await services.writer.purge(db, edition_id, purge, code_list)
    return PurgeResponse(**removed)
