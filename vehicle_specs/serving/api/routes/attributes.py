"""
Attribute Catalog Endpoints

Read access to the catalog plus explicit cache invalidation for the
administration path.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import Language
from vehicle_specs.database.connection import get_db_dependency
from vehicle_specs.database.models import DataType, utc_now
from vehicle_specs.serving.api.deps import Services, get_services

router = APIRouter()


class EnumValueResponse(BaseModel):
    """Vocabulary entry"""
    code: str
    label: str


class AttributeResponse(BaseModel):
    """Catalog attribute definition"""
    code: str
    name: str
    name_localized: str
    unit: Optional[str]
    data_type: DataType
    category: str
    display_group: str
    display_order: int
    is_filterable: bool
    enum_values: List[EnumValueResponse] = []


class InvalidateResponse(BaseModel):
    ok: bool
    invalidated_at: datetime


@router.get("", response_model=List[AttributeResponse])
async def list_attributes(
    language: Language = Query(Language.DEFAULT),
    category: Optional[str] = None,
    filterable_only: bool = False,
    db: AsyncSession = Depends(get_db_dependency),
    services: Services = Depends(get_services),
) -> List[AttributeResponse]:
    """List catalog attributes in display order."""
    catalog = services.catalog
    definitions = sorted(
        (await catalog.definitions(db)).values(),
        key=lambda d: d.sort_key(language),
    )

    response = []
    for definition in definitions:
        if category and definition.category != category:
            continue
        if filterable_only and not definition.is_filterable:
            continue
        vocabulary = []
        if definition.data_type == DataType.ENUM:
            vocabulary = [
                EnumValueResponse(code=entry.code, label=entry.label_for(language))
                for entry in await catalog.vocabulary(db, definition.code)
            ]
        response.append(
            AttributeResponse(
                code=definition.code,
                name=definition.name,
                name_localized=definition.localized_name(language),
                unit=definition.unit,
                data_type=definition.data_type,
                category=definition.category,
                display_group=definition.display_group,
                display_order=definition.display_order,
                is_filterable=definition.is_filterable,
                enum_values=vocabulary,
            )
        )
    return response


@router.post("/cache/invalidate", response_model=InvalidateResponse)
async def invalidate_catalog(services: Services = Depends(get_services)) -> InvalidateResponse:
    """Drop the cached catalog; the next lookup reloads it."""
    services.catalog.invalidate()
    return InvalidateResponse(ok=True, invalidated_at=utc_now())
