"""
Collection item-set resolution by selection mode.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.database.models import (
    Collection,
    CollectionEdition,
    CollectionYear,
    Edition,
    ModelYear,
    SelectionMode,
)


async def resolve_item_ids(session: AsyncSession, collection: Collection) -> List[int]:
    """
    Edition ids a collection currently covers.

    - editions:  the explicit list, in stored order
    - years:     every edition of the selected model years
    - all_years: every edition of the collection's model, newest year first
    """
    if collection.selection_mode == SelectionMode.EDITIONS:
        query = (
            select(CollectionEdition.edition_id)
            .where(CollectionEdition.collection_id == collection.collection_id)
            .order_by(CollectionEdition.sort_order, CollectionEdition.edition_id)
        )
    elif collection.selection_mode == SelectionMode.YEARS:
        query = (
            select(Edition.edition_id)
            .join(CollectionYear, CollectionYear.model_year_id == Edition.model_year_id)
            .where(CollectionYear.collection_id == collection.collection_id)
            .order_by(Edition.edition_id)
        )
    else:
        if collection.model_id is None:
            return []
        query = (
            select(Edition.edition_id)
            .join(ModelYear, ModelYear.model_year_id == Edition.model_year_id)
            .where(ModelYear.model_id == collection.model_id)
            .order_by(ModelYear.year.desc(), Edition.name, Edition.edition_id)
        )

    return list((await session.execute(query)).scalars().all())


async def selected_edition_ids(session: AsyncSession, collection_id: int) -> List[int]:
    rows = await session.execute(
        select(CollectionEdition.edition_id)
        .where(CollectionEdition.collection_id == collection_id)
        .order_by(CollectionEdition.sort_order, CollectionEdition.edition_id)
    )
    return list(rows.scalars().all())


async def selected_year_ids(session: AsyncSession, collection_id: int) -> List[int]:
    rows = await session.execute(
        select(CollectionYear.model_year_id)
        .where(CollectionYear.collection_id == collection_id)
        .order_by(CollectionYear.model_year_id)
    )
    return list(rows.scalars().all())
