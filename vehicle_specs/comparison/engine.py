"""
Comparison / Diff Engine

The one place where editions are pivoted into attribute rows. Every caller
(ad hoc comparisons, collection reads, snapshot locking, the single-edition
listing) goes through ComparisonEngine, so filtering rules cannot drift
between call sites.

Pipeline:
1. Load item headers in canonical order (make, model, year, edition name)
2. Resolve effective values and overlay the sidecar under the given policy
3. Pivot into rows keyed by attribute code
4. Drop rows where every item is absent
5. Apply the code allow-list (after pivoting; unknown codes are ignored)
6. Optionally keep only rows whose canonical values differ
7. Sort by display group, display order, localized name
"""

from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import AttributeCatalog, AttributeDefinition, Language
from vehicle_specs.comparison.models import (
    AttributeListing,
    ComparisonOptions,
    ComparisonResult,
    ComparisonRow,
    ItemHeader,
)
from vehicle_specs.catalog.definitions import collation_key
from vehicle_specs.database.models import Edition, Make, MergePolicy, Model, ModelYear
from vehicle_specs.errors import NotFoundError, ValidationError
from vehicle_specs.resolution import (
    EffectiveValue,
    EffectiveValueResolver,
    canonical_value,
    load_sidecars,
    merge_sidecar,
)

logger = structlog.get_logger(__name__)


class ComparisonEngine:
    """
    Multi-edition comparison.

    Example:
        engine = ComparisonEngine(catalog)
        result = await engine.compare(
            db, [12, 15], ComparisonOptions(only_differences=True), MergePolicy.SIDECAR_WINS
        )
    """

    def __init__(self, catalog: AttributeCatalog, resolver: Optional[EffectiveValueResolver] = None):
        self.catalog = catalog
        self.resolver = resolver or EffectiveValueResolver(catalog)

    async def load_headers(self, session: AsyncSession, edition_ids: Iterable[int]) -> List[ItemHeader]:
        """
        Item headers in canonical order.

        Raises:
            NotFoundError: Any of the editions does not exist
        """
        ids = list(dict.fromkeys(edition_ids))
        rows = (
            await session.execute(
                select(
                    Edition.edition_id,
                    Edition.name,
                    ModelYear.year,
                    Model.name.label("model_name"),
                    Make.name.label("make_name"),
                )
                .join(ModelYear, ModelYear.model_year_id == Edition.model_year_id)
                .join(Model, Model.model_id == ModelYear.model_id)
                .join(Make, Make.make_id == Model.make_id)
                .where(Edition.edition_id.in_(ids))
            )
        ).all()

        found = {row.edition_id for row in rows}
        missing = [edition_id for edition_id in ids if edition_id not in found]
        if missing:
            raise NotFoundError(f"Unknown edition id(s): {', '.join(map(str, missing))}", value=missing)

        ordered = sorted(
            rows,
            key=lambda r: (
                collation_key(r.make_name),
                collation_key(r.model_name),
                r.year,
                collation_key(r.name),
                r.edition_id,
            ),
        )
        return [
            ItemHeader(
                id=row.edition_id,
                name=row.name,
                parent_name=str(row.year),
                grandparent_name=row.model_name,
                ordinal=position,
                make_name=row.make_name,
                year=row.year,
            )
            for position, row in enumerate(ordered, start=1)
        ]

    async def merged_values(
        self,
        session: AsyncSession,
        edition_ids: Iterable[int],
        language: Language,
        policy: MergePolicy,
    ) -> Dict[int, Dict[str, EffectiveValue]]:
        """Effective values with the sidecar overlaid, per edition"""
        ids = list(dict.fromkeys(edition_ids))
        effective = await self.resolver.resolve_many(session, ids, language)
        sidecars = await load_sidecars(session, ids)
        definitions = await self.catalog.definitions(session)
        return {
            edition_id: merge_sidecar(effective[edition_id], sidecars.get(edition_id), language, definitions, policy)
            for edition_id in ids
        }

    async def compare(
        self,
        session: AsyncSession,
        item_ids: Iterable[int],
        options: ComparisonOptions,
        policy: MergePolicy,
    ) -> ComparisonResult:
        """
        Compare editions attribute by attribute.

        Raises:
            ValidationError: item_ids is empty
            NotFoundError: Any of the editions does not exist
        """
        ids = list(dict.fromkeys(int(i) for i in (item_ids or [])))
        if not ids:
            raise ValidationError("item_ids must be a non-empty list", value=[])

        headers = await self.load_headers(session, ids)
        order = [header.id for header in headers]
        merged = await self.merged_values(session, order, options.language, policy)

        rows = self._pivot(order, merged, options.language)

        if options.codes:
            allowed = set(options.codes)
            rows = [row for row in rows if row.code in allowed]

        if options.only_differences:
            rows = [
                row for row in rows
                if len({canonical_value(row.values[edition_id]) for edition_id in order}) >= 2
            ]

        logger.debug(
            "Comparison computed",
            items=len(order),
            rows=len(rows),
            only_differences=options.only_differences,
            merge_policy=policy.value,
        )
        return ComparisonResult(items=headers, rows=rows)

    def _pivot(
        self,
        order: List[int],
        merged: Dict[int, Dict[str, EffectiveValue]],
        language: Language,
    ) -> List[ComparisonRow]:
        definitions: Dict[str, AttributeDefinition] = {}
        for edition_id in order:
            for code, item in merged[edition_id].items():
                known = definitions.get(code)
                if known is None or (known.unit is None and item.definition.unit):
                    definitions[code] = item.definition

        ordered = sorted(definitions.values(), key=lambda d: d.sort_key(language))
        rows = []
        for definition in ordered:
            cells = {edition_id: merged[edition_id].get(definition.code) for edition_id in order}
            if all(cell is None for cell in cells.values()):
                continue
            rows.append(
                ComparisonRow(
                    code=definition.code,
                    name=definition.name,
                    name_localized=definition.localized_name(language),
                    unit=definition.unit,
                    data_type=definition.data_type,
                    category=definition.category,
                    display_group=definition.display_group,
                    display_order=definition.display_order,
                    values={edition_id: cell.value if cell else None for edition_id, cell in cells.items()},
                    sources={edition_id: cell.source_level if cell else None for edition_id, cell in cells.items()},
                )
            )
        return rows

    async def list_item_attributes(
        self,
        session: AsyncSession,
        edition_id: int,
        language: Language,
        policy: MergePolicy,
    ) -> List[AttributeListing]:
        """
        Every catalog attribute for one edition, plus sidecar-only attributes.

        Absent attributes are listed with value None and no source level.
        """
        merged = (await self.merged_values(session, [edition_id], language, policy))[edition_id]
        definitions = await self.catalog.definitions(session)

        entries = [merged.get(code) or EffectiveValue(definition, None, None) for code, definition in definitions.items()]
        entries.extend(item for code, item in merged.items() if code not in definitions)
        entries.sort(key=lambda item: item.definition.sort_key(language))

        return [
            AttributeListing(
                code=item.definition.code,
                name=item.definition.name,
                name_localized=item.definition.localized_name(language),
                unit=item.definition.unit,
                data_type=item.definition.data_type,
                category=item.definition.category,
                display_group=item.definition.display_group,
                display_order=item.definition.display_order,
                is_filterable=item.definition.is_filterable,
                source_level=item.source_level,
                from_sidecar=item.from_sidecar,
                value=item.value,
            )
            for item in entries
        ]
