"""
Catalog Seeding

Loads the attribute catalog, enum vocabularies, the make/model/year/edition
taxonomy and (optionally) attribute values from CSV files with Polars.

Expected files in a seed directory (all optional):
- attributes.csv   code,name,name_alt,unit,data_type,category,display_group,display_order,is_filterable
- enum_values.csv  attribute_code,code,label,label_alt
- taxonomy.csv     make,model,year,edition
- values.csv       make,model,year,edition,code,value
                   (blank edition -> model-year level, blank year -> model level)

Rows are upserted (get-or-create), so seeding is repeatable. The catalog
cache is invalidated once definitions have changed.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import polars as pl
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vehicle_specs.catalog import AttributeCatalog
from vehicle_specs.database.models import (
    Attribute,
    AttributeEnumValue,
    DataType,
    Edition,
    InheritanceLevel,
    Make,
    Model,
    ModelYear,
)
from vehicle_specs.editing import SpecWriter
from vehicle_specs.errors import ValidationError
from vehicle_specs.resolution.values import parse_boolean

logger = structlog.get_logger(__name__)

ATTRIBUTE_COLUMNS = ["code", "name", "name_alt", "unit", "data_type", "category",
                     "display_group", "display_order", "is_filterable"]
ENUM_COLUMNS = ["attribute_code", "code", "label", "label_alt"]
TAXONOMY_COLUMNS = ["make", "model", "year", "edition"]
VALUE_COLUMNS = ["make", "model", "year", "edition", "code", "value"]

_DATA_TYPES = [dt.value for dt in DataType]


@dataclass
class SeedResult:
    """Counts of rows created or updated by a seeding run"""
    attributes_created: int = 0
    attributes_updated: int = 0
    enum_values: int = 0
    makes: int = 0
    models: int = 0
    model_years: int = 0
    editions: int = 0
    values: int = 0


def read_seed_csv(path: Union[str, Path]) -> pl.DataFrame:
    """Read a seed file with every column as text, so codes like "01" survive"""
    return pl.read_csv(path, infer_schema_length=0, null_values=["", "NULL", "null"])


def _with_columns(df: pl.DataFrame, columns: List[str], required: List[str], source: str) -> pl.DataFrame:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValidationError(f"{source}: missing required column(s): {', '.join(missing)}")
    df = df.with_columns([pl.lit(None, dtype=pl.Utf8).alias(c) for c in columns if c not in df.columns])
    df = df.select(columns).with_columns([pl.col(c).cast(pl.Utf8).str.strip_chars() for c in columns])
    # blank cells become nulls after trimming
    return df.with_columns([
        pl.when(pl.col(c) == "").then(None).otherwise(pl.col(c)).alias(c) for c in columns
    ])


def prepare_attributes(df: pl.DataFrame) -> pl.DataFrame:
    """Normalize attribute rows: trimmed, upper-case codes, validated data types"""
    df = _with_columns(df, ATTRIBUTE_COLUMNS, ["code", "name", "data_type", "category"], "attributes")
    df = (
        df.filter(pl.col("code").is_not_null())
        .with_columns([
            pl.col("code").str.to_uppercase(),
            pl.col("data_type").str.to_lowercase(),
            pl.col("display_order").cast(pl.Int64, strict=False),
        ])
        .unique(subset=["code"], keep="last", maintain_order=True)
    )

    invalid = df.filter(~pl.col("data_type").is_in(_DATA_TYPES) | pl.col("data_type").is_null())
    if invalid.height:
        bad = ", ".join(f"{r['code']}={r['data_type']}" for r in invalid.to_dicts())
        raise ValidationError(f"attributes: invalid data_type ({bad}); allowed: {', '.join(_DATA_TYPES)}")

    unnamed = df.filter(pl.col("name").is_null() | pl.col("category").is_null())
    if unnamed.height:
        codes = ", ".join(unnamed["code"].to_list())
        raise ValidationError(f"attributes: name and category are required ({codes})")
    return df


def prepare_enum_values(df: pl.DataFrame) -> pl.DataFrame:
    df = _with_columns(df, ENUM_COLUMNS, ["attribute_code", "code"], "enum_values")
    return (
        df.filter(pl.col("attribute_code").is_not_null() & pl.col("code").is_not_null())
        .with_columns([
            pl.col("attribute_code").str.to_uppercase(),
            pl.col("code").str.to_uppercase(),
        ])
        .unique(subset=["attribute_code", "code"], keep="last", maintain_order=True)
    )


def prepare_taxonomy(df: pl.DataFrame) -> pl.DataFrame:
    df = _with_columns(df, TAXONOMY_COLUMNS, TAXONOMY_COLUMNS, "taxonomy")
    df = df.with_columns(pl.col("year").cast(pl.Int64, strict=False))
    incomplete = df.filter(pl.any_horizontal([pl.col(c).is_null() for c in TAXONOMY_COLUMNS]))
    if incomplete.height:
        raise ValidationError(f"taxonomy: {incomplete.height} row(s) missing make, model, year or edition")
    return df.unique(maintain_order=True)


def prepare_values(df: pl.DataFrame) -> pl.DataFrame:
    df = _with_columns(df, VALUE_COLUMNS, ["make", "model", "code", "value"], "values")
    return (
        df.filter(pl.col("make").is_not_null() & pl.col("model").is_not_null() & pl.col("code").is_not_null())
        .with_columns([
            pl.col("year").cast(pl.Int64, strict=False),
            pl.col("code").str.to_uppercase(),
        ])
    )


class CatalogSeeder:
    """
    Upsert catalog and taxonomy rows from DataFrames.

    Example:
        seeder = CatalogSeeder(catalog)
        async with get_db() as db:
            result = await seeder.seed_directory(db, Path("data/seed"))
    """

    def __init__(self, catalog: AttributeCatalog, writer: Optional[SpecWriter] = None):
        self.catalog = catalog
        self.writer = writer or SpecWriter(catalog)
        self._makes: Dict[str, int] = {}
        self._models: Dict[Tuple[int, str], int] = {}
        self._years: Dict[Tuple[int, int], int] = {}
        self._editions: Dict[Tuple[int, str], int] = {}

    async def seed_attributes(self, session: AsyncSession, df: pl.DataFrame, result: SeedResult) -> None:
        rows = prepare_attributes(df).to_dicts()
        existing = {
            a.code: a for a in (
                await session.execute(select(Attribute).where(Attribute.code.in_([r["code"] for r in rows])))
            ).scalars()
        }
        for row in rows:
            attribute = existing.get(row["code"])
            if attribute is None:
                attribute = Attribute(code=row["code"])
                session.add(attribute)
                result.attributes_created += 1
            else:
                result.attributes_updated += 1
            attribute.name = row["name"]
            attribute.name_alt = row["name_alt"]
            attribute.unit = row["unit"]
            attribute.data_type = DataType(row["data_type"])
            attribute.category = row["category"]
            attribute.display_group = row["display_group"]
            attribute.display_order = row["display_order"]
            attribute.is_filterable = bool(parse_boolean(row["is_filterable"]))
        await session.flush()
        logger.info("Attributes seeded", created=result.attributes_created, updated=result.attributes_updated)

    async def seed_enum_values(self, session: AsyncSession, df: pl.DataFrame, result: SeedResult) -> None:
        rows = prepare_enum_values(df).to_dicts()
        attributes = {
            a.code: a for a in (
                await session.execute(
                    select(Attribute).where(Attribute.code.in_({r["attribute_code"] for r in rows}))
                )
            ).scalars()
        }

        for row in rows:
            attribute = attributes.get(row["attribute_code"])
            if attribute is None:
                raise ValidationError(f"enum_values: unknown attribute {row['attribute_code']}", code=row["attribute_code"])
            if attribute.data_type != DataType.ENUM:
                raise ValidationError(f"enum_values: attribute {attribute.code} is not an enum", code=attribute.code)

            entry = (
                await session.execute(
                    select(AttributeEnumValue).where(
                        AttributeEnumValue.attribute_id == attribute.attribute_id,
                        AttributeEnumValue.code == row["code"],
                    )
                )
            ).scalar_one_or_none()
            if entry is None:
                entry = AttributeEnumValue(attribute_id=attribute.attribute_id, code=row["code"])
                session.add(entry)
            entry.label = row["label"]
            entry.label_alt = row["label_alt"]
            result.enum_values += 1
        await session.flush()
        logger.info("Enum vocabularies seeded", enum_values=result.enum_values)

    async def _make_id(self, session: AsyncSession, name: str, result: SeedResult) -> int:
        if name not in self._makes:
            make = (await session.execute(select(Make).where(Make.name == name))).scalar_one_or_none()
            if make is None:
                make = Make(name=name)
                session.add(make)
                await session.flush()
                result.makes += 1
            self._makes[name] = make.make_id
        return self._makes[name]

    async def _model_id(self, session: AsyncSession, make_id: int, name: str, result: SeedResult) -> int:
        key = (make_id, name)
        if key not in self._models:
            model = (
                await session.execute(select(Model).where(Model.make_id == make_id, Model.name == name))
            ).scalar_one_or_none()
            if model is None:
                model = Model(make_id=make_id, name=name)
                session.add(model)
                await session.flush()
                result.models += 1
            self._models[key] = model.model_id
        return self._models[key]

    async def _model_year_id(self, session: AsyncSession, model_id: int, year: int, result: SeedResult) -> int:
        key = (model_id, year)
        if key not in self._years:
            model_year = (
                await session.execute(select(ModelYear).where(ModelYear.model_id == model_id, ModelYear.year == year))
            ).scalar_one_or_none()
            if model_year is None:
                model_year = ModelYear(model_id=model_id, year=year)
                session.add(model_year)
                await session.flush()
                result.model_years += 1
            self._years[key] = model_year.model_year_id
        return self._years[key]

    async def _edition_id(self, session: AsyncSession, model_year_id: int, name: str, result: SeedResult) -> int:
        key = (model_year_id, name)
        if key not in self._editions:
            edition = (
                await session.execute(
                    select(Edition).where(Edition.model_year_id == model_year_id, Edition.name == name)
                )
            ).scalar_one_or_none()
            if edition is None:
                edition = Edition(model_year_id=model_year_id, name=name)
                session.add(edition)
                await session.flush()
                result.editions += 1
            self._editions[key] = edition.edition_id
        return self._editions[key]

    async def seed_taxonomy(self, session: AsyncSession, df: pl.DataFrame, result: SeedResult) -> None:
        for row in prepare_taxonomy(df).to_dicts():
            make_id = await self._make_id(session, row["make"], result)
            model_id = await self._model_id(session, make_id, row["model"], result)
            model_year_id = await self._model_year_id(session, model_id, row["year"], result)
            await self._edition_id(session, model_year_id, row["edition"], result)
        logger.info(
            "Taxonomy seeded",
            makes=result.makes,
            models=result.models,
            model_years=result.model_years,
            editions=result.editions,
        )

    async def seed_values(self, session: AsyncSession, df: pl.DataFrame, result: SeedResult) -> None:
        for row in prepare_values(df).to_dicts():
            make_id = await self._make_id(session, row["make"], result)
            model_id = await self._model_id(session, make_id, row["model"], result)
            if row["year"] is None:
                level, owner_id = InheritanceLevel.MODEL, model_id
            else:
                model_year_id = await self._model_year_id(session, model_id, row["year"], result)
                if row["edition"] is None:
                    level, owner_id = InheritanceLevel.MODEL_YEAR, model_year_id
                else:
                    level, owner_id = InheritanceLevel.EDITION, await self._edition_id(
                        session, model_year_id, row["edition"], result
                    )
            await self.writer.upsert_value(session, level, owner_id, row["code"], row["value"])
            result.values += 1
        logger.info("Attribute values seeded", values=result.values)

    async def seed_frames(
        self,
        session: AsyncSession,
        attributes: Optional[pl.DataFrame] = None,
        enum_values: Optional[pl.DataFrame] = None,
        taxonomy: Optional[pl.DataFrame] = None,
        values: Optional[pl.DataFrame] = None,
    ) -> SeedResult:
        """Seed from in-memory frames, in dependency order"""
        result = SeedResult()
        if attributes is not None:
            await self.seed_attributes(session, attributes, result)
        if enum_values is not None:
            await self.seed_enum_values(session, enum_values, result)
        if attributes is not None or enum_values is not None:
            self.catalog.invalidate()
        if taxonomy is not None:
            await self.seed_taxonomy(session, taxonomy, result)
        if values is not None:
            await self.seed_values(session, values, result)
        return result

    async def seed_directory(self, session: AsyncSession, directory: Union[str, Path]) -> SeedResult:
        """Seed from the CSV files present in a directory"""
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Seed directory not found: {directory}")

        frames = {}
        for name in ("attributes", "enum_values", "taxonomy", "values"):
            path = directory / f"{name}.csv"
            if path.exists():
                frames[name] = read_seed_csv(path)
                logger.info("Read seed file", file=str(path), rows=frames[name].height)

        return await self.seed_frames(session, **frames)
