"""
Test Suite Configuration
"""
from types import SimpleNamespace
from typing import AsyncGenerator

import polars as pl
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from vehicle_specs.catalog import AttributeCatalog
from vehicle_specs.comparison import ComparisonEngine
from vehicle_specs.config import Settings
from vehicle_specs.database.connection import build_session_factory
from vehicle_specs.database.models import (
    Attribute,
    AttributeEnumValue,
    Base,
    DataType,
    Edition,
    InheritanceLevel,
    Make,
    Model,
    ModelYear,
)
from vehicle_specs.editing import SpecWriter
from vehicle_specs.snapshots import CollectionService, SnapshotManager


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
async def test_engine(tmp_path):
    """One SQLite database file per test"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'specs.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def catalog() -> AttributeCatalog:
    return AttributeCatalog()


@pytest.fixture
def writer(catalog) -> SpecWriter:
    return SpecWriter(catalog)


@pytest.fixture
def engine(catalog) -> ComparisonEngine:
    return ComparisonEngine(catalog)


@pytest.fixture
def snapshots(engine) -> SnapshotManager:
    return SnapshotManager(engine)


@pytest.fixture
def collections(snapshots) -> CollectionService:
    return CollectionService(snapshots)


async def seed_reference_data(session: AsyncSession) -> SimpleNamespace:
    """
    One make/model with two model years and a small catalog.

    Editions: A and B (2024), C (2025). No attribute values are stored.
    """
    make = Make(name="Skoda")
    session.add(make)
    await session.flush()

    model = Model(make_id=make.make_id, name="Octavia")
    session.add(model)
    await session.flush()

    year_2024 = ModelYear(model_id=model.model_id, year=2024)
    year_2025 = ModelYear(model_id=model.model_id, year=2025)
    session.add_all([year_2024, year_2025])
    await session.flush()

    edition_a = Edition(model_year_id=year_2024.model_year_id, name="Ambition")
    edition_b = Edition(model_year_id=year_2024.model_year_id, name="Style")
    edition_c = Edition(model_year_id=year_2025.model_year_id, name="Ambition")
    session.add_all([edition_a, edition_b, edition_c])

    attributes = {
        "POWER_KW": Attribute(
            code="POWER_KW", name="Мощност", name_alt="Power", unit="kW",
            data_type=DataType.DECIMAL, category="Engine", display_group="01 Engine", display_order=10,
            is_filterable=True,
        ),
        "DISPLACEMENT_CC": Attribute(
            code="DISPLACEMENT_CC", name="Работен обем", name_alt="Displacement", unit="cc",
            data_type=DataType.INT, category="Engine", display_group="01 Engine", display_order=20,
        ),
        "DRIVE_TYPE": Attribute(
            code="DRIVE_TYPE", name="Задвижване", name_alt="Drive type",
            data_type=DataType.ENUM, category="Drivetrain", display_group="02 Drivetrain", display_order=10,
            is_filterable=True,
        ),
        "SEATS": Attribute(
            code="SEATS", name="Брой места", name_alt="Seats",
            data_type=DataType.INT, category="Body", display_group="03 Body", display_order=10,
        ),
        "HEATED_SEATS": Attribute(
            code="HEATED_SEATS", name="Подгрев на седалките", name_alt="Heated seats",
            data_type=DataType.BOOLEAN, category="Comfort", display_group="04 Comfort", display_order=10,
        ),
        "COLOR_NOTE": Attribute(
            code="COLOR_NOTE", name="Бележка за цвета", name_alt="Color note",
            data_type=DataType.TEXT, category="Exterior", display_group="05 Exterior", display_order=10,
        ),
    }
    session.add_all(attributes.values())
    await session.flush()

    drive = attributes["DRIVE_TYPE"].attribute_id
    session.add_all([
        AttributeEnumValue(attribute_id=drive, code="FWD", label="Предно", label_alt="Front-wheel drive"),
        AttributeEnumValue(attribute_id=drive, code="AWD_FULLTIME", label="AWD (постоянно)", label_alt="AWD (full-time)"),
        AttributeEnumValue(attribute_id=drive, code="AWD_ON_DEMAND", label=None, label_alt=None),
    ])
    await session.flush()

    return SimpleNamespace(
        make_id=make.make_id,
        model_id=model.model_id,
        year_2024=year_2024.model_year_id,
        year_2025=year_2025.model_year_id,
        a=edition_a.edition_id,
        b=edition_b.edition_id,
        c=edition_c.edition_id,
        attribute_ids={code: a.attribute_id for code, a in attributes.items()},
    )


@pytest.fixture
def reference_data():
    """The reference data builder, for tests that manage their own session"""
    return seed_reference_data


@pytest.fixture
async def seeded(test_db, writer) -> SimpleNamespace:
    """Reference data plus the shared model-level power of 150 kW"""
    ids = await seed_reference_data(test_db)
    await writer.upsert_value(test_db, InheritanceLevel.MODEL, ids.model_id, "POWER_KW", 150)
    await test_db.commit()
    return ids


@pytest.fixture
def sample_attributes_df() -> pl.DataFrame:
    """Attribute seed rows as read from CSV (every column text)"""
    return pl.DataFrame({
        "code": [" power_kw ", "SEATS", "DRIVE_TYPE", "HEATED_SEATS"],
        "name": ["Мощност", "Брой места", "Задвижване", "Подгрев"],
        "name_alt": ["Power", "Seats", "Drive type", ""],
        "unit": ["kW", "", "", None],
        "data_type": ["Decimal", "int", "enum", "boolean"],
        "category": ["Engine", "Body", "Drivetrain", "Comfort"],
        "display_group": ["01 Engine", "03 Body", "02 Drivetrain", ""],
        "display_order": ["10", "10", "", "5"],
        "is_filterable": ["true", "false", "yes", None],
    })


@pytest.fixture
def sample_enum_values_df() -> pl.DataFrame:
    return pl.DataFrame({
        "attribute_code": ["drive_type", "DRIVE_TYPE", "DRIVE_TYPE"],
        "code": ["fwd", "AWD_FULLTIME", "RWD"],
        "label": ["Предно", "AWD (постоянно)", "Задно"],
        "label_alt": ["Front-wheel drive", "AWD (full-time)", "Rear-wheel drive"],
    })


@pytest.fixture
def sample_taxonomy_df() -> pl.DataFrame:
    return pl.DataFrame({
        "make": ["Skoda", "Skoda", "Skoda"],
        "model": ["Octavia", "Octavia", "Octavia"],
        "year": ["2024", "2024", "2025"],
        "edition": ["Ambition", "Style", "Ambition"],
    })


@pytest.fixture
def sample_values_df() -> pl.DataFrame:
    return pl.DataFrame({
        "make": ["Skoda", "Skoda", "Skoda", "Skoda"],
        "model": ["Octavia", "Octavia", "Octavia", "Octavia"],
        "year": [None, "2024", "2024", "2024"],
        "edition": [None, None, "Style", "Style"],
        "code": ["SEATS", "POWER_KW", "POWER_KW", "drive_type"],
        "value": ["5", "110", "150", "4x4"],
    })
