"""
Database Models - Specification Catalog

This module defines the relational model behind the specification engine:

Taxonomy (three inheritance levels):
- Make / Model: a model is the grandparent level
- ModelYear: the parent level
- Edition: the item level (one concrete vehicle configuration)

Catalog:
- Attribute: attribute definitions (typed, grouped, ordered)
- AttributeEnumValue: enum vocabulary scoped to one attribute

Values:
- AttributeValue: EAV rows keyed by (level, owner_id, attribute_id)
- AttributeValueI18n: localized text for item-level text attributes
- EditionSpecs: the freeform sidecar document of one edition

Collections:
- Collection: a saved comparison sheet / brochure, optionally frozen
- CollectionEdition / CollectionYear: its item selection
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def utc_now() -> datetime:
    """Current UTC time, naive, matching the timezone-less DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# ENUMERATIONS
# =============================================================================

class DataType(str, Enum):
    """Attribute data type"""
    INT = "int"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    TEXT = "text"
    ENUM = "enum"


class InheritanceLevel(str, Enum):
    """Level that owns an attribute value, most specific first"""
    EDITION = "edition"
    MODEL_YEAR = "model_year"
    MODEL = "model"


# Resolution order: item, then parent, then grandparent
LEVEL_PRECEDENCE = (
    InheritanceLevel.EDITION,
    InheritanceLevel.MODEL_YEAR,
    InheritanceLevel.MODEL,
)


class SelectionMode(str, Enum):
    """How a collection selects its editions"""
    EDITIONS = "editions"
    YEARS = "years"
    ALL_YEARS = "all_years"


class MergePolicy(str, Enum):
    """Read-time precedence between catalog values and the sidecar document"""
    SIDECAR_WINS = "sidecar_wins"
    CATALOG_WINS = "catalog_wins"


def _enum_column(enum_cls) -> SQLEnum:
    return SQLEnum(enum_cls, values_callable=lambda e: [m.value for m in e], native_enum=False)


# =============================================================================
# TAXONOMY
# =============================================================================

class Make(Base):
    """Vehicle manufacturer"""
    __tablename__ = "make"

    make_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    models: Mapped[List["Model"]] = relationship(back_populates="make")


class Model(Base):
    """Vehicle model - the grandparent inheritance level"""
    __tablename__ = "model"

    model_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    make_id: Mapped[int] = mapped_column(ForeignKey("make.make_id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    make: Mapped["Make"] = relationship(back_populates="models")
    years: Mapped[List["ModelYear"]] = relationship(back_populates="model")

    __table_args__ = (
        UniqueConstraint("make_id", "name", name="uq_model_make_name"),
    )


class ModelYear(Base):
    """Model year - the parent inheritance level"""
    __tablename__ = "model_year"

    model_year_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(ForeignKey("model.model_id", ondelete="CASCADE"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    model: Mapped["Model"] = relationship(back_populates="years")
    editions: Mapped[List["Edition"]] = relationship(back_populates="model_year")

    __table_args__ = (
        UniqueConstraint("model_id", "year", name="uq_model_year"),
    )


class Edition(Base):
    """Edition - one concrete vehicle configuration (the item level)"""
    __tablename__ = "edition"

    edition_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_year_id: Mapped[int] = mapped_column(
        ForeignKey("model_year.model_year_id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    model_year: Mapped["ModelYear"] = relationship(back_populates="editions")

    __table_args__ = (
        UniqueConstraint("model_year_id", "name", name="uq_edition_year_name"),
    )


# =============================================================================
# CATALOG
# =============================================================================

class Attribute(Base):
    """
    Attribute Definition

    Created by the administration tool; treated as immutable once values
    reference it.
    """
    __tablename__ = "attribute"

    attribute_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)  # default language
    name_alt: Mapped[Optional[str]] = mapped_column(String(200))  # alternate language
    unit: Mapped[Optional[str]] = mapped_column(String(30))
    data_type: Mapped[DataType] = mapped_column(_enum_column(DataType), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    display_group: Mapped[Optional[str]] = mapped_column(String(100))
    display_order: Mapped[Optional[int]] = mapped_column(Integer)
    is_filterable: Mapped[bool] = mapped_column(Boolean, default=False)

    enum_values: Mapped[List["AttributeEnumValue"]] = relationship(back_populates="attribute")

    __table_args__ = (
        Index("ix_attribute_group_order", "display_group", "display_order"),
    )


class AttributeEnumValue(Base):
    """Enum vocabulary entry, scoped to one enum-typed attribute"""
    __tablename__ = "attribute_enum_value"

    enum_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attribute_id: Mapped[int] = mapped_column(
        ForeignKey("attribute.attribute_id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(200))  # default language
    label_alt: Mapped[Optional[str]] = mapped_column(String(200))  # alternate language

    attribute: Mapped["Attribute"] = relationship(back_populates="enum_values")

    __table_args__ = (
        UniqueConstraint("attribute_id", "code", name="uq_enum_attribute_code"),
    )


# =============================================================================
# VALUES
# =============================================================================

VALUE_SLOTS = ("value_numeric", "value_text", "value_boolean", "value_enum_id")


class AttributeValue(Base):
    """
    EAV Value Record

    One row per (level, owner, attribute). owner_id is an edition_id,
    model_year_id or model_id depending on level. Exactly one value slot
    is populated, matching the attribute's data type.
    """
    __tablename__ = "attribute_value"

    value_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[InheritanceLevel] = mapped_column(_enum_column(InheritanceLevel), nullable=False)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    attribute_id: Mapped[int] = mapped_column(
        ForeignKey("attribute.attribute_id", ondelete="CASCADE"), nullable=False
    )

    value_numeric: Mapped[Optional[float]] = mapped_column(Numeric(18, 6, asdecimal=False))
    value_text: Mapped[Optional[str]] = mapped_column(Text)
    value_boolean: Mapped[Optional[bool]] = mapped_column(Boolean)
    value_enum_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("attribute_enum_value.enum_id", ondelete="RESTRICT")
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("level", "owner_id", "attribute_id", name="uq_value_level_owner_attribute"),
        CheckConstraint(
            " + ".join(f"(CASE WHEN {slot} IS NOT NULL THEN 1 ELSE 0 END)" for slot in VALUE_SLOTS) + " = 1",
            name="ck_value_single_slot",
        ),
        Index("ix_value_owner", "level", "owner_id"),
    )

    def populated_slots(self) -> List[str]:
        """Names of the value slots that hold a value"""
        return [slot for slot in VALUE_SLOTS if getattr(self, slot) is not None]


class AttributeValueI18n(Base):
    """Localized text variant of an item-level text attribute"""
    __tablename__ = "attribute_value_i18n"

    edition_id: Mapped[int] = mapped_column(
        ForeignKey("edition.edition_id", ondelete="CASCADE"), primary_key=True
    )
    attribute_id: Mapped[int] = mapped_column(
        ForeignKey("attribute.attribute_id", ondelete="CASCADE"), primary_key=True
    )
    lang: Mapped[str] = mapped_column(String(10), primary_key=True)
    value_text: Mapped[str] = mapped_column(Text, nullable=False)


class EditionSpecs(Base):
    """
    Sidecar Document

    specs_json:  {"attributes": {CODE: {"v": value, "dt": type hint, "u": unit hint}}}
    specs_i18n:  {lang: {"attributes": {CODE: text}}}
    """
    __tablename__ = "edition_specs"

    edition_id: Mapped[int] = mapped_column(
        ForeignKey("edition.edition_id", ondelete="CASCADE"), primary_key=True
    )
    specs_json: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    specs_i18n: Mapped[Optional[dict]] = mapped_column(JSONDocument)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# =============================================================================
# COLLECTIONS
# =============================================================================

class Collection(Base):
    """
    Saved comparison (brochure / comparison sheet)

    While is_frozen is set, snapshot_json holds the serialized comparison
    result and is served instead of a live computation.
    """
    __tablename__ = "collection"

    collection_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    public_uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    selection_mode: Mapped[SelectionMode] = mapped_column(
        _enum_column(SelectionMode), nullable=False, default=SelectionMode.EDITIONS
    )
    model_id: Mapped[Optional[int]] = mapped_column(ForeignKey("model.model_id", ondelete="SET NULL"))

    only_differences: Mapped[bool] = mapped_column(Boolean, default=False)
    language: Mapped[str] = mapped_column(String(10), default="default")
    merge_policy: Mapped[MergePolicy] = mapped_column(
        _enum_column(MergePolicy), nullable=False, default=MergePolicy.CATALOG_WINS
    )

    is_frozen: Mapped[bool] = mapped_column(Boolean, default=False)
    snapshot_json: Mapped[Optional[str]] = mapped_column(Text)
    frozen_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_collection_created", "created_at"),
    )


class CollectionEdition(Base):
    """Explicit edition selection of a collection, in display order"""
    __tablename__ = "collection_edition"

    collection_id: Mapped[int] = mapped_column(
        ForeignKey("collection.collection_id", ondelete="CASCADE"), primary_key=True
    )
    edition_id: Mapped[int] = mapped_column(
        ForeignKey("edition.edition_id", ondelete="CASCADE"), primary_key=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class CollectionYear(Base):
    """Model-year selection of a collection"""
    __tablename__ = "collection_year"

    collection_id: Mapped[int] = mapped_column(
        ForeignKey("collection.collection_id", ondelete="CASCADE"), primary_key=True
    )
    model_year_id: Mapped[int] = mapped_column(
        ForeignKey("model_year.model_year_id", ondelete="CASCADE"), primary_key=True
    )
