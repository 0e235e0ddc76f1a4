"""
Catalog value objects: attribute definitions and enum vocabulary entries.
"""

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from vehicle_specs.config import get_settings
from vehicle_specs.database.models import Attribute, AttributeEnumValue, DataType

settings = get_settings()


class Language(str, Enum):
    """Request language; storage codes come from CatalogSettings"""
    DEFAULT = "default"
    ALT = "alt"


@dataclass(frozen=True)
class EnumEntry:
    """One vocabulary entry of an enum attribute"""
    enum_id: int
    attribute_code: str
    code: str
    label: Optional[str] = None
    label_alt: Optional[str] = None

    def label_for(self, language: str) -> str:
        """Label in the requested language, or the raw code when it has none"""
        label = self.label_alt if language == "alt" else self.label
        return label.strip() if label and label.strip() else self.code

    @classmethod
    def from_row(cls, row: AttributeEnumValue, attribute_code: str) -> "EnumEntry":
        return cls(
            enum_id=row.enum_id,
            attribute_code=attribute_code,
            code=row.code,
            label=row.label,
            label_alt=row.label_alt,
        )


@dataclass(frozen=True)
class AttributeDefinition:
    """
    Attribute definition as seen by the resolution and comparison layers.

    Definitions synthesized for sidecar-only codes have no attribute_id and
    synthetic=True.
    """
    code: str
    name: str
    data_type: DataType
    category: str
    display_group: str
    display_order: int
    attribute_id: Optional[int] = None
    name_alt: Optional[str] = None
    unit: Optional[str] = None
    is_filterable: bool = False
    synthetic: bool = False

    def localized_name(self, language: str) -> str:
        if language == "alt" and self.name_alt:
            return self.name_alt
        return self.name

    def sort_key(self, language: str) -> Tuple:
        """Display group, then display order, then localized name (then code, for ties)"""
        name = self.localized_name(language)
        return (
            collation_key(self.display_group),
            self.display_order,
            collation_key(name),
            name,
            self.code,
        )

    @classmethod
    def from_row(cls, row: Attribute) -> "AttributeDefinition":
        return cls(
            attribute_id=row.attribute_id,
            code=normalize_code(row.code),
            name=row.name,
            name_alt=row.name_alt,
            unit=row.unit,
            data_type=row.data_type,
            category=row.category,
            display_group=row.display_group or row.category,
            display_order=(
                row.display_order
                if row.display_order is not None
                else settings.catalog.display_order_sentinel
            ),
            is_filterable=bool(row.is_filterable),
        )


def collation_key(text: Optional[str]) -> str:
    """
    Accent- and case-insensitive sort key.

    Process-independent (no setlocale), so row order does not depend on the
    host's locale configuration.
    """
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def normalize_code(code: object) -> str:
    """Attribute codes are compared trimmed and upper-case"""
    return str(code).strip().upper()


def label_from_code(code: str) -> str:
    """Human-readable label: HEADLIGHT_LOW_BEAM_TYPE -> Headlight Low Beam Type"""
    words = re.split(r"[_\s]+", str(code).strip())
    return " ".join(word[:1].upper() + word[1:].lower() for word in words if word)


def synthesize_definition(
    code: str,
    data_type: Optional[DataType] = None,
    unit: Optional[str] = None,
) -> AttributeDefinition:
    """Definition for a sidecar attribute that the catalog does not know"""
    label = label_from_code(code)
    fallback = settings.catalog.fallback_category
    return AttributeDefinition(
        code=code,
        name=label,
        name_alt=label,
        unit=unit,
        data_type=data_type or DataType(settings.catalog.fallback_data_type),
        category=fallback,
        display_group=fallback,
        display_order=settings.catalog.display_order_sentinel,
        synthetic=True,
    )
