"""
Comparison request/response models.

These are also the snapshot format: a frozen collection stores
ComparisonResult.model_dump_json() and thaws it with model_validate_json().
"""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from vehicle_specs.catalog import Language, normalize_code
from vehicle_specs.database.models import DataType, InheritanceLevel

OutputValue = Optional[Union[bool, int, float, str]]


class ComparisonOptions(BaseModel):
    """Options of one comparison"""
    only_differences: bool = False
    codes: Optional[List[str]] = Field(default=None, description="Attribute-code allow-list")
    language: Language = Language.DEFAULT

    @field_validator("codes")
    @classmethod
    def normalize_codes(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        codes = [normalize_code(code) for code in v if code is not None and str(code).strip()]
        return codes or None


class ItemHeader(BaseModel):
    """Identifying metadata of one compared edition"""
    id: int
    name: str
    parent_name: str
    grandparent_name: str
    ordinal: int
    make_name: str
    year: int


class ComparisonRow(BaseModel):
    """One attribute across all compared editions"""
    code: str
    name: str
    name_localized: str
    unit: Optional[str] = None
    data_type: DataType
    category: str
    display_group: str
    display_order: int
    values: Dict[int, OutputValue] = Field(default_factory=dict)
    sources: Dict[int, Optional[InheritanceLevel]] = Field(default_factory=dict)


class ComparisonResult(BaseModel):
    """Ordered headers plus ordered rows"""
    items: List[ItemHeader] = Field(default_factory=list)
    rows: List[ComparisonRow] = Field(default_factory=list)

    def row(self, code: str) -> Optional[ComparisonRow]:
        return next((row for row in self.rows if row.code == code), None)


class AttributeListing(BaseModel):
    """One entry of a single-edition effective-attribute listing"""
    code: str
    name: str
    name_localized: str
    unit: Optional[str] = None
    data_type: DataType
    category: str
    display_group: str
    display_order: int
    is_filterable: bool = False
    source_level: Optional[InheritanceLevel] = None
    from_sidecar: bool = False
    value: OutputValue = None
