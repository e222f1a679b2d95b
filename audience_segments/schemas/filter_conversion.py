"""
Form-facing filter schemas.

The segment builder form keeps every scalar as a string and speaks its own
operator vocabulary; see ``services/segments/filter_conversion.py``.
"""

from pydantic import BaseModel, Field
from typing import Optional, Any

from audience_segments.schemas.segment import FilterGroupSpec


class UIFilter(BaseModel):
    filter_type: str
    operator: Optional[str] = None
    third_operator: Optional[str] = None
    value: dict[str, Any] = Field(default_factory=dict)
    connector: Optional[str] = None


class UIFilterGroup(BaseModel):
    name: str = "Filter Group"
    filters: list[UIFilter] = Field(default_factory=list)


class FilterNormalizeRequest(BaseModel):
    filter_groups: list[UIFilterGroup] = Field(default_factory=list)


class FilterNormalizeResponse(BaseModel):
    filter_groups: list[FilterGroupSpec]


class FilterUIRequest(BaseModel):
    filter_groups: list[FilterGroupSpec] = Field(default_factory=list)


class FilterUIResponse(BaseModel):
    filter_groups: list[UIFilterGroup]
