from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class FiltersModel(BaseModel):
    filters: Dict[str, List[str]] = Field(default_factory=dict)


class DashboardRequest(FiltersModel):
    segment: str = "all"


class ChartRequest(FiltersModel):
    title: str = ""
    kind: Literal["quantitative", "qualitative"] = "quantitative"


class ComparisonModel(BaseModel):
    comparison_mode: bool = False
    filters_a: Dict[str, List[str]] = Field(default_factory=dict)
    filters_b: Dict[str, List[str]] = Field(default_factory=dict)
    active_column: Literal["A", "B"] = "A"


class SerializeRequest(FiltersModel):
    section_id: Optional[str] = None
    comparison: Optional[ComparisonModel] = None
    previous: Optional[str] = None
