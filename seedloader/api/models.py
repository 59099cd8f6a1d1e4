"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# Request Models
class PlanRequest(BaseModel):
    steps: List[Dict[str, Any]]
    allow_cycle_fallback: bool = False


class FilterRequest(BaseModel):
    records: List[Dict[str, Any]]
    filter: Any = None


class PreviewRequest(BaseModel):
    entity_type: str
    records: List[Dict[str, Any]]
    config: Dict[str, Any] = Field(default_factory=dict)
    filter: Any = None
    identifier_maps: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    constants: Dict[str, Any] = Field(default_factory=dict)
    limit: Optional[int] = None


# Response Models
class PlannedStep(BaseModel):
    position: int
    object: str
    data_file: str
    depends_on: List[str] = Field(default_factory=list)
    mode: str = "direct"


class PlanResponse(BaseModel):
    steps: List[PlannedStep]
    total: int


class FilterResponse(BaseModel):
    records: List[Dict[str, Any]]
    matched: int
    total: int


class PreviewResponse(BaseModel):
    entity_type: str
    records: List[Dict[str, Any]]
    selected: int
    total: int
    validation_errors: List[str] = Field(default_factory=list)
    is_valid: bool = True
