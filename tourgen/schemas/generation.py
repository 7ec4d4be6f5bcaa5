"""Generation run control schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tourgen.config import StartOptions


class StartRequest(BaseModel):
    """Options for a new generation run. A null limit means the default, 0 means unlimited."""

    max_locations: Optional[int] = Field(default=None, ge=0)
    max_experiences: Optional[int] = Field(default=None, ge=0)
    max_plans: Optional[int] = Field(default=None, ge=0)
    skip_locations: bool = False
    skip_experiences: bool = False
    skip_plans: bool = False

    def to_options(self) -> StartOptions:
        return StartOptions(**self.model_dump())


class StartResponse(BaseModel):
    """Response after a start request."""

    accepted: bool
    reason: Optional[str] = None


class StatusResponse(BaseModel):
    """Current run record."""

    status: str
    message: Optional[str] = None
    started_at: Optional[str] = None
    plan: Dict[str, Any] = Field(default_factory=dict)
    results: Dict[str, Any] = Field(default_factory=dict)
    cancelled: bool = False


class CancelResponse(BaseModel):
    """Response after a cancel request."""

    accepted: bool


class ResetResponse(BaseModel):
    """Response after a force reset."""

    accepted: bool = True


class CityStats(BaseModel):
    """Content counts for one city."""

    city: str
    locations: int
    experiences: int
    plans: int
    ai_plans: int


class StatsResponse(BaseModel):
    """Content counts per city and in total."""

    cities: List[CityStats]
    totals: Dict[str, int]
