"""
Pydantic models for the tradebench control API.
This module defines the request and response schemas used by the control API.
"""

from datetime import datetime
from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class ScheduleUpdate(BaseModel):
    """Replacement schedule; omitted fields keep their current value."""

    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. America/New_York")
    windows: Optional[List[str]] = Field(None, description="Daily window starts in HH:mm")
    duration_minutes: Optional[int] = Field(None, description="Length of every window")


class AdhocRequest(BaseModel):
    """Open an ad-hoc trading window starting now."""

    duration_minutes: Optional[int] = Field(
        None, gt=0, description="Window length (default: WINDOW_DURATION_MINUTES)"
    )


class AdhocResponse(BaseModel):
    """The ad-hoc window that was opened."""

    ok: bool = True
    start: datetime
    end: datetime
    duration_minutes: int


class AdhocClosed(BaseModel):
    """Result of closing the ad-hoc window."""

    closed: bool


class NoteRequest(BaseModel):
    """Operator note for the scratchpad."""

    message: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    author: str = "operator"
