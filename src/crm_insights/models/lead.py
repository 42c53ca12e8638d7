"""Lead snapshot consumed by lead scoring."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from crm_insights.models.opportunity import Activity


class EngagementEvent(BaseModel):
    """Marketing engagement signal (email_open, website_visit, download, demo_request)."""

    type: str
    created_at: Optional[datetime] = None
    value: Optional[float] = None


class LeadSnapshot(BaseModel):
    """View of one lead at scoring time."""

    model_config = ConfigDict(frozen=True)

    id: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    source: str = "unknown"

    industry: Optional[str] = None
    company_size: Optional[str] = None  # startup | small | medium | large | enterprise
    title: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None

    engagement: list[EngagementEvent] = Field(default_factory=list)
    activities: list[Activity] = Field(default_factory=list)

    created_at: Optional[datetime] = None
