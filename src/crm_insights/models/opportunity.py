"""Read-only opportunity snapshot consumed by the scoring engine."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Stage(str, Enum):
    """Funnel stages an opportunity can be in."""

    PROSPECTING = "prospecting"
    ENGAGING = "engaging"
    ADVANCING = "advancing"
    KEY_DECISION = "key_decision"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


class Activity(BaseModel):
    """Logged activity (call, email, meeting...) on an opportunity."""

    id: str
    type: str = "note"
    description: str = ""
    created_at: Optional[datetime] = None
    user_id: Optional[str] = None


class Contact(BaseModel):
    """Contact attached to an opportunity."""

    id: str
    name: str = ""
    email: Optional[str] = None
    role: Optional[str] = None
    influence: Optional[int] = None


class OpportunitySnapshot(BaseModel):
    """View of one sales opportunity at assessment time."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opportunity identifier")
    name: str = ""
    stage: Stage
    qualification_score: float = Field(
        default=0,
        ge=0,
        le=100,
        description="MEDDPICC completeness score (0-100)",
    )
    deal_value: Optional[float] = None
    probability: Optional[float] = None

    close_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    activities: list[Activity] = Field(default_factory=list)
    contacts: list[Contact] = Field(default_factory=list)

    company: Optional[str] = None
    industry: Optional[str] = None
    competition: Optional[str] = None  # none | low | medium | high | intense
    budget: Optional[float] = None

    # MEDDPICC roles and statements
    economic_buyer: Optional[str] = None
    champion: Optional[str] = None
    decision_maker: Optional[str] = None
    decision_process: Optional[str] = None
    decision_criteria: Optional[str] = None
    paper_process: Optional[str] = None
    identify_pain: Optional[str] = None
    metrics: Optional[str] = None

    @field_validator("stage", mode="before")
    @classmethod
    def _lowercase_stage(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value
