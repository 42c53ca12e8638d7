"""Scoring configuration (weights and lookup tables) and LLM provider settings."""

import math
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

_WEIGHT_TOLERANCE = 1e-9


class RiskWeights(BaseModel):
    """Weight per deal-risk factor. Must sum to 1.0."""

    model_config = ConfigDict(frozen=True)

    stage: float = 0.20
    qualification: float = 0.25
    timeline: float = 0.15
    value: float = 0.10
    competition: float = 0.10
    engagement: float = 0.10
    decision_maker: float = 0.05
    budget: float = 0.05

    @model_validator(mode="after")
    def _check_sum(self) -> "RiskWeights":
        total = math.fsum(self.model_dump().values())
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"risk weights must sum to 1.0, got {total}")
        return self


class LeadWeights(BaseModel):
    """Weight per lead-scoring factor. Must sum to 1.0."""

    model_config = ConfigDict(frozen=True)

    source: float = 0.25
    company_size: float = 0.20
    industry: float = 0.15
    engagement: float = 0.20
    demographics: float = 0.10
    behavior: float = 0.05
    timing: float = 0.05

    @model_validator(mode="after")
    def _check_sum(self) -> "LeadWeights":
        total = math.fsum(self.model_dump().values())
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"lead weights must sum to 1.0, got {total}")
        return self


def _default_stage_risk() -> dict[str, int]:
    return {
        "prospecting": 80,
        "engaging": 60,
        "advancing": 40,
        "key_decision": 20,
        "proposal": 30,
        "negotiation": 25,
        "closed_won": 0,
        "closed_lost": 100,
    }


def _default_competition_risk() -> dict[str, int]:
    return {"none": 10, "low": 30, "medium": 50, "high": 80, "intense": 90}


def _default_lead_sources() -> dict[str, int]:
    return {
        "referral": 90,
        "trade_show": 85,
        "website": 80,
        "partner": 80,
        "social_media": 75,
        "email_campaign": 70,
        "advertisement": 65,
        "cold_call": 60,
        "other": 50,
        "unknown": 30,
    }


def _default_company_sizes() -> dict[str, int]:
    return {"startup": 40, "small": 60, "medium": 80, "large": 90, "enterprise": 95}


class ScoringConfig(BaseModel):
    """
    Immutable scoring policy injected into the engines.
    Defaults reproduce the standard policy; an organization can override any
    subset through a YAML file (see from_yaml).
    """

    model_config = ConfigDict(frozen=True)

    stage_risk: dict[str, int] = Field(default_factory=_default_stage_risk)
    unknown_stage_risk: int = 70
    competition_risk: dict[str, int] = Field(default_factory=_default_competition_risk)
    unknown_competition_risk: int = 50
    missing_competition_risk: int = 60
    risk_weights: RiskWeights = Field(default_factory=RiskWeights)

    mitigation_threshold: int = 60
    max_actions: int = Field(default=5, ge=1)

    batch_chunk_size: int = Field(default=5, ge=1, description="Max in-flight AI calls per batch")
    fallback_confidence_penalty: float = Field(default=0.5, ge=0, le=1)

    lead_weights: LeadWeights = Field(default_factory=LeadWeights)
    lead_source_scores: dict[str, int] = Field(default_factory=_default_lead_sources)
    unknown_lead_source_score: int = 50
    company_size_scores: dict[str, int] = Field(default_factory=_default_company_sizes)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ScoringConfig":
        """
        Load config from YAML. Supports nested (risk/leads/batch sections) or flat keys;
        anything omitted keeps its default. Table overrides merge into the defaults.
        """
        data = yaml.safe_load(Path(path).read_text()) or {}
        risk = data.get("risk", {}) or {}
        leads = data.get("leads", {}) or {}
        batch = data.get("batch", {}) or {}

        def _get(key: str, nested: dict, default=None):
            return nested.get(key, data.get(key, default))

        flat: dict = {}
        stage_overrides = _get("stage_risk", risk)
        if stage_overrides:
            flat["stage_risk"] = {**_default_stage_risk(), **{str(k).lower(): v for k, v in stage_overrides.items()}}
        competition_overrides = _get("competition_risk", risk)
        if competition_overrides:
            flat["competition_risk"] = {
                **_default_competition_risk(),
                **{str(k).lower(): v for k, v in competition_overrides.items()},
            }
        for key in (
            "unknown_stage_risk",
            "unknown_competition_risk",
            "missing_competition_risk",
            "mitigation_threshold",
            "max_actions",
        ):
            value = _get(key, risk)
            if value is not None:
                flat[key] = value
        weights = _get("weights", risk) or _get("risk_weights", risk)
        if weights:
            flat["risk_weights"] = weights

        chunk_size = _get("chunk_size", batch) or _get("batch_chunk_size", batch)
        if chunk_size is not None:
            flat["batch_chunk_size"] = chunk_size
        penalty = _get("fallback_confidence_penalty", batch)
        if penalty is not None:
            flat["fallback_confidence_penalty"] = penalty

        lead_weights = _get("lead_weights", leads) or leads.get("weights")
        if lead_weights:
            flat["lead_weights"] = lead_weights
        sources = _get("lead_source_scores", leads) or leads.get("sources")
        if sources:
            flat["lead_source_scores"] = {**_default_lead_sources(), **sources}
        sizes = _get("company_size_scores", leads) or leads.get("company_sizes")
        if sizes:
            flat["company_size_scores"] = {**_default_company_sizes(), **sizes}
        return cls.model_validate(flat)


DEFAULT_CONFIG = ScoringConfig()


class LLMSettings(BaseModel):
    """Provider selection for the AI prediction client."""

    provider: Optional[str] = None  # "openai" | "ollama" | None
    model: Optional[str] = None
    timeout: float = 60.0
    ollama_url: str = "http://localhost:11434"
    openai_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LLMSettings":
        """
        Read settings from the environment:
        CRM_INSIGHTS_LLM_PROVIDER, CRM_INSIGHTS_LLM_MODEL, CRM_INSIGHTS_LLM_TIMEOUT,
        CRM_INSIGHTS_OLLAMA_URL, OPENAI_API_KEY.
        """
        provider = (os.environ.get("CRM_INSIGHTS_LLM_PROVIDER") or "").strip().lower() or None
        timeout_raw = os.environ.get("CRM_INSIGHTS_LLM_TIMEOUT")
        return cls(
            provider=provider,
            model=os.environ.get("CRM_INSIGHTS_LLM_MODEL") or None,
            timeout=float(timeout_raw) if timeout_raw else 60.0,
            ollama_url=os.environ.get("CRM_INSIGHTS_OLLAMA_URL", "http://localhost:11434"),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        )
