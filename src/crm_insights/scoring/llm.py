"""AI prediction client. Supports Ollama (local) and OpenAI API."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from openai import APITimeoutError, AsyncOpenAI, OpenAIError

from crm_insights.config import LLMSettings
from crm_insights.errors import AITimeoutError, AIUnavailableError, MalformedResponseError

logger = logging.getLogger(__name__)

SYSTEM_PROMPTS: dict[str, str] = {
    "lead_scoring": (
        "You are a sales expert specializing in lead qualification. "
        "Analyze lead data and provide scoring insights with specific recommendations."
    ),
    "deal_risk": (
        "You are a sales risk analyst. "
        "Assess deal risk factors and provide mitigation strategies for sales opportunities."
    ),
    "next_action": (
        "You are a sales coach. "
        "Recommend specific next actions to advance sales opportunities based on current context."
    ),
}
_DEFAULT_SYSTEM_PROMPT = "You are a sales expert providing data-driven insights."


def build_deal_risk_prompt(payload: dict[str, Any]) -> str:
    opp = payload.get("opportunity", {})
    return f"""Assess the risk level of this sales opportunity. Reply with ONLY valid JSON:
{{"riskScore": <0-100, 100 = highest risk>, "confidence": <0-1>,
 "riskFactors": {{"stage": <0-100>, "qualification": <0-100>, "timeline": <0-100>, "value": <0-100>,
                 "competition": <0-100>, "engagement": <0-100>, "decisionMaker": <0-100>, "budget": <0-100>}},
 "mitigationStrategies": ["..."]}}

Opportunity:
- Name: {opp.get("name") or "Unknown"}
- Stage: {opp.get("stage")}
- MEDDPICC Score: {opp.get("qualification_score", 0)}/100
- Deal Value: {opp.get("deal_value") or "Unknown"}
- Budget: {opp.get("budget") or "Unknown"}
- Close Date: {opp.get("close_date") or "Unknown"}
- Last Activity: {opp.get("last_activity_at") or "None"}
- Competition: {opp.get("competition") or "Unknown"}
- Activities: {len(opp.get("activities") or [])}, Contacts: {len(opp.get("contacts") or [])}

JSON:"""


def build_next_actions_prompt(payload: dict[str, Any]) -> str:
    opp = payload.get("opportunity", {})
    return f"""Recommend the next best actions for this sales opportunity. Reply with ONLY valid JSON:
{{"actions": [{{"action": "...", "priority": "high|medium|low", "reasoning": "...", "estimatedImpact": <0-100>}}],
 "confidence": <0-1>}}

Opportunity:
- Name: {opp.get("name") or "Unknown"}
- Stage: {opp.get("stage")}
- MEDDPICC Score: {opp.get("qualification_score", 0)}/100
- Last Activity: {opp.get("last_activity_at") or "None"}
- Recent Activities: {len(opp.get("activities") or [])} activities
- Contacts: {len(opp.get("contacts") or [])} contacts

Provide 3-5 actions.
JSON:"""


def build_lead_prompt(payload: dict[str, Any]) -> str:
    lead = payload.get("lead", {})
    return f"""Analyze this lead and score it 0-100. Reply with ONLY valid JSON:
{{"score": <0-100>, "confidence": <0-1>,
 "factors": {{"source": <0-100>, "companySize": <0-100>, "industry": <0-100>, "engagement": <0-100>,
             "demographics": <0-100>, "behavior": <0-100>, "timing": <0-100>}},
 "recommendations": ["..."]}}

Lead:
- Name: {lead.get("first_name", "")} {lead.get("last_name", "")}
- Email: {lead.get("email") or "Unknown"}
- Company: {lead.get("company") or "Unknown"}
- Source: {lead.get("source") or "Unknown"}
- Industry: {lead.get("industry") or "Unknown"}
- Company Size: {lead.get("company_size") or "Unknown"}
- Engagement: {len(lead.get("engagement") or [])} activities

JSON:"""


def parse_json_object(text: str) -> dict[str, Any]:
    """Extract the JSON object from an LLM reply (may be wrapped in markdown fences)."""
    body = (text or "").strip()
    if body.startswith("```"):
        lines = body.split("\n")[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        body = "\n".join(lines).strip()

    start, end = body.find("{"), body.rfind("}")
    if start == -1 or end <= start:
        raise MalformedResponseError("No JSON object in AI response")
    try:
        data = json.loads(body[start : end + 1])
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Could not parse AI response: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError("AI response JSON is not an object")
    return data


class BaseInsightClient(ABC):
    """
    Narrow request/response contract to the external AI provider.
    Each call takes a serialized snapshot (+ context) and returns the parsed JSON payload.
    May raise any AIClientError; callers are expected to degrade.
    """

    model_version: str = "unknown"

    @abstractmethod
    async def _complete(self, system_prompt: str, prompt: str) -> str:
        """Send one prompt and return the raw text reply."""

    async def assess_deal_risk(self, payload: dict[str, Any]) -> dict[str, Any]:
        text = await self._complete(SYSTEM_PROMPTS["deal_risk"], build_deal_risk_prompt(payload))
        return parse_json_object(text)

    async def recommend_next_actions(self, payload: dict[str, Any]) -> dict[str, Any]:
        text = await self._complete(SYSTEM_PROMPTS["next_action"], build_next_actions_prompt(payload))
        return parse_json_object(text)

    async def score_lead(self, payload: dict[str, Any]) -> dict[str, Any]:
        text = await self._complete(SYSTEM_PROMPTS["lead_scoring"], build_lead_prompt(payload))
        return parse_json_object(text)


class OpenAIInsightClient(BaseInsightClient):
    """Chat-completions client (AsyncOpenAI)."""

    def __init__(self, api_key: str, model: Optional[str] = None, timeout: float = 60.0):
        self.model = model or "gpt-4o-mini"
        self.model_version = f"openai:{self.model}"
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def _complete(self, system_prompt: str, prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                max_tokens=1000,
            )
        except APITimeoutError as e:
            raise AITimeoutError(f"OpenAI request timed out: {e}") from e
        except OpenAIError as e:
            raise AIUnavailableError(f"OpenAI request failed: {e}") from e
        if not response.choices:
            raise MalformedResponseError("OpenAI returned no choices")
        return response.choices[0].message.content or ""


class OllamaInsightClient(BaseInsightClient):
    """Local Ollama /api/generate client."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model or "llama3.2"
        self.model_version = f"ollama:{self.model}"
        self.timeout = timeout

    async def _complete(self, system_prompt: str, prompt: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/api/generate",
                    json={"model": self.model, "system": system_prompt, "prompt": prompt, "stream": False},
                )
                resp.raise_for_status()
                out = resp.json()
        except httpx.TimeoutException as e:
            raise AITimeoutError(f"Ollama request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise AIUnavailableError(f"Ollama HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise AIUnavailableError(f"Ollama unreachable: {e}") from e
        except ValueError as e:
            raise MalformedResponseError(f"Ollama returned non-JSON body: {e}") from e
        return str(out.get("response", ""))


def get_insight_client(settings: Optional[LLMSettings] = None) -> Optional[BaseInsightClient]:
    """
    Build the client for the configured provider:
    - "ollama" -> Ollama local
    - "openai" -> OpenAI API (needs OPENAI_API_KEY)
    - unset/other -> None (rule-based only)
    """
    settings = settings or LLMSettings.from_env()
    if settings.provider == "ollama":
        return OllamaInsightClient(settings.ollama_url, settings.model, settings.timeout)
    if settings.provider == "openai":
        if not settings.openai_api_key:
            logger.warning("CRM_INSIGHTS_LLM_PROVIDER=openai but OPENAI_API_KEY is not set; AI disabled")
            return None
        return OpenAIInsightClient(settings.openai_api_key, settings.model, settings.timeout)
    if settings.provider:
        logger.warning("Unknown LLM provider %r; AI disabled", settings.provider)
    return None
