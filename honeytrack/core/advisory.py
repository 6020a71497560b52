"""
External advisory decision service for conversation termination.

The advisory service is consulted for a nuanced continue/terminate
recommendation once a conversation has enough context. It is treated as
untrusted and unreliable: errors, timeouts and malformed replies all
degrade to "no decision" so the rule-based fallback can take over.
"""

import asyncio
import json
import re
import time
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from enum import Enum

import httpx
import google.generativeai as genai
from google.generativeai.types import GenerationConfig

from config.settings import AdvisorySettings
from honeytrack.core.logging import get_logger
from honeytrack.core.metrics import MetricsCollector

logger = get_logger(__name__)

_JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')
_TERMINATE_PREFIX = "TERMINATE_"


class AdvisoryResponseError(ValueError):
    """Raised when an advisory reply cannot be read as a decision document."""


class AdvisoryRecommendation(Enum):
    """Recommendation categories returned by the advisory service."""
    CONTINUE = "CONTINUE"
    SUCCESS = "SUCCESS"
    SUSPICIOUS = "SUSPICIOUS"
    FRUSTRATION = "FRUSTRATION"
    COMPLETE = "COMPLETE"

    @classmethod
    def from_raw(cls, value: Any) -> "AdvisoryRecommendation":
        if not isinstance(value, str):
            return cls.CONTINUE
        label = value.strip().upper()
        if label.startswith(_TERMINATE_PREFIX):
            label = label[len(_TERMINATE_PREFIX):]
        try:
            return cls(label)
        except ValueError:
            return cls.CONTINUE


@dataclass
class AdvisoryRequest:
    """Context sent to the advisory service."""
    recent_history: List[Dict[str, str]]
    extracted_data: Dict[str, Any]
    message_count: int
    duration_ms: int
    completeness_score: int
    frustration_level: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recentHistory": list(self.recent_history),
            "extractedDataSnapshot": self.extracted_data,
            "stats": {
                "messageCount": self.message_count,
                "durationMs": self.duration_ms,
                "completenessScore": self.completeness_score,
                "frustrationLevel": self.frustration_level,
            },
        }


@dataclass
class AdvisoryDecision:
    """Parsed advisory reply. Confidence and risk level are informational."""
    should_terminate: bool = False
    recommendation: AdvisoryRecommendation = AdvisoryRecommendation.CONTINUE
    confidence: str = "low"
    reasoning: str = ""
    risk_level: str = "low"
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def terminates(self) -> bool:
        """True when the service positively recommends ending the conversation."""
        return self.should_terminate and self.recommendation != AdvisoryRecommendation.CONTINUE

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "AdvisoryDecision":
        """Build a decision from a parsed reply, defaulting missing fields."""
        should_terminate = document.get("shouldTerminate", False)
        confidence = document.get("confidence")
        reasoning = document.get("reasoning")
        risk_level = document.get("riskLevel")
        return cls(
            should_terminate=should_terminate is True,
            recommendation=AdvisoryRecommendation.from_raw(document.get("reason")),
            confidence=confidence if isinstance(confidence, str) and confidence else "low",
            reasoning=reasoning if isinstance(reasoning, str) else "",
            risk_level=risk_level if isinstance(risk_level, str) and risk_level else "low",
            raw=document,
        )


def parse_advisory_response(payload: Any) -> AdvisoryDecision:
    """
    Read an advisory reply into a decision.

    Args:
        payload: Dict, JSON text, or prose with an embedded JSON object

    Returns:
        AdvisoryDecision: Parsed decision with safe defaults

    Raises:
        AdvisoryResponseError: If no JSON object can be recovered
    """
    if isinstance(payload, dict):
        return AdvisoryDecision.from_document(payload)

    if not isinstance(payload, str):
        raise AdvisoryResponseError(f"Unexpected advisory reply type: {type(payload).__name__}")

    try:
        document = json.loads(payload)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_PATTERN.search(payload)
        if not match:
            raise AdvisoryResponseError("Could not parse advisory reply as JSON")
        try:
            document = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise AdvisoryResponseError(f"Embedded advisory JSON is invalid: {e}") from e

    if not isinstance(document, dict):
        raise AdvisoryResponseError("Advisory reply is not a JSON object")
    return AdvisoryDecision.from_document(document)


class AdvisoryService:
    """Base class for advisory decision backends."""

    name = "base"

    async def decide(self, request: AdvisoryRequest) -> Any:
        """Return the raw reply: a dict or JSON text."""
        raise NotImplementedError

    async def close(self) -> None:
        pass


class TerminationPrompt:
    """Prompt template for the termination decision."""

    TEMPLATE = """You are an expert conversation analyst. Decide if this honeypot conversation should continue or terminate.

CONTEXT:
Messages exchanged: {message_count}
Conversation duration: {duration_minutes} minutes
Extracted intelligence completeness: {completeness_score}%
Scammer frustration level: {frustration_level}%

RECENT CONVERSATION:
{recent_messages}

CURRENT DATA EXTRACTED:
{extracted_data}

TERMINATION CRITERIA TO CONSIDER:
1. Have we extracted significant intelligence (scam type, contact info, attack method)?
2. Is the scammer getting suspicious or frustrated?
3. Are we getting diminishing returns (repetitive requests, no new intel)?
4. Have we identified enough for law enforcement action?

DECISION RULES:
- CONTINUE: If scammer is cooperative and we're still learning
- SUCCESS: If we have good intel and a natural exit opportunity
- SUSPICIOUS: If scammer seems to suspect a honeypot
- FRUSTRATION: If scammer is getting aggressive or frustrated
- COMPLETE: If we've extracted all possible intelligence

Respond with valid JSON only:
{{
  "shouldTerminate": <boolean>,
  "reason": "<CONTINUE/SUCCESS/SUSPICIOUS/FRUSTRATION/COMPLETE>",
  "confidence": "<low/medium/high>",
  "reasoning": "<brief explanation for decision>",
  "riskLevel": "<low/medium/high>"
}}"""

    @classmethod
    def build(cls, request: AdvisoryRequest) -> str:
        recent_messages = "\n".join(
            f"{entry.get('sender', 'unknown').upper()}: {entry.get('text', '')}"
            for entry in request.recent_history
        ) or "No previous messages"

        data = request.extracted_data
        extracted = {
            "scamTypes": data.get("scamType", []),
            "contacts": {
                "phones": data.get("phoneNumbers", []),
                "emails": data.get("emails", []),
                "paymentHandles": data.get("paymentHandles", []),
            },
            "links": data.get("links", []),
            "requestedData": data.get("requestedData", []),
            "techniques": data.get("psychologicalTechniques", []),
        }

        return cls.TEMPLATE.format(
            message_count=request.message_count,
            duration_minutes=round(request.duration_ms / 60000),
            completeness_score=request.completeness_score,
            frustration_level=request.frustration_level,
            recent_messages=recent_messages,
            extracted_data=json.dumps(extracted, indent=2),
        )


class GeminiAdvisoryService(AdvisoryService):
    """Advisory backend backed by Google Gemini."""

    name = "gemini"

    def __init__(self, advisory_settings: AdvisorySettings):
        self.settings = advisory_settings
        self.model = None
        self.generation_config = GenerationConfig(
            temperature=advisory_settings.temperature,
            max_output_tokens=advisory_settings.max_output_tokens,
        )

    def _ensure_model(self):
        if self.model is None:
            genai.configure(api_key=self.settings.api_key)
            self.model = genai.GenerativeModel(
                model_name=self.settings.model,
                generation_config=self.generation_config,
            )
            logger.info("Gemini advisory model configured", extra={"model": self.settings.model})
        return self.model

    async def decide(self, request: AdvisoryRequest) -> Any:
        model = self._ensure_model()
        prompt = TerminationPrompt.build(request)
        response = await model.generate_content_async(prompt)
        if not response or not response.text:
            raise AdvisoryResponseError("Empty response from Gemini")
        return response.text.strip()


class HTTPAdvisoryService(AdvisoryService):
    """Advisory backend reached over HTTP with a JSON request document."""

    name = "http"

    def __init__(self, advisory_settings: AdvisorySettings, client: Optional[httpx.AsyncClient] = None):
        if not advisory_settings.endpoint_url:
            raise ValueError("HTTP advisory service requires an endpoint_url")
        self.settings = advisory_settings
        self.http_client = client

    def _client(self) -> httpx.AsyncClient:
        if self.http_client is None:
            headers = {"Content-Type": "application/json"}
            if self.settings.api_key:
                headers["Authorization"] = f"Bearer {self.settings.api_key}"
            self.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout_seconds),
                headers=headers,
            )
        return self.http_client

    async def decide(self, request: AdvisoryRequest) -> Any:
        response = await self._client().post(self.settings.endpoint_url, json=request.to_dict())
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None


class AdvisoryConsultant:
    """
    Bounded, failure-tolerant wrapper around an advisory service.

    `consult` never raises. A decision is returned only when the reply was
    read successfully; errors, timeouts and malformed replies return None.
    """

    def __init__(self, service: AdvisoryService, timeout_seconds: float = 8.0):
        self.service = service
        self.timeout_seconds = timeout_seconds

    async def consult(self, request: AdvisoryRequest, session_id: Optional[str] = None) -> Optional[AdvisoryDecision]:
        start_time = time.monotonic()
        try:
            raw = await asyncio.wait_for(self.service.decide(request), timeout=self.timeout_seconds)
            decision = parse_advisory_response(raw)
        except asyncio.TimeoutError:
            MetricsCollector.record_advisory_call("timeout", time.monotonic() - start_time)
            logger.warning(
                "Advisory service timed out, falling back to rules",
                extra={"session_id": session_id, "timeout_seconds": self.timeout_seconds},
            )
            return None
        except Exception as e:
            MetricsCollector.record_advisory_call("error", time.monotonic() - start_time)
            logger.warning(
                f"Advisory service failed, falling back to rules: {e}",
                extra={"session_id": session_id, "service": self.service.name},
            )
            return None

        outcome = "decision" if decision.terminates else "no_decision"
        MetricsCollector.record_advisory_call(outcome, time.monotonic() - start_time)
        logger.info(
            "Advisory decision received",
            extra={
                "session_id": session_id,
                "should_terminate": decision.should_terminate,
                "recommendation": decision.recommendation.value,
                "confidence": decision.confidence,
                "reasoning": decision.reasoning,
            },
        )
        return decision

    async def close(self) -> None:
        await self.service.close()


def create_advisory_consultant(advisory_settings: AdvisorySettings) -> Optional[AdvisoryConsultant]:
    """
    Build the configured advisory consultant.

    Returns:
        Optional[AdvisoryConsultant]: None when the advisory is disabled or
        not fully configured
    """
    if not advisory_settings.enabled:
        logger.info("Advisory service disabled, using rule-based termination only")
        return None

    provider = advisory_settings.provider.lower()
    if provider == "gemini":
        if not advisory_settings.api_key:
            logger.warning("Gemini advisory enabled without an API key, disabling advisory")
            return None
        service = GeminiAdvisoryService(advisory_settings)
    elif provider == "http":
        if not advisory_settings.endpoint_url:
            logger.warning("HTTP advisory enabled without an endpoint URL, disabling advisory")
            return None
        service = HTTPAdvisoryService(advisory_settings)
    else:
        logger.warning(f"Unknown advisory provider '{advisory_settings.provider}', disabling advisory")
        return None

    logger.info("Advisory service configured", extra={"provider": provider})
    return AdvisoryConsultant(service, timeout_seconds=advisory_settings.timeout_seconds)
