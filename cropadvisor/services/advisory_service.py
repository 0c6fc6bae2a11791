"""
Remote advisory clients.

An advisory client turns an AdvisoryRequest into an AdvisoryResponse by
calling an external engine: either a plain HTTP endpoint or an OpenAI
chat model. Every failure (transport, non-2xx, empty or unparseable
body) is raised as AdvisoryServiceError so the rule engine can fall back
to its local rule set. Clients make exactly one attempt per request.
"""
import json
import logging
from typing import Optional

import httpx
from openai import OpenAI
from pydantic import ValidationError

from cropadvisor.core.config import AdvisorySettings
from cropadvisor.core.exceptions import AdvisoryServiceError
from cropadvisor.schemas.advisory_schemas import AdvisoryRequest, AdvisoryResponse

logger = logging.getLogger(__name__)


def _parse_response(body, backend: str) -> AdvisoryResponse:
    if not body:
        raise AdvisoryServiceError(f"Empty response from {backend} advisory service")
    try:
        return AdvisoryResponse.model_validate(body)
    except ValidationError as e:
        raise AdvisoryServiceError(f"Invalid {backend} advisory response: {e.error_count()} error(s)") from e


class AdvisoryClient:
    """Interface for remote advisory backends."""

    backend = "unknown"

    def generate(self, request: AdvisoryRequest) -> AdvisoryResponse:
        raise NotImplementedError


class HttpAdvisoryClient(AdvisoryClient):
    """POSTs the request to {base_url}/recommendations/generate."""

    backend = "http"

    def __init__(self, settings: AdvisorySettings, client: Optional[httpx.Client] = None):
        if not settings.base_url:
            raise AdvisoryServiceError("Advisory base_url is not configured")
        self.settings = settings
        self.url = f"{settings.base_url.rstrip('/')}/recommendations/generate"
        self.client = client or httpx.Client(timeout=settings.timeout_seconds)

    def generate(self, request: AdvisoryRequest) -> AdvisoryResponse:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"

        try:
            response = self.client.post(
                self.url,
                json=request.model_dump(mode="json", by_alias=True),
                headers=headers,
            )
            response.raise_for_status()
            body = response.json() if response.content else None
        except httpx.HTTPStatusError as e:
            raise AdvisoryServiceError(
                f"Advisory service returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise AdvisoryServiceError(f"Advisory service unreachable: {e}") from e
        except ValueError as e:
            raise AdvisoryServiceError(f"Advisory service returned invalid JSON: {e}") from e
        except Exception as e:
            # e.g. httpx.InvalidURL, which is not an HTTPError
            raise AdvisoryServiceError(f"Advisory call failed: {e}") from e

        return _parse_response(body, self.backend)


class OpenAIAdvisoryClient(AdvisoryClient):
    """
    Advisory backed by an OpenAI chat model.

    The model receives the request as JSON and must answer with a JSON
    object shaped like AdvisoryResponse.
    """

    backend = "openai"

    SYSTEM_PROMPT = """You are an agronomist specialized in maize production with decades of field experience.
You receive a JSON snapshot of a growing session: days since planting, growth phase, farm location,
the latest soil analysis, recent daily weather and the variety traits.

Return ONLY a JSON object with this shape:
{
  "recommendations": [
    {
      "category": "UPPER_SNAKE_CASE tag, e.g. HEAT_STRESS, NUTRIENT_MANAGEMENT, IRRIGATION",
      "title": "short title",
      "description": "what the grower should do",
      "priority": "LOW | MEDIUM | HIGH | CRITICAL",
      "confidence": 0.0-1.0,
      "reasoning": "why, referencing the observed values",
      "actionItems": ["concrete step", "..."],
      "expectedOutcome": "what improves if followed"
    }
  ],
  "confidence": 0.0-1.0,
  "model": "model name"
}

Only recommend what the data supports. An empty list is a valid answer."""

    def __init__(self, settings: AdvisorySettings, client: Optional[OpenAI] = None):
        self.settings = settings
        self.client = client
        if self.client is None:
            if not settings.api_key:
                raise AdvisoryServiceError("OpenAI advisory backend requires an API key")
            self.client = OpenAI(
                api_key=settings.api_key,
                base_url=settings.base_url or None,
                timeout=settings.timeout_seconds,
                max_retries=0,
            )

    def generate(self, request: AdvisoryRequest) -> AdvisoryResponse:
        prompt = (
            "Growing session snapshot:\n"
            f"{json.dumps(request.model_dump(mode='json', by_alias=True), indent=2)}"
        )
        try:
            response = self.client.chat.completions.create(
                model=self.settings.model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": prompt}
                ],
                max_tokens=2000,
                response_format={"type": "json_object"}
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise AdvisoryServiceError(f"OpenAI advisory call failed: {e}") from e

        if not content:
            raise AdvisoryServiceError("Empty response from OpenAI advisory model")
        try:
            body = json.loads(content)
        except json.JSONDecodeError as e:
            raise AdvisoryServiceError(f"Failed to parse OpenAI advisory response: {e}") from e

        if isinstance(body, dict):
            body.setdefault("model", self.settings.model)
        return _parse_response(body, self.backend)


def build_advisory_client(settings: AdvisorySettings) -> Optional[AdvisoryClient]:
    """
    Create the configured advisory client, or None when disabled.

    A misconfigured backend is logged and disabled rather than raised:
    the local rule set always works.
    """
    if not settings.enabled:
        return None
    try:
        if settings.backend == "openai":
            client = OpenAIAdvisoryClient(settings)
        else:
            client = HttpAdvisoryClient(settings)
        logger.info(f"Advisory service enabled ({settings.backend})")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize {settings.backend} advisory client: {e}")
        return None
