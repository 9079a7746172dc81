"""Chat-completions client for style-match judgments (OpenRouter compatible)."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from offer_scout.ai.prompts import STYLE_MATCH_RESPONSE_FORMAT
from offer_scout.config import settings
from offer_scout.ingest.rate_limiter import RateLimiter
from offer_scout.ingest.retry import with_retry
from offer_scout.metrics import judgment_latency_seconds

logger = logging.getLogger(__name__)

RETRY_JITTER = 0.2


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or invalid."""
    pass


class JudgmentError(RuntimeError):
    """Raised when the judgment API returns no usable JSON verdict."""
    pass


@dataclass
class JudgmentResponse:
    """Message content plus the model that produced it."""

    content: str
    model: str
    raw: Any = None


def extract_json(content: str) -> Any:
    """
    Parse model output as JSON.

    When the whole string does not parse, the span from the first "{" to
    the last "}" is parsed instead.

    Raises:
        JudgmentError: If no JSON object can be recovered
    """
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end <= start:
        raise JudgmentError("Model output is not valid JSON")
    try:
        return json.loads(content[start:end + 1])
    except json.JSONDecodeError as e:
        raise JudgmentError(f"Model output is not valid JSON: {e}") from e


class JudgmentClient:
    """
    Calls the judgment API with a strict response schema.

    Features:
    - Process-wide rate limit (requests per minute), one slot per attempt
    - Retries with jittered exponential backoff
    - Hard timeout around each request
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        self.api_key = api_key or settings.judgment_api_key
        if client is None and not self.api_key:
            raise ConfigurationError("JUDGMENT_API_KEY is not configured")

        self.base_url = base_url or settings.judgment_api_base_url
        self.model = model or settings.judgment_model
        self.timeout = settings.judgment_timeout_seconds
        self.limiter = limiter or RateLimiter.per_minute(
            settings.judgment_requests_per_minute, name="judgment"
        )
        self._client = client

    def _default_headers(self) -> Dict[str, str]:
        headers = {}
        if settings.judgment_referer:
            headers["HTTP-Referer"] = settings.judgment_referer
        if settings.judgment_title:
            headers["X-Title"] = settings.judgment_title
        return headers

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                max_retries=0,
                timeout=self.timeout,
                default_headers=self._default_headers(),
            )
        return self._client

    async def chat(self, messages: List[Dict[str, Any]]) -> JudgmentResponse:
        """
        Send one chat request and return the verdict text.

        Raises:
            JudgmentError: If the response carries no message content
            TimeoutError: If every attempt timed out
        """
        client = self._get_client()

        async def attempt():
            await self.limiter.acquire()
            started = time.monotonic()
            try:
                return await asyncio.wait_for(
                    client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        response_format=STYLE_MATCH_RESPONSE_FORMAT,
                        temperature=settings.judgment_temperature,
                    ),
                    timeout=self.timeout,
                )
            finally:
                judgment_latency_seconds.observe(time.monotonic() - started)

        response = await with_retry(
            attempt,
            retries=settings.judgment_max_retries,
            min_delay=settings.judgment_retry_min_delay,
            max_delay=settings.judgment_retry_max_delay,
            jitter=RETRY_JITTER,
            label="judgment request",
        )

        content = response.choices[0].message.content if response.choices else None
        if not content or not isinstance(content, str):
            raise JudgmentError("Judgment response missing content")

        raw = response.model_dump() if hasattr(response, "model_dump") else response
        return JudgmentResponse(content=content, model=response.model or self.model, raw=raw)
