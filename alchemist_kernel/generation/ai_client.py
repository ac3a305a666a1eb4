"""
Gemini-backed rule parser.

Calls the Gemini ``generateContent`` REST endpoint through httpx, with a
client-side rate limit and a hard timeout. Every failure surfaces as
``AIParserError`` so the caller can fall back to the rule-based parser.
"""

import json
import logging
import math
import re
import threading
import time
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from alchemist_kernel.config.settings import KernelSettings
from alchemist_kernel.generation.templates import build_rule_generation_prompt
from alchemist_kernel.models.entities import AvailableData
from alchemist_kernel.models.generation import ParsedRule

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 60.0

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AIParserError(Exception):
    """The AI path could not produce a usable rule."""


class AIUnavailableError(AIParserError):
    pass


class RateLimitExceededError(AIParserError):
    def __init__(self, wait_seconds: float):
        self.wait_seconds = wait_seconds
        super().__init__(f"Rate limit exceeded. Please wait {math.ceil(wait_seconds)} seconds.")


class RateLimiter:
    """Fixed-window request counter."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._count = 0
        self._window_start: Optional[float] = None

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            if self._window_start is None or now - self._window_start > self.window_seconds:
                self._count = 0
                self._window_start = now
            if self._count >= self.max_requests:
                raise RateLimitExceededError(self.window_seconds - (now - self._window_start))
            self._count += 1


def extract_response_text(payload: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    try:
        parts = payload["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as exc:
        raise AIParserError("AI response contained no candidates") from exc
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


def parse_ai_rule(text: str) -> ParsedRule:
    """Pull the JSON object out of a model reply and validate it."""
    match = _JSON_OBJECT.search(text)
    if not match:
        raise AIParserError("No JSON found in AI response")
    try:
        data = json.loads(match.group(0))
    except ValueError as exc:
        raise AIParserError("Failed to parse AI response. Please try rephrasing your request.") from exc
    if not isinstance(data, dict) or not all(data.get(k) for k in ("ruleType", "ruleName", "ruleConfig")):
        raise AIParserError("AI response missing required fields. Please try rephrasing your request.")
    try:
        return ParsedRule.model_validate(data)
    except ValidationError as exc:
        raise AIParserError(f"AI response has an invalid rule shape: {exc.error_count()} errors") from exc


class GeminiRuleParser:
    """
    Rule parser backed by the Gemini REST API.
    """

    def __init__(
        self,
        settings: KernelSettings,
        http_client: Optional[httpx.Client] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self._settings = settings
        self._http = http_client or httpx.Client(timeout=settings.ai_timeout_seconds)
        self._rate_limiter = rate_limiter or RateLimiter(settings.gemini_max_requests_per_minute)

    @property
    def available(self) -> bool:
        return self._settings.ai_enabled

    def _url(self) -> str:
        return f"{self._settings.gemini_endpoint.rstrip('/')}/{self._settings.gemini_model}:generateContent"

    def generate_text(self, prompt: str) -> str:
        if not self.available:
            raise AIUnavailableError("AI service not available (API key not configured)")
        self._rate_limiter.acquire()

        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            response = self._http.post(
                self._url(),
                params={"key": self._settings.gemini_api_key},
                json=body,
                timeout=self._settings.ai_timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise AIParserError(f"AI service returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise AIParserError(f"AI request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise AIParserError("AI service returned a non-JSON body") from exc
        return extract_response_text(payload)

    def parse(self, user_input: str, available_data: AvailableData) -> ParsedRule:
        prompt = build_rule_generation_prompt(user_input, available_data)
        parsed = parse_ai_rule(self.generate_text(prompt))
        logger.debug("AI parsed request as %s (confidence %s)", parsed.rule_type.value, parsed.confidence)
        return parsed

    def close(self) -> None:
        self._http.close()
