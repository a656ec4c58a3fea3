"""
Response generator backed by the OpenAI chat-completions API.

Plan model names are aliases resolved through ``MODEL_ALIASES``; unknown
names fall back to the baseline model. A "model not found" reply is retried
once against the baseline model, and the substitution is reported in the
result. Every other failure is mapped to a chat-turn error the user sees.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Dict, Any, Optional

import httpx

from ..core.errors import (
    RateLimited,
    ServiceMisconfigured,
    ServiceUnavailable,
    InvalidUpstreamResponse,
)

logger = logging.getLogger("legal_rag.llm")

BASELINE_MODEL = "gpt-4o-mini"

MODEL_ALIASES: Dict[str, str] = {
    # User-facing plan names
    "gpt-5.2": "o1-preview",
    "gpt-5": "gpt-4o",
    "gpt-5-mini": "gpt-4o-mini",
    "gpt-5-nano": "gpt-4o-mini",
    # Provider model names
    "o1-preview": "o1-preview",
    "o1-mini": "o1-mini",
    "gpt-4o": "gpt-4o",
    "gpt-4o-mini": "gpt-4o-mini",
    "gpt-4-turbo": "gpt-4-turbo-preview",
    "gpt-4": "gpt-4",
    "gpt-3.5-turbo": "gpt-3.5-turbo",
}


def resolve_model(alias: Optional[str], baseline: str = BASELINE_MODEL) -> str:
    if not alias:
        return baseline
    return MODEL_ALIASES.get(alias, baseline)


@dataclass(frozen=True)
class Generation:
    text: str
    tokens_used: int
    model_used: str
    fell_back: bool = False


class _ModelNotFound(Exception):
    pass


class LLMClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        baseline_model: str = BASELINE_MODEL,
        max_completion_tokens: int = 2000,
        timeout: float = 120.0,
    ):
        self._client = http_client
        self.api_key = api_key
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.baseline_model = baseline_model
        self.max_completion_tokens = max_completion_tokens
        self.timeout = timeout

    async def generate(
        self,
        messages: List[Dict[str, Any]],
        model_preference: Optional[str] = None,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Generation:
        """
        Run one chat completion.

        Raises
        ------
        RateLimited
            Upstream answered 429.
        ServiceMisconfigured
            Upstream rejected our credentials (401).
        ServiceUnavailable
            Any other non-success status or a network failure.
        InvalidUpstreamResponse
            Success status without message content.
        """
        model = resolve_model(model_preference, self.baseline_model)
        logger.info("Using model %s (configured: %s)", model, model_preference)

        try:
            data = await self._complete(model, messages, response_format)
            fell_back = False
        except _ModelNotFound:
            if model == self.baseline_model:
                raise ServiceUnavailable(
                    "Failed to get response from AI service. Please try again."
                )
            logger.warning("Model %s not found, falling back to %s", model, self.baseline_model)
            model = self.baseline_model
            try:
                data = await self._complete(model, messages, response_format)
            except _ModelNotFound:
                raise ServiceUnavailable(
                    "Failed to get response from AI service. Please try again."
                )
            fell_back = True

        return self._parse(data, model, fell_back)

    async def _complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "model": model,
            "messages": messages,
            "max_completion_tokens": self.max_completion_tokens,
        }
        if response_format is not None:
            payload["response_format"] = response_format

        try:
            resp = await self._client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("Network error calling language model: %s", exc)
            raise ServiceUnavailable(
                "Network error connecting to AI service. Please try again."
            ) from exc

        if resp.is_success:
            try:
                return resp.json()
            except ValueError as exc:
                raise InvalidUpstreamResponse(
                    "Invalid response from AI service. Please try again."
                ) from exc

        body = resp.text
        logger.error("Language model error (%d): %s", resp.status_code, body[:1000])

        if resp.status_code == 404 and "model" in _error_message(resp).lower():
            raise _ModelNotFound(model)
        if resp.status_code == 429:
            raise RateLimited(
                "The AI service is currently experiencing high demand. Please try again in a moment."
            )
        if resp.status_code == 401:
            raise ServiceMisconfigured("API authentication failed. Please contact support.")
        raise ServiceUnavailable(
            f"Failed to get response from AI service. Please try again. (Status: {resp.status_code})"
        )

    @staticmethod
    def _parse(data: Dict[str, Any], model: str, fell_back: bool) -> Generation:
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            text = None

        if not text:
            logger.error("No message in language model response: %r", data)
            raise InvalidUpstreamResponse("Invalid response from AI service. Please try again.")

        usage = data.get("usage") or {}
        return Generation(
            text=text,
            tokens_used=int(usage.get("total_tokens") or 0),
            model_used=model,
            fell_back=fell_back,
        )


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return str(data["error"].get("message") or "")
    return resp.text
