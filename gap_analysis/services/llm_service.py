"""
LLM Service — the single choke point for Groq Cloud LLM calls.

All agents go through this module.  Provides:
  - get_llm()            → configured ChatGroq client (singleton)
  - GenerationParams     → per-call temperature / max tokens / top-p
  - GroqGateway.generate → prompt or conversation in, plain response text out
  - get_gateway()        → shared gateway instance

The gateway does not retry and does not look inside the response text.
Provider failures are translated into the typed errors in
gap_analysis.errors so callers can branch on them.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional, Union

import groq
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from gap_analysis.config import get_settings
from gap_analysis.errors import (
    ContentFilteredError,
    ModelTimeoutError,
    ModelUnavailableError,
)

logger = logging.getLogger(__name__)

Conversation = list[dict[str, str]]
Prompt = Union[str, Conversation]

_llm_instance = None
_gateway_instance: Optional["GroqGateway"] = None

_ROLE_TO_MESSAGE = {
    "system": SystemMessage,
    "user": HumanMessage,
    "human": HumanMessage,
    "assistant": AIMessage,
    "ai": AIMessage,
    "model": AIMessage,
}


class GenerationParams(BaseModel):
    """Model parameters for one call."""
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None  # accepted for portability; Groq has no top-k


def get_llm():
    """
    Return a configured Groq LLM client (singleton).
    Uses langchain-groq's ChatGroq.
    """
    global _llm_instance
    if _llm_instance is not None:
        return _llm_instance

    settings = get_settings()

    if not settings.groq_api_key:
        raise ModelUnavailableError("GROQ_API_KEY is not set in environment / .env file", retryable=False)

    from langchain_groq import ChatGroq

    _llm_instance = ChatGroq(
        api_key=settings.groq_api_key,
        model=settings.llm_model,
        temperature=settings.analysis_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
    )
    logger.info(f"Initialized Groq LLM: {settings.llm_model}")
    return _llm_instance


def to_messages(prompt: Prompt) -> list[BaseMessage]:
    """Convert a plain prompt or a role/content conversation to LangChain messages."""
    if isinstance(prompt, str):
        return [HumanMessage(content=prompt)]

    messages: list[BaseMessage] = []
    for turn in prompt:
        role = str(turn.get("role", "user")).lower()
        message_cls = _ROLE_TO_MESSAGE.get(role)
        if message_cls is None:
            raise ValueError(f"Unknown conversation role: {role}")
        messages.append(message_cls(content=turn.get("content", "")))
    return messages


class GroqGateway:
    """Language-model gateway backed by ChatGroq."""

    def __init__(self, llm: Any = None):
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def generate(self, prompt: Prompt, params: GenerationParams | None = None) -> str:
        """Send *prompt* and return the response text."""
        params = params or GenerationParams()
        messages = to_messages(prompt)
        prompt_chars = sum(len(str(m.content)) for m in messages)
        logger.debug(
            f"[LLM] {len(messages)} message(s), {prompt_chars} chars | "
            f"temperature={params.temperature} max_tokens={params.max_tokens} top_p={params.top_p}"
        )

        bind_kwargs: dict[str, Any] = {"temperature": params.temperature}
        if params.max_tokens is not None:
            bind_kwargs["max_tokens"] = params.max_tokens
        if params.top_p is not None:
            bind_kwargs["top_p"] = params.top_p

        t0 = time.perf_counter()
        try:
            response = await self.llm.bind(**bind_kwargs).ainvoke(messages)
        except groq.RateLimitError as exc:
            raise ModelUnavailableError(
                "The language model quota is exhausted. Try again later.",
                quota_exhausted=True,
            ) from exc
        except groq.APITimeoutError as exc:
            raise ModelTimeoutError("The language model took too long to respond.") from exc
        except groq.BadRequestError as exc:
            if _looks_filtered(str(exc)):
                raise ContentFilteredError(
                    "The request was blocked by the language model's safety filters."
                ) from exc
            raise ModelUnavailableError(f"The language model rejected the request: {exc}") from exc
        except (groq.APIConnectionError, groq.APIStatusError) as exc:
            raise ModelUnavailableError(f"The language model is unavailable: {exc}") from exc
        elapsed = time.perf_counter() - t0

        content = response.content if isinstance(response.content, str) else str(response.content or "")
        meta = getattr(response, "response_metadata", {}) or {}
        finish_reason = meta.get("finish_reason", "unknown")
        usage = meta.get("token_usage") or meta.get("usage", {})
        logger.info(
            f"[LLM] Response received in {elapsed:.2f}s | "
            f"Response length: {len(content)} chars | "
            f"finish_reason={finish_reason} | "
            f"tokens={usage}"
        )
        logger.debug(f"[LLM] Full response:\n{content}")

        if finish_reason == "content_filter":
            raise ContentFilteredError(
                "The response was blocked by the language model's safety filters."
            )
        return content


def _looks_filtered(message: str) -> bool:
    lowered = message.lower()
    return "content_filter" in lowered or "safety" in lowered or "moderation" in lowered


def get_gateway() -> GroqGateway:
    """Return the shared gateway (singleton)."""
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = GroqGateway()
    return _gateway_instance
