"""
Base agent class that every LLM-backed agent inherits.

Design:
  - Agents receive the language-model gateway and settings at construction,
    so tests can pass a fake gateway.
  - `_generate()` wraps each gateway call in a timeout and retries transient
    failures with exponential backoff.  Content-filter and quota errors are
    never retried.
  - `_parse_items()` runs the shared JSON parser and logs what was dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Optional, Type

from pydantic import BaseModel

from gap_analysis.config import Settings, get_settings
from gap_analysis.errors import ModelGatewayError, ModelTimeoutError, ModelUnavailableError
from gap_analysis.models.enums import AgentName
from gap_analysis.services.llm_service import GenerationParams, Prompt, get_gateway
from gap_analysis.utils.json_parsing import Malformed, Ok, ParseResult, parse_json_items

logger = logging.getLogger(__name__)

_PROMPT_DIR = Path(__file__).resolve().parent.parent / "prompts"


def load_prompt(name: str) -> str:
    return (_PROMPT_DIR / name).read_text(encoding="utf-8")


class BaseAgent:
    """Shared gateway plumbing for all agents."""

    name: AgentName  # set in each subclass
    tag: str = "AGENT"  # log prefix

    def __init__(self, gateway: Any = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.gateway = gateway or get_gateway()

    # ── Gateway call with timeout + retry ────────────────

    async def _generate(self, prompt: Prompt, temperature: float) -> str:
        params = GenerationParams(
            temperature=temperature,
            max_tokens=self.settings.llm_max_tokens,
            top_p=self.settings.llm_top_p,
        )
        attempts = self.settings.llm_max_retries + 1

        for attempt in range(1, attempts + 1):
            t0 = time.perf_counter()
            try:
                text = await asyncio.wait_for(
                    self.gateway.generate(prompt, params),
                    timeout=self.settings.llm_timeout_seconds,
                )
                logger.debug(
                    f"[{self.tag}] Gateway answered in {time.perf_counter() - t0:.2f}s "
                    f"(attempt {attempt}/{attempts}, {len(text or '')} chars)"
                )
                return text or ""
            except asyncio.TimeoutError as exc:
                error: ModelGatewayError = ModelTimeoutError(
                    f"No response within {self.settings.llm_timeout_seconds}s"
                )
                error.__cause__ = exc
            except ModelGatewayError as exc:
                error = exc

            if not _is_transient(error) or attempt == attempts:
                logger.warning(
                    f"[{self.tag}] Gateway call failed on attempt {attempt}/{attempts}: "
                    f"{error.error_code.value}: {error.message}"
                )
                raise error

            delay = self.settings.llm_retry_backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                f"[{self.tag}] {error.error_code.value} on attempt {attempt}/{attempts}; "
                f"retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

        raise AssertionError("unreachable")

    # ── Parsing ──────────────────────────────────────────

    def _parse_items(
        self,
        raw: str,
        item_model: Optional[Type[BaseModel]] = None,
    ) -> ParseResult[list[Any]]:
        """Parse a response into validated items; malformed items are dropped."""
        parsed = parse_json_items(raw, item_model)
        if isinstance(parsed, Malformed):
            logger.warning(f"[{self.tag}] Malformed model output: {parsed.reason}")
            return parsed

        valid = [r.value for r in parsed.value if isinstance(r, Ok)]
        dropped = [r for r in parsed.value if isinstance(r, Malformed)]
        for bad in dropped:
            logger.debug(f"[{self.tag}] Dropped malformed item ({bad.reason}): {str(bad.raw)[:200]}")
        if dropped:
            logger.warning(f"[{self.tag}] Dropped {len(dropped)} malformed item(s) of {len(parsed.value)}")
        return Ok(valid)


def _is_transient(error: ModelGatewayError) -> bool:
    if isinstance(error, ModelUnavailableError):
        return error.retryable and not error.quota_exhausted
    return error.retryable
