"""
Shared parser for JSON embedded in language-model responses.

The model is asked for JSON but may wrap it in prose or markdown fences,
return a single object instead of an array, or emit items that do not match
the requested shape.  Every LLM-backed agent goes through parse_json_items(),
which tries three strategies in order:

  1. parse the whole response as JSON
  2. parse the body of a ```json fenced block
  3. decode the longest JSON array/object that starts at a bracket

The result is a tagged ParseResult: Ok(items) or Malformed(reason).  Items are
validated one by one against a pydantic model, so each item is itself an
Ok(record) or Malformed(reason).

What a Malformed result degrades to is decided by the caller:

  ┌────────────────────────┬──────────────────────────┬──────────────────────────┐
  │ Agent                  │ Whole response Malformed │ Single item Malformed    │
  ├────────────────────────┼──────────────────────────┼──────────────────────────┤
  │ Requirement extraction │ chunk yields nothing     │ item skipped             │
  │ Compliance check       │ every finding not-present│ that finding not-present │
  │ Quality evaluation     │ every rating "adequate"  │ that rating "adequate"   │
  │ Single-pass analysis   │ both defaults above      │ both defaults above      │
  │ Reconciliation         │ no groups                │ group skipped            │
  └────────────────────────┴──────────────────────────┴──────────────────────────┘
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)
_WRAPPER_KEYS = ("items", "results", "requirements", "findings", "evaluations", "groups")
_MAX_SPAN_ATTEMPTS = 200
_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Malformed:
    reason: str
    raw: Any = None


ParseResult = Union[Ok[T], Malformed]


# ── Document level ───────────────────────────────────────

def extract_json(raw: Optional[str]) -> ParseResult[Any]:
    """Find the JSON value in a model response."""
    text = (raw or "").strip()
    if not text:
        return Malformed("empty response")

    try:
        return Ok(json.loads(text))
    except json.JSONDecodeError:
        pass

    fenced = _FENCE_RE.search(text)
    if fenced:
        try:
            return Ok(json.loads(fenced.group(1)))
        except json.JSONDecodeError:
            pass

    span = _longest_bracketed_value(text)
    if span is not None:
        return Ok(span)
    return Malformed("no JSON array or object found", raw=text[:200])


def _longest_bracketed_value(text: str) -> Any:
    best: Any = None
    best_len = 0
    attempts = 0
    for match in re.finditer(r"[\[{]", text):
        if attempts >= _MAX_SPAN_ATTEMPTS:
            break
        attempts += 1
        try:
            value, end = _decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if end - match.start() > best_len:
            best, best_len = value, end - match.start()
    return best


def as_item_list(value: Any) -> list[Any]:
    """Normalize a decoded value to a list of items."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(value.get(key), list):
                return value[key]
        return [value]
    return [value]


# ── Item level ───────────────────────────────────────────

def parse_json_items(
    raw: Optional[str],
    item_model: Optional[Type[M]] = None,
) -> ParseResult[list[ParseResult[Any]]]:
    """
    Parse a model response into per-item results.

    Without item_model every item is returned as Ok(raw value).
    """
    document = extract_json(raw)
    if isinstance(document, Malformed):
        return document

    items: list[ParseResult[Any]] = []
    for item in as_item_list(document.value):
        if item_model is None:
            items.append(Ok(item))
            continue
        if not isinstance(item, dict):
            items.append(Malformed(f"expected object, got {type(item).__name__}", raw=item))
            continue
        try:
            items.append(Ok(item_model.model_validate(item)))
        except ValidationError as exc:
            items.append(Malformed(f"{exc.error_count()} validation error(s)", raw=item))
    return Ok(items)


def ok_values(results: list[ParseResult[T]]) -> list[T]:
    return [r.value for r in results if isinstance(r, Ok)]
