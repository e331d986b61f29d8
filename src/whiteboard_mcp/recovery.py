"""Recover the lesson-plan JSON object from a complete model response.

Backends wrap their answer in markdown fences, prepend visible reasoning, or
add trailing notes. ``recover_json`` tries, in order, first success wins:

1. ``direct`` — parse the whole text.
2. ``strip_reasoning`` — drop ``<think>``/``<thinking>`` blocks.
3. ``fenced_block`` — parse the first fenced code block.
4. ``brace_match`` — walk back from the last ``}`` to its matching ``{``.

Step 4 assumes the answer is the last top-level object in the text; trailing
commentary holding its own balanced braces would be selected instead.

Everything here is a pure function of the input text.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from .errors import MalformedResponseError
from .models.plan import Plan

logger = logging.getLogger(__name__)

_REASONING_PATTERNS = (
    re.compile(r"<think>.*?</think>", re.DOTALL),
    re.compile(r"<thinking>.*?</thinking>", re.DOTALL),
)
_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)


def strip_reasoning(text: str) -> str:
    """Remove every ``<think>…</think>`` and ``<thinking>…</thinking>`` block."""
    for pattern in _REASONING_PATTERNS:
        text = pattern.sub("", text)
    return text


def extract_fenced_block(text: str) -> str | None:
    """Return the body of the first markdown code fence, if any."""
    match = _FENCE_RE.search(text)
    return match.group(1) if match else None


def find_last_object_span(text: str) -> tuple[int, int] | None:
    """Locate the object closed by the last ``}`` in *text*.

    Braces inside string literals are counted like any other brace.

    Returns:
        ``(start, end)`` slice bounds, or None if there is no ``}`` or its
        opening ``{`` is missing.
    """
    end = text.rfind("}")
    if end == -1:
        return None
    depth = 0
    for i in range(end, -1, -1):
        ch = text[i]
        if ch == "}":
            depth += 1
        elif ch == "{":
            depth -= 1
            if depth == 0:
                return i, end + 1
    return None


def _try_parse(candidate: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return False, None


def recover_json(text: str) -> Any:
    """Extract and parse the single intended JSON value from *text*.

    Raises:
        MalformedResponseError: If every strategy fails. ``stage`` is
            ``brace_match``, the last strategy attempted.
    """
    ok, value = _try_parse(text)
    if ok:
        return value

    cleaned = strip_reasoning(text)

    fence_note = ""
    fenced = extract_fenced_block(cleaned)
    if fenced is not None:
        ok, value = _try_parse(fenced)
        if ok:
            logger.debug("Recovered JSON from fenced block (%d chars)", len(fenced))
            return value
        fence_note = "; fenced block was not valid JSON"

    span = find_last_object_span(cleaned)
    if span is None:
        reason = "no closing brace" if "}" not in cleaned else "no matching opening brace"
        raise MalformedResponseError("brace_match", reason + fence_note, text)

    start, end = span
    ok, value = _try_parse(cleaned[start:end])
    if not ok:
        logger.warning(
            "Failed to parse extracted JSON (first 200 chars): %r", cleaned[start:end][:200],
        )
        raise MalformedResponseError(
            "brace_match", "extracted object is not valid JSON" + fence_note, text,
        )
    logger.debug("Recovered JSON from position %d to %d", start, end)
    return value


def parse_plan(text: str) -> Plan:
    """Recover the plan JSON from *text* and validate it into a ``Plan``.

    Raises:
        MalformedResponseError: Recovery failed (stage ``brace_match``) or the
            object is not a valid, non-empty plan (stage ``validation``).
    """
    data = recover_json(text)
    if not isinstance(data, dict):
        raise MalformedResponseError(
            "validation", f"expected a JSON object, got {type(data).__name__}", text,
        )
    try:
        return Plan.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(
            "validation", f"{exc.error_count()} schema error(s): {exc.errors()[0]['msg']}", text,
        ) from exc
