"""Early detection of the first step's narration in a streaming plan.

The plan streams as one large JSON document. The first step's
``explanation`` usually completes within the first few hundred tokens, long
before the drawing commands of later steps, so narration audio can start while
the rest of the plan is still generating.

``StreamingPlanParser`` scans each fragment once with a small state machine
that tracks containers, strings and escapes across fragment boundaries. It
never needs the buffer to be valid JSON. Text outside any container
(reasoning preambles, markdown fences, a missing leading ``{``) is tolerated:
the top level acts as a lenient object where a raw newline abandons an
unterminated string.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

STEPS_KEY = "whiteboard"
NARRATION_KEY = "explanation"

_WHITESPACE = frozenset(" \t\r\n")


@dataclass(frozen=True)
class FeedResult:
    """Outcome of one ``feed`` call.

    ``detected`` is True only for the call that completed the narration value.
    """

    detected: bool
    explanation: str | None = None


class _Frame:
    __slots__ = ("kind", "key", "last_string", "after_colon", "index", "lenient")

    def __init__(self, kind: str, *, lenient: bool = False) -> None:
        self.kind = kind
        self.key: str | None = None
        self.last_string: str | None = None
        self.after_colon = False
        self.index = 0
        self.lenient = lenient


def decode_json_string(raw: str) -> str:
    """Decode the body of a JSON string literal (without surrounding quotes).

    Falls back to reversing ``\\n``, ``\\"`` and ``\\\\`` when the body is not
    valid JSON escape syntax.
    """
    try:
        return json.loads(f'"{raw}"', strict=False)
    except json.JSONDecodeError:
        return raw.replace("\\n", "\n").replace('\\"', '"').replace("\\\\", "\\")


class StreamingPlanParser:
    """Accumulates a plan stream and reports step 0's narration exactly once.

    One instance per generation request; call ``reset()`` before reusing it
    for a new prompt.
    """

    def __init__(self, on_first_narration: Callable[[str], Any] | None = None) -> None:
        self._on_first_narration = on_first_narration
        self.reset()

    def reset(self) -> None:
        """Clear the buffer, scanner state and fires-once latch."""
        self._fragments: list[str] = []
        self._joined: str | None = ""
        self._explanation: str | None = None
        self._detected = False
        self._stack: list[_Frame] = [_Frame("object", lenient=True)]
        self._in_string = False
        self._escaped = False
        self._chars: list[str] | None = None
        self._target = False

    @property
    def text(self) -> str:
        """Everything fed so far."""
        if self._joined is None:
            self._joined = "".join(self._fragments)
        return self._joined

    @property
    def detected(self) -> bool:
        return self._detected

    @property
    def explanation(self) -> str | None:
        return self._explanation

    def feed(self, fragment: str) -> FeedResult:
        """Append *fragment* and try to complete step 0's narration value.

        After a detection the parser only accumulates text.
        """
        if not fragment:
            return FeedResult(False)
        self._fragments.append(fragment)
        self._joined = None
        if self._detected:
            return FeedResult(False)

        explanation = self._scan(fragment)
        if explanation is None:
            return FeedResult(False)

        self._detected = True
        self._explanation = explanation
        logger.debug("Step 0 narration detected after %d chars", len(self.text))
        if self._on_first_narration is not None:
            self._on_first_narration(explanation)
        return FeedResult(True, explanation)

    def _scan(self, fragment: str) -> str | None:
        for ch in fragment:
            frame = self._stack[-1]

            if self._in_string:
                if self._escaped:
                    self._escaped = False
                    self._collect(ch)
                elif ch == "\\":
                    self._escaped = True
                    self._collect(ch)
                elif ch == '"':
                    found = self._close_string(frame)
                    if found is not None:
                        return found
                elif ch == "\n" and frame.lenient:
                    self._in_string = False
                    self._chars = None
                    self._target = False
                else:
                    self._collect(ch)
                continue

            if ch == '"':
                self._open_string(frame)
            elif ch in "{[":
                if frame.kind == "object":
                    frame.after_colon = False
                self._stack.append(_Frame("object" if ch == "{" else "array"))
            elif ch in "}]":
                expected = "object" if ch == "}" else "array"
                if len(self._stack) > 1 and frame.kind == expected:
                    self._stack.pop()
            elif ch == ":":
                if frame.kind == "object":
                    frame.key = frame.last_string
                    frame.after_colon = True
            elif ch == ",":
                if frame.kind == "object":
                    frame.key = None
                    frame.last_string = None
                    frame.after_colon = False
                else:
                    frame.index += 1
            elif ch not in _WHITESPACE and frame.kind == "object":
                frame.last_string = None
                frame.after_colon = False
        return None

    def _open_string(self, frame: _Frame) -> None:
        self._in_string = True
        self._escaped = False
        self._target = False
        if frame.kind != "object":
            self._chars = None
        elif frame.after_colon:
            frame.after_colon = False
            self._target = self._at_first_step_narration()
            self._chars = [] if self._target else None
        else:
            frame.last_string = None
            self._chars = []

    def _close_string(self, frame: _Frame) -> str | None:
        self._in_string = False
        chars, self._chars = self._chars, None
        if self._target:
            self._target = False
            return decode_json_string("".join(chars or ()))
        if chars is not None:
            frame.last_string = "".join(chars)
        return None

    def _collect(self, ch: str) -> None:
        if self._chars is not None:
            self._chars.append(ch)

    def _at_first_step_narration(self) -> bool:
        if len(self._stack) < 3:
            return False
        step, steps, owner = self._stack[-1], self._stack[-2], self._stack[-3]
        return (
            step.key == NARRATION_KEY
            and steps.kind == "array"
            and steps.index == 0
            and owner.kind == "object"
            and owner.key == STEPS_KEY
        )
