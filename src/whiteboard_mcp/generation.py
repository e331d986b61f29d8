"""Lesson generation — stream a plan, start narration early, recover the Plan."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from . import tracing
from .client import GeminiClient
from .errors import (
    QUOTA_MESSAGE,
    ErrorCategory,
    MalformedResponseError,
    PlanGenerationError,
    TransientUpstreamError,
    categorize_error,
)
from .models.plan import Plan
from .narration import NarrationDispatcher
from .prompts.lesson import LESSON_PLAN_PROMPT
from .recovery import parse_plan
from .streaming import StreamingPlanParser

logger = logging.getLogger(__name__)

NarrationCallback = Callable[[str], Any]


@dataclass
class Lesson:
    """A generated plan plus the in-flight synthesis of its first narration."""

    plan: Plan
    first_narration: asyncio.Task | None = None
    first_narration_text: str | None = None


def _translate_upstream_error(exc: Exception) -> Exception:
    """Map a backend failure to the error surfaced to callers."""
    category, _ = categorize_error(exc)
    if category == ErrorCategory.API_QUOTA_EXCEEDED:
        return TransientUpstreamError(QUOTA_MESSAGE)
    return PlanGenerationError("Could not generate a plan from the prompt.")


class LessonGenerator:
    """Drives one model call per prompt and returns a validated Plan."""

    def __init__(self, client: GeminiClient) -> None:
        self._client = client
        self._callback_tasks: set[asyncio.Task] = set()

    @staticmethod
    def build_prompt(prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty")
        return LESSON_PLAN_PROMPT.format(prompt=prompt.strip())

    async def stream_plan(
        self,
        prompt: str,
        on_first_narration: NarrationCallback | None = None,
    ) -> Plan:
        """Stream a plan, firing *on_first_narration* once step 0's narration is complete.

        The callback may be sync or async; an awaitable result runs as a
        background task so streaming never waits on it. A sync callback's
        exception propagates unchanged; a failed async callback is logged.

        Raises:
            ValueError: Empty prompt.
            TransientUpstreamError: The backend reported a quota/rate limit.
            PlanGenerationError: Any other backend failure.
            MalformedResponseError: The finished text held no valid plan.
        """
        contents = self.build_prompt(prompt)
        parser = StreamingPlanParser(
            on_first_narration=self._wrap_callback(on_first_narration)
            if on_first_narration is not None else None,
        )
        logger.info("Starting streaming plan request (%d prompt chars)", len(prompt))

        with tracing.span("stream_plan", "LLM", {"prompt_chars": len(prompt)}) as phase:
            stream = self._client.stream_text(contents)
            try:
                while True:
                    # Only backend failures are translated; callback errors propagate as-is.
                    try:
                        fragment = await anext(stream)
                    except StopAsyncIteration:
                        break
                    except Exception as exc:
                        logger.error("Streaming plan request failed: %s", exc, exc_info=True)
                        raise _translate_upstream_error(exc) from exc

                    result = parser.feed(fragment)
                    if result.detected:
                        logger.info(
                            "Step 0 narration detected (%d chars) at %d streamed chars",
                            len(result.explanation or ""),
                            len(parser.text),
                        )
                        phase.set_attribute("narration_detected_at", len(parser.text))
            finally:
                await stream.aclose()

            text = parser.text
            phase.set_attributes({"streamed_chars": len(text), "narration_detected": parser.detected})
            logger.info("Streaming complete, total length: %d", len(text))
            if not parser.detected:
                logger.info("Step 0 narration not detected during streaming")
            plan = self._parse(text)
            phase.set_attribute("steps", len(plan.whiteboard))
            return plan

    async def generate_plan(self, prompt: str) -> Plan:
        """Generate a plan in one non-streaming call.

        Raises the same errors as :meth:`stream_plan`.
        """
        contents = self.build_prompt(prompt)
        try:
            text = await self._client.generate_text(contents)
        except Exception as exc:
            logger.error("Plan request failed: %s", exc, exc_info=True)
            raise _translate_upstream_error(exc) from exc
        logger.info("Plan response received, length: %d", len(text))
        return self._parse(text)

    async def explain(self, prompt: str, narrator: NarrationDispatcher) -> Lesson:
        """Stream a plan and start narrating step 0 as soon as its text is known."""
        started: dict[str, Any] = {}

        def _start(text: str) -> None:
            started["text"] = text
            started["task"] = narrator.schedule(text)

        plan = await self.stream_plan(prompt, on_first_narration=_start)
        return Lesson(
            plan=plan,
            first_narration=started.get("task"),
            first_narration_text=started.get("text"),
        )

    def _wrap_callback(self, callback: NarrationCallback) -> Callable[[str], None]:
        def _fire(text: str) -> None:
            result = callback(text)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_done)

        return _fire

    def _callback_done(self, task: asyncio.Future) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Step 0 narration callback failed: %s", exc, exc_info=exc)

    @staticmethod
    def _parse(text: str) -> Plan:
        try:
            plan = parse_plan(text)
        except MalformedResponseError as exc:
            logger.error(
                "Plan recovery failed at stage %s (length=%d, prefix=%r)",
                exc.stage, exc.length, exc.prefix,
            )
            raise
        logger.info("Parsed plan with %d step(s)", len(plan.whiteboard))
        return plan
