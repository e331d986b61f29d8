"""Lesson tools — 2 tools on a FastMCP sub-server."""

from __future__ import annotations

import base64
import logging
from typing import Annotated

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..errors import make_tool_error
from ..runtime import get_runtime
from ..tracing import trace
from ..types import LessonPrompt, NarrationText

logger = logging.getLogger(__name__)
lesson_server = FastMCP("lesson")

AUDIO_MIME_TYPE = "audio/L16;rate=24000"


def _audio_payload(audio: bytes | None, text: str) -> dict:
    return {
        "audio_base64": base64.b64encode(audio).decode("ascii") if audio else None,
        "mime_type": AUDIO_MIME_TYPE,
        "characters": len(text),
    }


@lesson_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=True))
@trace(name="lesson_plan", span_type="TOOL")
async def lesson_plan(
    prompt: LessonPrompt,
    streaming: Annotated[bool, Field(
        description="Stream the plan so step 0 narration can start before the plan finishes",
    )] = True,
    narrate_first_step: Annotated[bool, Field(
        description="Synthesize step 0 narration while the rest of the plan streams",
    )] = False,
) -> dict:
    """Generate a multi-step whiteboard lesson plan for a prompt.

    With ``narrate_first_step`` the first step's narration is sent to speech
    synthesis as soon as it appears in the stream, and the audio is returned
    alongside the plan.

    Args:
        prompt: What to explain.
        streaming: Use the streaming path (required for early narration).
        narrate_first_step: Return step 0 audio with the plan.

    Returns:
        Dict with ``plan`` (camelCase keys), ``step_count`` and
        ``first_narration``, or a ToolError dict.
    """
    runtime = get_runtime()
    try:
        if narrate_first_step:
            lesson = await runtime.generator.explain(prompt, runtime.narrator)
            plan = lesson.plan
        elif streaming:
            plan = await runtime.generator.stream_plan(prompt)
            lesson = None
        else:
            plan = await runtime.generator.generate_plan(prompt)
            lesson = None
    except Exception as exc:
        return make_tool_error(exc)

    result: dict = {
        "plan": plan.model_dump(mode="json", by_alias=True, exclude_none=True),
        "step_count": len(plan.whiteboard),
        "first_narration": None,
    }
    if lesson is not None and lesson.first_narration is not None:
        text = lesson.first_narration_text or ""
        try:
            audio = await lesson.first_narration
            result["first_narration"] = {"text": text, **_audio_payload(audio, text)}
        except Exception as exc:
            logger.warning("Step 0 narration failed: %s", exc)
            result["first_narration"] = {"text": text, "error": make_tool_error(exc)}
    return result


@lesson_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=True))
@trace(name="lesson_narrate", span_type="TOOL")
async def lesson_narrate(text: NarrationText) -> dict:
    """Synthesize narration audio for one step, subject to the TTS rate limit.

    Requests queue in arrival order and start no faster than the configured
    calls per minute.

    Returns:
        Dict with base64 PCM audio, its mime type and the character count,
        or a ToolError dict.
    """
    try:
        audio = await get_runtime().narrator.synthesize(text)
    except Exception as exc:
        return make_tool_error(exc)
    return _audio_payload(audio, text)
