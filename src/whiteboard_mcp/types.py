"""Shared annotated aliases for tool parameters."""

from __future__ import annotations

from typing import Annotated

from pydantic import Field

LessonPrompt = Annotated[str, Field(
    min_length=1,
    max_length=4000,
    description="What to explain — e.g. 'how does public-key cryptography work?'",
)]
NarrationText = Annotated[str, Field(
    min_length=1,
    description="Text to speak (max WHITEBOARD_TTS_MAX_CHARS characters)",
)]
