"""Gemini client for lesson-plan text and narration audio.

Constructed explicitly and passed to the components that need it; nothing
reaches for a module-level client.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import types

from .config import ServerConfig, get_config

logger = logging.getLogger(__name__)


class GeminiClient:
    """Owns one ``genai.Client`` for its lifetime.

    Usage::

        async with GeminiClient(cfg) as client:
            async for fragment in client.stream_text(prompt):
                ...
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        self._config = config
        self._client: genai.Client | None = None

    @property
    def config(self) -> ServerConfig:
        return self._config or get_config()

    def init(self) -> genai.Client:
        """Create the underlying SDK client on first use.

        Raises:
            ValueError: If no API key is configured.
        """
        if self._client is None:
            key = self.config.gemini_api_key or os.getenv("GEMINI_API_KEY", "")
            if not key:
                raise ValueError("No Gemini API key — set GEMINI_API_KEY")
            self._client = genai.Client(api_key=key)
            logger.info("Created Gemini client (key …%s)", key[-4:])
        return self._client

    @property
    def sdk(self) -> genai.Client:
        return self.init()

    async def close(self) -> None:
        """Shut down the SDK client. Safe to call more than once."""
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.aio.aclose()
        except Exception:
            logger.debug("Async Gemini client close failed", exc_info=True)
        try:
            client.close()
        except Exception:
            logger.debug("Gemini client close failed", exc_info=True)
        logger.info("Closed Gemini client")

    async def __aenter__(self) -> GeminiClient:
        self.init()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _text_config(self, temperature: float | None) -> types.GenerateContentConfig:
        cfg = self.config
        return types.GenerateContentConfig(
            temperature=temperature if temperature is not None else cfg.temperature,
            max_output_tokens=cfg.max_output_tokens,
            response_mime_type="application/json",
        )

    async def stream_text(
        self,
        contents: Any,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        """Stream generated text fragments until the backend finishes.

        Args:
            contents: Prompt contents.
            model: Override model ID (defaults to config's plan_model).
            temperature: Override temperature.

        Yields:
            Non-empty text fragments in arrival order.
        """
        stream = await self.sdk.aio.models.generate_content_stream(
            model=model or self.config.plan_model,
            contents=contents,
            config=self._text_config(temperature),
        )
        async for chunk in stream:
            text = chunk.text
            if text:
                yield text

    async def generate_text(
        self,
        contents: Any,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """Generate the full response in one call, with thinking parts stripped."""
        response = await self.sdk.aio.models.generate_content(
            model=model or self.config.plan_model,
            contents=contents,
            config=self._text_config(temperature),
        )
        usage = response.usage_metadata
        if usage is not None:
            logger.info(
                "Token usage: input=%s output=%s total=%s",
                usage.prompt_token_count,
                usage.candidates_token_count,
                usage.total_token_count,
            )
        parts = _first_candidate_parts(response)
        text_parts = [p.text for p in parts if p.text and not getattr(p, "thought", False)]
        return "".join(text_parts) if text_parts else (response.text or "")

    async def synthesize_speech(self, text: str, *, voice: str | None = None) -> bytes | None:
        """Render *text* as speech with a prebuilt voice.

        Returns:
            Raw 24 kHz LINEAR16 PCM bytes, or None if the response held no audio.
        """
        cfg = self.config
        config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(
                        voice_name=voice or cfg.tts_voice,
                    ),
                ),
            ),
        )
        response = await self.sdk.aio.models.generate_content(
            model=cfg.tts_model,
            contents=text,
            config=config,
        )
        for part in _first_candidate_parts(response):
            if part.inline_data and part.inline_data.data:
                return part.inline_data.data
        logger.warning("Speech response held no audio (%d chars of text)", len(text))
        return None


def _first_candidate_parts(response: types.GenerateContentResponse) -> list[types.Part]:
    if not response.candidates:
        return []
    content = response.candidates[0].content
    return list(content.parts or []) if content is not None else []
