"""Rate-limited narration synthesis.

Every speech request goes through one shared ``RateLimiter`` so the TTS quota
is never exceeded. Retries are layered on top of the limiter: each attempt
queues again and counts against the same window.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from . import tracing
from .client import GeminiClient
from .rate_limiter import RateLimiter
from .retry import with_retry

logger = logging.getLogger(__name__)


class NarrationDispatcher:
    """Turns step narration into audio through a shared rate limiter."""

    def __init__(
        self,
        client: GeminiClient,
        limiter: RateLimiter,
        *,
        max_chars: int = 5000,
    ) -> None:
        self._client = client
        self._limiter = limiter
        self._max_chars = max_chars
        self._pending: set[asyncio.Task] = set()

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    async def synthesize(self, text: str) -> bytes | None:
        """Synthesize *text*, waiting for a rate-limit slot first.

        Returns:
            Audio bytes, or None for empty text or an audio-less response.

        Raises:
            ValueError: If *text* exceeds ``max_chars``.
        """
        if not text or not text.strip():
            logger.warning("Empty text provided for narration")
            return None
        if len(text) > self._max_chars:
            raise ValueError(
                f"Narration text too long ({len(text)} chars, max {self._max_chars})"
            )
        attributes = {"characters": len(text), "queue_length": self._limiter.get_queue_length()}
        with tracing.span("synthesize", "LLM", attributes) as phase:
            audio = await with_retry(
                lambda: self._limiter.execute(lambda: self._client.synthesize_speech(text)),
                label="narration",
            )
            phase.set_attribute("audio_bytes", len(audio) if audio else 0)
            return audio

    def schedule(self, text: str) -> asyncio.Task:
        """Start synthesis in the background and return its task.

        The dispatcher holds a reference until the task finishes so callers may
        fire and forget.
        """
        task = asyncio.get_running_loop().create_task(self.synthesize(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def narrate_steps(self, texts: Iterable[str]) -> list[bytes | None]:
        """Synthesize each narration in order; failed steps yield None.

        Playback can proceed without audio for a step, so per-step failures are
        logged rather than raised.
        """
        texts = list(texts)
        results = await asyncio.gather(
            *(self.synthesize(t) for t in texts), return_exceptions=True,
        )
        audio: list[bytes | None] = []
        for i, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.warning("Narration for step %d failed: %s", i, result)
                audio.append(None)
            else:
                audio.append(result)
        return audio

    def remaining_calls(self) -> int:
        return self._limiter.get_remaining_calls()

    def queue_length(self) -> int:
        return self._limiter.get_queue_length()

    async def aclose(self) -> None:
        """Cancel background narration tasks and the limiter's queue."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._limiter.aclose()
