"""Process runtime — builds and tears down the generation components.

The core classes take their collaborators as constructor arguments; this
module is the one place that wires them together for the tool server.
"""

from __future__ import annotations

import logging

from .client import GeminiClient
from .config import ServerConfig, get_config
from .generation import LessonGenerator
from .narration import NarrationDispatcher
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class LessonRuntime:
    """One Gemini client, one TTS rate limiter, and the services built on them."""

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self.client = GeminiClient(config)
        self.limiter = RateLimiter(
            config.tts_calls_per_minute,
            max_queue_size=config.tts_queue_limit or None,
        )
        self.narrator = NarrationDispatcher(
            self.client, self.limiter, max_chars=config.tts_max_chars,
        )
        self.generator = LessonGenerator(self.client)

    async def close(self) -> None:
        await self.narrator.aclose()
        await self.client.close()


_runtime: LessonRuntime | None = None


def get_runtime() -> LessonRuntime:
    """Return the process runtime, creating it from the live config on first access."""
    global _runtime
    if _runtime is None:
        cfg = get_config()
        _runtime = LessonRuntime(cfg)
        logger.info(
            "Runtime ready (plan_model=%s, tts_model=%s, tts_calls_per_minute=%d)",
            cfg.plan_model, cfg.tts_model, cfg.tts_calls_per_minute,
        )
    return _runtime


async def close_runtime() -> bool:
    """Close the process runtime if one was created. Returns True if closed."""
    global _runtime
    runtime, _runtime = _runtime, None
    if runtime is None:
        return False
    await runtime.close()
    return True
