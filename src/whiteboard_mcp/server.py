"""Main FastMCP server — mounts all sub-servers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from . import tracing
from .runtime import close_runtime
from .tools.infra import infra_server
from .tools.lesson import lesson_server

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(server: FastMCP):
    """Startup/shutdown hook — closes the Gemini client and pending narration."""
    tracing.setup()
    yield {}
    closed = await close_runtime()
    tracing.shutdown()
    logger.info("Lifespan shutdown (runtime closed: %s)", closed)


app = FastMCP(
    "whiteboard",
    instructions=(
        "Explain anything as an animated whiteboard lesson — multi-step drawing "
        "plans with narration audio. Powered by Gemini."
    ),
    lifespan=_lifespan,
)

app.mount(lesson_server)
app.mount(infra_server)


def main() -> None:
    """Entry-point for ``whiteboard-mcp`` console script."""
    app.run()


if __name__ == "__main__":
    main()
