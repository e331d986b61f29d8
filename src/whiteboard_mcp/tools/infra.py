"""Infrastructure tools — 1 tool on a FastMCP sub-server."""

from __future__ import annotations

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from ..config import get_config
from ..runtime import get_runtime
from ..tracing import trace

infra_server = FastMCP("infra")
_SENSITIVE_CONFIG_FIELDS = {"gemini_api_key"}


def _redacted_config() -> dict:
    """Return runtime config with secret-bearing fields removed."""
    return get_config().model_dump(exclude=_SENSITIVE_CONFIG_FIELDS)


@infra_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=False))
@trace(name="infra_status", span_type="TOOL")
async def infra_status() -> dict:
    """Report configuration and the narration rate limiter's state.

    Returns:
        Dict with ``config`` (secrets removed) and ``narration`` holding
        ``remaining_calls`` in the current window and ``queue_length``.
    """
    narrator = get_runtime().narrator
    return {
        "config": _redacted_config(),
        "narration": {
            "remaining_calls": narrator.remaining_calls(),
            "queue_length": narrator.queue_length(),
            "max_calls_per_minute": narrator.limiter.max_calls_per_minute,
        },
    }
