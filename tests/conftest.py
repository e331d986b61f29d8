"""Shared test fixtures for whiteboard-mcp."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest


def unwrap_tool(tool: Any) -> Any:
    """Extract the raw coroutine from a FastMCP FunctionTool, if wrapped.

    FastMCP 2.x wraps @server.tool functions in FunctionTool (not callable).
    FastMCP 3.x preserves the original function. This helper works with both.
    """
    return getattr(tool, "fn", tool)


class FakeClock:
    """Manual clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _set_dummy_api_key(monkeypatch):
    """Ensure tests never hit real Gemini API."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key-not-real")


@pytest.fixture(autouse=True)
def _disable_tracing(monkeypatch):
    """Disable MLflow tracing in all tests to avoid real tracking-server calls."""
    monkeypatch.setenv("WHITEBOARD_TRACING_ENABLED", "false")


@pytest.fixture(autouse=True)
def _isolate_dotenv(tmp_path, monkeypatch):
    """Prevent tests from loading the user's real ~/.config/whiteboard-mcp/.env."""
    monkeypatch.delenv("WHITEBOARD_ENV_FILE", raising=False)
    monkeypatch.setattr(
        "whiteboard_mcp.dotenv.DEFAULT_ENV_PATH",
        tmp_path / "nonexistent.env",
    )


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset the config and runtime singletons between tests."""
    import whiteboard_mcp.config as cfg_mod
    import whiteboard_mcp.runtime as runtime_mod

    cfg_mod._config = None
    runtime_mod._runtime = None
    yield
    cfg_mod._config = None
    runtime_mod._runtime = None


@pytest.fixture()
def sample_plan_dict() -> dict:
    """A two-step plan exercising every command and annotation variant."""
    return {
        "explanation": "How a drawbridge works like a switch.",
        "whiteboard": [
            {
                "origin": {"x": 0, "y": 0},
                "stepName": "The Drawbridge",
                "explanation": "Imagine a drawbridge over a river.",
                "drawingPlan": [
                    {"type": "rectangle", "center": {"x": 0, "y": 100}, "width": 400,
                     "height": 20, "color": "#06b6d4", "id": "bridge"},
                    {"type": "circle", "center": {"x": -50, "y": 0}, "radius": 40, "id": "c1"},
                    {"type": "circle", "center": {"x": 50, "y": 0}, "radius": 40, "id": "c2",
                     "isFilled": True},
                ],
                "annotations": [
                    {"type": "text", "text": "Drawbridge", "point": {"x": 0, "y": -50},
                     "fontSize": 24, "color": "#FFFFFF", "id": "label_bridge"},
                ],
                "highlightIds": [],
                "retainedLabelIds": [],
            },
            {
                "origin": {"x": 600, "y": 0},
                "explanation": "When the bridge is up, nothing crosses.",
                "drawingPlan": [
                    {"type": "path", "points": [
                        {"x": 0, "y": 0},
                        {"x": 10, "y": 10, "cx": 5, "cy": 0},
                        {"referenceCircleId1": "c1", "referenceCircleId2": "c2",
                         "intersectionIndex": 1},
                    ], "id": "cable"},
                ],
                "annotations": [
                    {"type": "arrow", "start": {"x": 0, "y": 0}, "end": {"x": 40, "y": 40},
                     "controlPoint": {"x": 20, "y": 0}},
                    {"type": "strikethrough", "points": [{"x": 0, "y": 0}, {"x": 30, "y": 5}]},
                ],
                "highlightIds": ["bridge"],
                "retainedLabelIds": ["label_bridge"],
            },
        ],
    }
