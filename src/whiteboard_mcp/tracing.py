"""MLflow tracing for lesson generation, when ``mlflow-tracing`` is installed.

Tool entrypoints get ``TOOL`` root spans through ``trace``. Inside them,
``span`` opens one child span per phase (plan streaming, narration synthesis)
carrying sizes and the early-narration outcome; ``mlflow.gemini.autolog()``
records the raw google-genai calls beneath those.

Settings come from ``get_config()``: ``MLFLOW_TRACKING_URI`` turns tracing on,
``WHITEBOARD_TRACING_ENABLED=false`` turns it off again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)

try:
    import mlflow
    import mlflow.gemini

    _HAS_MLFLOW = True
except ImportError:
    _HAS_MLFLOW = False


class _NoopSpan:
    """Stands in for an MLflow ``LiveSpan`` when tracing is off."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_attributes(self, attributes: dict[str, Any]) -> None:
        pass


_NOOP_SPAN = _NoopSpan()


def is_enabled() -> bool:
    if not _HAS_MLFLOW:
        return False
    from .config import get_config

    return get_config().tracing_enabled


def trace(
    func: Callable | None = None,
    *,
    name: str | None = None,
    span_type: str | None = None,
) -> Callable:
    """Wrap a tool in a root span; returns *func* untouched when tracing is off."""
    if not is_enabled():
        return func if func is not None else (lambda f: f)
    return mlflow.trace(func, name=name, span_type=span_type)


@contextmanager
def span(
    name: str,
    span_type: str = "UNKNOWN",
    attributes: dict[str, Any] | None = None,
) -> Iterator[Any]:
    """Open a child span around one generation phase.

    Yields the live span, or a no-op stand-in, so callers can record
    attributes either way.
    """
    if not is_enabled():
        yield _NOOP_SPAN
        return
    with mlflow.start_span(name=name, span_type=span_type) as live:
        if attributes:
            live.set_attributes(attributes)
        yield live


def setup() -> None:
    """Point MLflow at the configured tracking server and turn on Gemini autolog."""
    if not is_enabled():
        return

    from .config import get_config

    cfg = get_config()
    try:
        mlflow.set_tracking_uri(cfg.mlflow_tracking_uri)
        mlflow.set_experiment(cfg.mlflow_experiment_name)
        mlflow.gemini.autolog()
    except Exception:
        logger.warning("Could not configure MLflow tracing; lessons will not be traced", exc_info=True)
        return
    logger.info(
        "Tracing lessons to %s (experiment %s)",
        cfg.mlflow_tracking_uri, cfg.mlflow_experiment_name,
    )


def shutdown() -> None:
    if not is_enabled():
        return
    try:
        mlflow.flush_trace_async_logging()
    except Exception:
        logger.warning("MLflow trace flush failed", exc_info=True)
