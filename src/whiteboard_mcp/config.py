"""Server configuration via environment variables."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator


def _resolve_tracing_enabled(flag_value: str, tracking_uri: str) -> bool:
    """Derive tracing_enabled from env vars.

    - ``WHITEBOARD_TRACING_ENABLED=false`` → always disabled (explicit opt-out).
    - Otherwise enabled when ``MLFLOW_TRACKING_URI`` is non-empty.
    """
    if flag_value.lower() == "false":
        return False
    return bool(tracking_uri)


class ServerConfig(BaseModel):
    """Runtime configuration resolved from environment."""

    gemini_api_key: str = Field(default="")
    plan_model: str = Field(default="gemini-2.5-pro")
    tts_model: str = Field(default="gemini-2.5-flash-preview-tts")
    tts_voice: str = Field(default="Kore")
    temperature: float = Field(default=0.7)
    max_output_tokens: int = Field(default=60000)
    tts_calls_per_minute: int = Field(default=10)
    tts_queue_limit: int = Field(default=0)
    tts_max_chars: int = Field(default=5000)
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=60.0)
    tracing_enabled: bool = Field(default=False)
    mlflow_tracking_uri: str = Field(default="")
    mlflow_experiment_name: str = Field(default="whiteboard-mcp")

    @field_validator("max_output_tokens", "tts_calls_per_minute", "tts_max_chars", "retry_max_attempts")
    @classmethod
    def validate_positive_ints(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Configuration values must be >= 1")
        return value

    @field_validator("tts_queue_limit")
    @classmethod
    def validate_queue_limit(cls, value: int) -> int:
        if value < 0:
            raise ValueError("tts_queue_limit must be >= 0 (0 = unbounded)")
        return value

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, value: float) -> float:
        if not 0.0 <= value <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        return value

    @field_validator("retry_base_delay", "retry_max_delay")
    @classmethod
    def validate_retry_delays(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Retry delay must be > 0")
        return value

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Build config from environment variables."""
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            plan_model=os.getenv("WHITEBOARD_PLAN_MODEL", "gemini-2.5-pro"),
            tts_model=os.getenv("WHITEBOARD_TTS_MODEL", "gemini-2.5-flash-preview-tts"),
            tts_voice=os.getenv("WHITEBOARD_TTS_VOICE", "Kore"),
            temperature=float(os.getenv("WHITEBOARD_TEMPERATURE", "0.7")),
            max_output_tokens=int(os.getenv("WHITEBOARD_MAX_OUTPUT_TOKENS", "60000")),
            tts_calls_per_minute=int(os.getenv("WHITEBOARD_TTS_CALLS_PER_MINUTE", "10")),
            tts_queue_limit=int(os.getenv("WHITEBOARD_TTS_QUEUE_LIMIT", "0")),
            tts_max_chars=int(os.getenv("WHITEBOARD_TTS_MAX_CHARS", "5000")),
            retry_max_attempts=int(os.getenv("WHITEBOARD_RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay=float(os.getenv("WHITEBOARD_RETRY_BASE_DELAY", "1.0")),
            retry_max_delay=float(os.getenv("WHITEBOARD_RETRY_MAX_DELAY", "60.0")),
            tracing_enabled=_resolve_tracing_enabled(
                os.getenv("WHITEBOARD_TRACING_ENABLED", ""),
                os.getenv("MLFLOW_TRACKING_URI", ""),
            ),
            mlflow_tracking_uri=os.getenv("MLFLOW_TRACKING_URI", ""),
            mlflow_experiment_name=os.getenv("MLFLOW_EXPERIMENT_NAME", "whiteboard-mcp"),
        )


_config: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Return the global config singleton, creating it on first access.

    Loads ``~/.config/whiteboard-mcp/.env`` before reading env vars.
    Process environment always takes precedence over the config file.
    """
    global _config
    if _config is None:
        import logging

        from .dotenv import load_dotenv

        injected = load_dotenv()
        if injected:
            logger = logging.getLogger(__name__)
            logger.info(
                "Loaded %d var(s) from config: %s",
                len(injected),
                ", ".join(injected.keys()),
            )
        _config = ServerConfig.from_env()
    return _config


def update_config(**overrides: object) -> ServerConfig:
    """Patch the live config. ``None`` values are ignored."""
    global _config
    cfg = get_config()
    data = cfg.model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    _config = ServerConfig(**data)
    return _config
