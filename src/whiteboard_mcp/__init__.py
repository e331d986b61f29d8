"""Animated whiteboard lessons: streaming plan generation with rate-limited narration."""

__version__ = "0.1.0"
