"""Lesson plan models — the validated hand-off from generation to rendering.

Wire keys are the camelCase names the model emits (``drawingPlan``,
``fontSize``); attributes are snake_case. Every model is frozen: a Plan is
never mutated after parsing, only replaced by the next request's Plan.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _PlanModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class AbsolutePoint(_PlanModel):
    """A canvas coordinate; ``cx``/``cy`` is an optional quadratic Bézier control point."""

    x: float
    y: float
    cx: float | None = None
    cy: float | None = None


class RelativePoint(_PlanModel):
    """An intersection of two previously drawn circles, looked up by id."""

    reference_circle_id1: str = Field(alias="referenceCircleId1")
    reference_circle_id2: str = Field(alias="referenceCircleId2")
    intersection_index: Literal[0, 1]


Point = Union[AbsolutePoint, RelativePoint]


# ── Drawing commands ─────────────────────────────────────────────────────────


class CircleCommand(_PlanModel):
    type: Literal["circle"]
    center: Point
    radius: float
    color: str | None = None
    id: str | None = None
    is_filled: bool | None = None


class RectangleCommand(_PlanModel):
    type: Literal["rectangle"]
    center: Point
    width: float
    height: float
    color: str | None = None
    id: str | None = None
    is_filled: bool | None = None


class PathCommand(_PlanModel):
    type: Literal["path"]
    points: tuple[Point, ...]
    color: str | None = None
    id: str | None = None


DrawCommand = Annotated[
    Union[CircleCommand, RectangleCommand, PathCommand],
    Field(discriminator="type"),
]


# ── Annotations ──────────────────────────────────────────────────────────────


class TextAnnotation(_PlanModel):
    type: Literal["text"]
    text: str
    point: Point
    font_size: float
    color: str | None = None
    id: str | None = None
    is_contextual: bool | None = None  # rendered with less emphasis


class ArrowAnnotation(_PlanModel):
    type: Literal["arrow"]
    start: Point
    end: Point
    control_point: Point | None = None
    color: str | None = None
    id: str | None = None


class StrikethroughAnnotation(_PlanModel):
    """A wavy line crossing out an earlier element to show a correction."""

    type: Literal["strikethrough"]
    points: tuple[Point, ...]
    color: str | None = None
    id: str | None = None


AnnotationCommand = Annotated[
    Union[TextAnnotation, ArrowAnnotation, StrikethroughAnnotation],
    Field(discriminator="type"),
]


# ── Plan ─────────────────────────────────────────────────────────────────────


class Step(_PlanModel):
    """One narrated, drawable unit of a lesson.

    ``highlight_ids`` and ``retained_label_ids`` reference element ids from
    this or earlier steps; they are lookups, not ownership.
    """

    origin: AbsolutePoint
    step_name: str | None = None
    explanation: str
    drawing_plan: tuple[DrawCommand, ...] = ()
    annotations: tuple[AnnotationCommand, ...] = ()
    highlight_ids: frozenset[str] = frozenset()
    retained_label_ids: frozenset[str] = frozenset()

    @field_validator("drawing_plan", "annotations", "highlight_ids", "retained_label_ids", mode="before")
    @classmethod
    def null_as_empty(cls, value: object) -> object:
        return () if value is None else value


class Plan(BaseModel):
    """The full lesson: an overview narration plus steps in playback order."""

    model_config = ConfigDict(frozen=True)

    explanation: str
    whiteboard: tuple[Step, ...] = Field(min_length=1)

    def narrations(self) -> Iterator[str]:
        """Yield each step's narration in playback order."""
        for step in self.whiteboard:
            yield step.explanation
