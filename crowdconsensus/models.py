"""
Base data models for the crowd consensus engine.

This module defines all shared record types: tasks, workers and their
answers as read from a stage store, and the aggregations and rankings the
consensus algorithms derive from them. Every record is an immutable
snapshot validated at construction.
"""

import json
import math
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    computed_field,
    field_validator,
    model_validator,
)

from .config.settings import settings
from .utils import build_array_string, parse_float, parse_int, utcnow


# ===========================================
# Enums
# ===========================================


class AnswerType(str, Enum):
    """
    Well-known answer types; only ANSWER takes part in aggregation.

    Answer.type is an open set: any other value is a control type.
    """

    ANSWER = "answer"
    SKIP = "skip"
    STAT = "stat"


class AggregationType(str, Enum):
    """Aggregation discriminator."""

    AGGREGATION = "aggregation"
    EMPTY = "empty"


# ===========================================
# Field Validation
# ===========================================


def _as_utc(moment: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _require_values(values: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
    """Empty strings cannot be packed into a multi-valued text field."""
    if any(value == "" for value in values):
        raise ValueError(f"{info.field_name} must not contain empty strings")
    return values


# ===========================================
# Core Models
# ===========================================


class Task(BaseModel):
    """A task to be labeled, with its permitted label vocabulary."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = Field(default=None, description="Assigned on insert")
    stage: str = Field(..., description="Owning stage identifier")
    created_at: datetime = Field(default_factory=utcnow)
    tags: tuple[str, ...] = Field(default=())
    type: str = Field(default="single", description="Task type tag")
    description: str = Field(default="")
    labels: tuple[str, ...] = Field(default=(), description="Label vocabulary")

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("tags", "labels")
    @classmethod
    def _no_empty_values(cls, values: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
        return _require_values(values, info)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tags_text_array(self) -> str:
        return build_array_string(self.tags)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def labels_text_array(self) -> str:
        return build_array_string(self.labels)


class Worker(BaseModel):
    """A worker registered in a stage."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    stage: str
    created_at: datetime = Field(default_factory=utcnow)
    tags: tuple[str, ...] = Field(default=())

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("tags")
    @classmethod
    def _no_empty_values(cls, values: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
        return _require_values(values, info)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tags_text_array(self) -> str:
        return build_array_string(self.tags)


class Answer(BaseModel):
    """One worker's submitted label(s) for one task."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    stage: str
    task_id: int
    worker_id: int
    created_at: datetime = Field(default_factory=utcnow)
    tags: tuple[str, ...] = Field(default=())
    type: str = Field(default=AnswerType.ANSWER.value, description="Open set; compared without case")
    labels: tuple[str, ...] = Field(default=())

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or AnswerType.ANSWER.value
        return value

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("tags", "labels")
    @classmethod
    def _no_empty_values(cls, values: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
        return _require_values(values, info)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tags_text_array(self) -> str:
        return build_array_string(self.tags)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def labels_text_array(self) -> str:
        return build_array_string(self.labels)

    @property
    def label(self) -> Optional[str]:
        """First submitted label, if any."""
        return self.labels[0] if self.labels else None

    @property
    def is_answer(self) -> bool:
        return self.type == AnswerType.ANSWER.value


# ===========================================
# Consensus Models
# ===========================================


class AnswerAggregation(BaseModel):
    """
    Consensus output for a task.

    ``labels`` and ``confidences`` are parallel sequences. Labels given
    without a confidence are padded with 0.0; confidences need not sum to 1.
    """

    model_config = ConfigDict(frozen=True)

    type: AggregationType = Field(default=AggregationType.AGGREGATION)
    task: Task
    labels: tuple[str, ...] = Field(default=())
    confidences: tuple[float, ...] = Field(default=())

    @model_validator(mode="before")
    @classmethod
    def _pad_confidences(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        labels = tuple(data.get("labels") or ())
        confidences = tuple(data.get("confidences") or ())
        if len(confidences) < len(labels):
            padding = (0.0,) * (len(labels) - len(confidences))
            data = {**data, "labels": labels, "confidences": confidences + padding}
        return data

    @model_validator(mode="after")
    def _check_confidences(self) -> "AnswerAggregation":
        if len(self.confidences) != len(self.labels):
            raise ValueError(
                f"{len(self.confidences)} confidences given for {len(self.labels)} labels"
            )
        for label, confidence in zip(self.labels, self.confidences):
            if not math.isfinite(confidence) or confidence < 0.0:
                raise ValueError(f"invalid confidence {confidence!r} for label {label!r}")
        return self

    @classmethod
    def empty(cls, task: Task) -> "AnswerAggregation":
        """An aggregation carrying no computable result."""
        return cls(type=AggregationType.EMPTY, task=task)

    @classmethod
    def from_confidences(
        cls,
        task: Task,
        confidences: Mapping[str, float],
        ignore_zeros: bool = False,
    ) -> "AnswerAggregation":
        """
        Build an aggregation from a label -> confidence mapping.

        Labels are ordered by ascending confidence; equal confidences keep
        lexicographic label order.

        Args:
            task: The aggregated task
            confidences: Confidence per label
            ignore_zeros: Drop labels whose confidence is not positive

        Returns:
            AnswerAggregation of type AGGREGATION
        """
        entries = [
            (label, confidence)
            for label, confidence in sorted(confidences.items())
            if not ignore_zeros or confidence > 0
        ]
        entries.sort(key=lambda entry: entry[1])
        return cls(
            task=task,
            labels=tuple(label for label, _ in entries),
            confidences=tuple(confidence for _, confidence in entries),
        )

    @property
    def is_empty(self) -> bool:
        return self.type == AggregationType.EMPTY

    @property
    def top_label(self) -> Optional[str]:
        """
        Label with the highest confidence.

        Near-equal maxima resolve to the lexicographically smallest label so
        that ties are reproducible.
        """
        if not self.labels:
            return None
        best = max(self.confidences)
        tied = [
            label
            for label, confidence in zip(self.labels, self.confidences)
            if math.isclose(confidence, best, rel_tol=1e-9, abs_tol=1e-12)
        ]
        return min(tied)


class WorkerRanking(BaseModel):
    """Estimated reliability of a worker; NaN means no estimate."""

    model_config = ConfigDict(frozen=True)

    worker: Worker
    reputation: float

    @property
    def has_estimate(self) -> bool:
        return not math.isnan(self.reputation)


# ===========================================
# Stage Configuration
# ===========================================


class StageConfig(BaseModel):
    """
    Definition of a stage: algorithm selection and tunables.

    Options are a string-keyed map of string values; ``maxIter`` and
    ``precision`` tune the EM algorithms.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    description: str = Field(default="")
    worker_ranker: str = Field(default_factory=lambda: settings.default_worker_ranker)
    task_allocator: str = Field(default_factory=lambda: settings.default_task_allocator)
    answer_aggregator: str = Field(default_factory=lambda: settings.default_answer_aggregator)
    options: dict[str, str] = Field(default_factory=dict)

    @field_validator("options", mode="before")
    @classmethod
    def _parse_options(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, str):
            value = json.loads(value) if value.strip() else {}
        if not isinstance(value, Mapping):
            raise ValueError("options must be a mapping or a JSON object")
        return {str(key): str(item) for key, item in value.items()}

    @property
    def max_iterations(self) -> int:
        value = parse_int(self.options.get("maxIter"), settings.default_max_iterations)
        return value if value >= 1 else settings.default_max_iterations

    @property
    def precision(self) -> float:
        value = parse_float(self.options.get("precision"), settings.default_precision)
        return value if value >= 0.0 else settings.default_precision

    def with_changes(self, **changes: Any) -> "StageConfig":
        """Return a validated copy with the given non-None fields replaced."""
        data = self.model_dump()
        data.update({key: value for key, value in changes.items() if value is not None})
        return StageConfig(**data)
