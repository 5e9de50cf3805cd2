from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Return a fresh unique identifier."""
    return uuid.uuid4().hex


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as timezone-aware datetime in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class ErrorKind(str, Enum):
    """Closed set of error categories reported by the store."""

    VALIDATION = "ValidationError"
    NOT_FOUND = "NotFoundError"
    STORAGE = "StorageError"
    DESERIALIZATION = "DeserializationError"
    NO_ACTIVE_SESSION = "NoActiveSessionError"


@dataclass(frozen=True)
class StoreError:
    kind: ErrorKind
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}" if self.detail else self.kind.value


class EntityModel(BaseModel):
    """Base model using camelCase names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def normalize_keys(cls, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Return ``payload`` with wire names replaced by field names."""
        aliases = {
            info.alias: name for name, info in cls.model_fields.items() if info.alias
        }
        return {aliases.get(key, key): value for key, value in payload.items()}


class Exercise(EntityModel):
    id: str
    name: str
    muscle_groups: list[str] = Field(default_factory=list)
    instructions: Optional[str] = None
    equipment: Optional[str] = None


class WorkoutSet(EntityModel):
    id: str = Field(default_factory=new_id)
    reps: int = Field(ge=0)
    weight: Optional[float] = Field(default=None, ge=0)
    duration: Optional[float] = Field(default=None, ge=0)
    rest_time: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class WorkoutExercise(EntityModel):
    id: str = Field(default_factory=new_id)
    exercise_id: str
    exercise: Exercise
    sets: list[WorkoutSet] = Field(default_factory=list)
    notes: Optional[str] = None


class Workout(EntityModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    date: datetime.datetime = Field(default_factory=utc_now)
    exercises: list[WorkoutExercise] = Field(default_factory=list)
    duration: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    is_completed: bool = False
    tags: Optional[list[str]] = None

    @field_validator("date")
    @classmethod
    def _date_in_utc(cls, value: datetime.datetime) -> datetime.datetime:
        return as_utc(value)

    def iter_sets(self):
        """Yield ``(entry, set)`` pairs in canonical order."""
        for entry in self.exercises:
            for workout_set in entry.sets:
                yield entry, workout_set


class WorkoutStats(EntityModel):
    total_workouts: int = 0
    total_exercises: int = 0
    total_sets: int = 0
    total_weight: float = 0.0
    average_duration: float = 0.0
    favorite_exercises: list[Exercise] = Field(default_factory=list)


class DateRange(EntityModel):
    start: datetime.datetime
    end: datetime.datetime

    @field_validator("start", "end")
    @classmethod
    def _bounds_in_utc(cls, value: datetime.datetime) -> datetime.datetime:
        return as_utc(value)


class ExportOptions(EntityModel):
    format: Literal["json", "csv", "pdf"] = "json"
    date_range: Optional[DateRange] = None
    include_notes: bool = True
    group_by_date: bool = False


class HeaviestSet(EntityModel):
    exercise: str
    weight: float
    reps: int


class WorkoutSummary(EntityModel):
    total_volume: float = 0.0
    total_sets: int = 0
    heaviest_set: Optional[HeaviestSet] = None


class ExerciseFrequency(EntityModel):
    name: str
    count: int


class StrengthProgression(EntityModel):
    exercise: str
    start_weight: float
    current_weight: float
    improvement: float
    start_date: datetime.datetime
    current_date: datetime.datetime


class WorkoutReport(EntityModel):
    total_workouts: int = 0
    total_duration: float = 0.0
    average_duration: float = 0.0
    total_volume: float = 0.0
    most_frequent_exercises: list[ExerciseFrequency] = Field(default_factory=list)
    strength_progressions: dict[str, StrengthProgression] = Field(default_factory=dict)
    average_frequency: float = 0.0


class VisionAnalysis(EntityModel):
    exercise_detected: Optional[str] = None
    form_feedback: Optional[list[str]] = None
    rep_count: Optional[int] = None
    confidence: float = 0.0
    suggestions: Optional[list[str]] = None


class VisionAnalysisResponse(EntityModel):
    """Result returned by the external vision/analysis client."""

    success: bool
    analysis: Optional[VisionAnalysis] = None
    error: Optional[str] = None
