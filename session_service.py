from __future__ import annotations

from typing import Any, Mapping

from loguru import logger
from pydantic import ValidationError

from db import WorkoutRepository
from models import (
    ErrorKind,
    Exercise,
    VisionAnalysisResponse,
    Workout,
    WorkoutExercise,
    WorkoutSet,
)


def analysis_notes(response: VisionAnalysisResponse) -> str | None:
    """Return note text for a successful analysis, or ``None``."""
    if not response.success or response.analysis is None:
        return None
    analysis = response.analysis
    lines: list[str] = []
    if analysis.form_feedback:
        lines.append(f"AI Feedback: {', '.join(analysis.form_feedback)}")
    if analysis.exercise_detected:
        lines.append(f"Detected: {analysis.exercise_detected}")
    return "\n".join(lines) or None


class SessionService:
    """Own the single in-progress workout and promote it when finished."""

    def __init__(self, repository: WorkoutRepository) -> None:
        self.repository = repository
        self.store = repository.store

    @property
    def current_workout(self) -> Workout | None:
        current = self.store.current_workout
        return current.model_copy(deep=True) if current else None

    @property
    def is_active(self) -> bool:
        return self.store.current_workout is not None

    def _require_active(self) -> Workout | None:
        if self.store.current_workout is None:
            self.store.set_error(ErrorKind.NO_ACTIVE_SESSION, "No active workout")
        return self.store.current_workout

    def _find_entry(self, workout: Workout, exercise_id: str) -> WorkoutExercise | None:
        for entry in workout.exercises:
            if entry.exercise_id == exercise_id:
                return entry
        self.store.set_error(
            ErrorKind.NOT_FOUND, f"Exercise {exercise_id} not in current workout"
        )
        return None

    def _changed(self) -> None:
        self.store.clear_error()
        self.store.publish()

    def start_workout(self, name: str, tags: list[str] | None = None) -> Workout | None:
        if self.store.current_workout is not None:
            self.store.set_error(ErrorKind.VALIDATION, "Workout already in progress")
            return None
        if not isinstance(name, str) or not name.strip():
            self.store.set_error(ErrorKind.VALIDATION, "Workout name must not be empty")
            return None
        try:
            workout = Workout(name=name, tags=tags, is_completed=False)
        except ValidationError as exc:
            self.store.set_error(ErrorKind.VALIDATION, f"Invalid workout: {exc}")
            return None
        self.store.current_workout = workout
        logger.info("Started workout {} ({})", workout.id, workout.name)
        self._changed()
        return workout.model_copy(deep=True)

    def add_exercise_to_current_workout(
        self, exercise: Exercise | Mapping[str, Any]
    ) -> WorkoutExercise | None:
        workout = self._require_active()
        if workout is None:
            return None
        try:
            snapshot = Exercise.model_validate(exercise).model_copy(deep=True)
        except ValidationError as exc:
            self.store.set_error(ErrorKind.VALIDATION, f"Invalid exercise: {exc}")
            return None
        entry = WorkoutExercise(exercise_id=snapshot.id, exercise=snapshot)
        workout.exercises.append(entry)
        self._changed()
        return entry.model_copy(deep=True)

    def add_set_to_exercise(
        self, exercise_id: str, set_data: WorkoutSet | Mapping[str, Any]
    ) -> WorkoutSet | None:
        workout = self._require_active()
        if workout is None:
            return None
        entry = self._find_entry(workout, exercise_id)
        if entry is None:
            return None
        if isinstance(set_data, WorkoutSet):
            set_data = set_data.model_dump()
        fields = WorkoutSet.normalize_keys(set_data)
        if fields.get("id") is None:
            fields.pop("id", None)
        try:
            workout_set = WorkoutSet.model_validate(fields)
        except ValidationError as exc:
            self.store.set_error(ErrorKind.VALIDATION, f"Invalid set: {exc}")
            return None
        if any(s.id == workout_set.id for s in entry.sets):
            self.store.set_error(ErrorKind.VALIDATION, f"Duplicate set id {workout_set.id}")
            return None
        entry.sets.append(workout_set)
        self._changed()
        return workout_set.model_copy(deep=True)

    def annotate_set(
        self,
        exercise_id: str,
        set_id: str,
        response: VisionAnalysisResponse | Mapping[str, Any],
    ) -> WorkoutSet | None:
        """Append vision feedback to the notes of a set in the active workout."""
        workout = self._require_active()
        if workout is None:
            return None
        entry = self._find_entry(workout, exercise_id)
        if entry is None:
            return None
        target = next((s for s in entry.sets if s.id == set_id), None)
        if target is None:
            self.store.set_error(ErrorKind.NOT_FOUND, f"Set {set_id} not found")
            return None
        try:
            response = VisionAnalysisResponse.model_validate(response)
        except ValidationError as exc:
            self.store.set_error(ErrorKind.VALIDATION, f"Invalid analysis response: {exc}")
            return None
        text = analysis_notes(response)
        if text is None:
            logger.warning("Ignoring unsuccessful analysis: {}", response.error)
            return None
        target.notes = f"{target.notes}\n{text}" if target.notes else text
        self._changed()
        return target.model_copy(deep=True)

    def discard_current_workout(self) -> bool:
        if self.store.current_workout is None:
            return False
        logger.info("Discarded workout {}", self.store.current_workout.id)
        self.store.current_workout = None
        self._changed()
        return True

    async def finish_current_workout(self) -> Workout | None:
        workout = self._require_active()
        if workout is None:
            return None
        finished = workout.model_copy(deep=True, update={"is_completed": True})
        # the active slot is emptied before the collection gains the workout
        self.store.current_workout = None
        created = await self.repository.create_workout(finished)
        if created is None:
            self.store.current_workout = workout
            self.store.publish()
            return None
        logger.info("Finished workout {}", created.id)
        return created
