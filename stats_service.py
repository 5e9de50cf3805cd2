from __future__ import annotations
import datetime
from typing import List

from db import WorkoutRepository
from models import Exercise, Workout, WorkoutStats, as_utc
from tools import MathTools

DateLike = datetime.datetime | datetime.date | str


class StatisticsService:
    """Compute workout statistics and filters over the stored collection."""

    def __init__(self, repository: WorkoutRepository, favorite_limit: int = 5) -> None:
        self.workouts = repository
        self.favorite_limit = favorite_limit

    @staticmethod
    def date_bound(value: DateLike, end: bool = False) -> datetime.datetime:
        """Return ``value`` as UTC datetime; plain dates cover the whole day."""
        if isinstance(value, str):
            if len(value) == 10:
                value = datetime.date.fromisoformat(value)
            else:
                value = datetime.datetime.fromisoformat(value)
        if not isinstance(value, datetime.datetime):
            value = datetime.datetime.combine(
                value, datetime.time.max if end else datetime.time.min
            )
        return as_utc(value)

    def _favorites(self, workouts: List[Workout]) -> List[Exercise]:
        snapshots: dict[str, Exercise] = {}
        ids: list[str] = []
        for workout in workouts:
            for entry in workout.exercises:
                snapshots.setdefault(entry.exercise.id, entry.exercise)
                ids.append(entry.exercise.id)
        ranked = MathTools.rank_by_count(ids)[: self.favorite_limit]
        return [snapshots[ex_id] for ex_id, _count in ranked]

    def get_workout_stats(self) -> WorkoutStats:
        """Return aggregated totals over every stored workout."""
        workouts = self.workouts.workouts
        durations = [w.duration for w in workouts if w.duration is not None]
        return WorkoutStats(
            total_workouts=len(workouts),
            total_exercises=sum(len(w.exercises) for w in workouts),
            total_sets=sum(len(e.sets) for w in workouts for e in w.exercises),
            total_weight=MathTools.volume(
                (s.reps, s.weight) for w in workouts for _e, s in w.iter_sets()
            ),
            average_duration=MathTools.mean(durations),
            favorite_exercises=self._favorites(workouts),
        )

    def get_workouts_by_date_range(
        self, start: DateLike, end: DateLike
    ) -> List[Workout]:
        """Return workouts dated within ``start`` and ``end``, both inclusive."""
        lower = self.date_bound(start)
        upper = self.date_bound(end, end=True)
        return [w for w in self.workouts.workouts if lower <= w.date <= upper]

    def get_workouts_by_tag(self, tag: str) -> List[Workout]:
        return [w for w in self.workouts.workouts if w.tags and tag in w.tags]

    def search_workouts(self, query: str) -> List[Workout]:
        """Case-insensitive match on workout or exercise names."""
        needle = query.casefold()
        result = []
        for workout in self.workouts.workouts:
            names = [workout.name] + [e.exercise.name for e in workout.exercises]
            if any(needle in name.casefold() for name in names):
                result.append(workout)
        return result
