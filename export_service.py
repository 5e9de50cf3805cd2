from __future__ import annotations

import csv
import datetime
import io
import json
from typing import Any, Iterable, List, Mapping

from loguru import logger
from pydantic import ValidationError

from models import (
    EntityModel,
    ExerciseFrequency,
    ExportOptions,
    HeaviestSet,
    StrengthProgression,
    Workout,
    WorkoutReport,
    WorkoutSummary,
)
from tools import MathTools

CSV_HEADER = ["Date", "Workout", "Exercise", "Set", "Reps", "Weight", "Rest"]


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, EntityModel):
        return value.to_wire()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class ExportService:
    """Serialize workouts and build analytical reports."""

    @staticmethod
    def _coerce(workouts: Iterable[Workout | Mapping[str, Any]]) -> List[Workout]:
        items: list[Workout] = []
        for workout in workouts:
            if isinstance(workout, Workout):
                items.append(workout)
                continue
            try:
                items.append(Workout.model_validate(workout))
            except ValidationError as exc:
                logger.warning("Skipping malformed workout record: {}", exc)
        return items

    @staticmethod
    def _number(value: float | None) -> str:
        if value is None:
            return ""
        if float(value).is_integer():
            return str(int(value))
        return str(value)

    @staticmethod
    def _day(workout: Workout) -> str:
        return workout.date.strftime("%Y-%m-%d")

    @staticmethod
    def export_workouts_to_json(workouts: Iterable[Workout | Mapping[str, Any]]) -> str:
        """Return ``workouts`` as JSON array text.

        Plain mappings are written as given; cyclic data raises ``ValueError``.
        """
        items = [w.to_wire() if isinstance(w, EntityModel) else w for w in workouts]
        return json.dumps(items, default=_json_default)

    @classmethod
    def export_workouts_to_csv(cls, workouts: Iterable[Workout | Mapping[str, Any]]) -> str:
        """Return one CSV row per set in canonical order, header first."""
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for workout in cls._coerce(workouts):
            day = cls._day(workout)
            for entry in workout.exercises:
                for number, workout_set in enumerate(entry.sets, start=1):
                    writer.writerow(
                        [
                            day,
                            workout.name,
                            entry.exercise.name,
                            number,
                            workout_set.reps,
                            cls._number(workout_set.weight),
                            cls._number(workout_set.rest_time),
                        ]
                    )
        return output.getvalue().rstrip("\n")

    @staticmethod
    def format_workout_data(workout: Workout) -> WorkoutSummary:
        heaviest: HeaviestSet | None = None
        total_sets = 0
        for entry, workout_set in workout.iter_sets():
            total_sets += 1
            if workout_set.weight is None:
                continue
            if heaviest is None or workout_set.weight > heaviest.weight:
                heaviest = HeaviestSet(
                    exercise=entry.exercise.name,
                    weight=workout_set.weight,
                    reps=workout_set.reps,
                )
        return WorkoutSummary(
            total_volume=MathTools.volume(
                (s.reps, s.weight) for _e, s in workout.iter_sets()
            ),
            total_sets=total_sets,
            heaviest_set=heaviest,
        )

    @staticmethod
    def _strength_progressions(workouts: List[Workout]) -> dict[str, StrengthProgression]:
        first: dict[str, tuple[datetime.datetime, float]] = {}
        last: dict[str, tuple[datetime.datetime, float]] = {}
        for workout in sorted(workouts, key=lambda w: w.date):
            maxima: dict[str, float] = {}
            for entry, workout_set in workout.iter_sets():
                if workout_set.weight is None:
                    continue
                name = entry.exercise.name
                maxima[name] = max(maxima.get(name, workout_set.weight), workout_set.weight)
            for name, weight in maxima.items():
                first.setdefault(name, (workout.date, weight))
                last[name] = (workout.date, weight)
        progressions = {}
        for name, (start_date, start_weight) in first.items():
            current_date, current_weight = last[name]
            progressions[name] = StrengthProgression(
                exercise=name,
                start_weight=start_weight,
                current_weight=current_weight,
                improvement=current_weight - start_weight,
                start_date=start_date,
                current_date=current_date,
            )
        return progressions

    @classmethod
    def generate_workout_report(
        cls, workouts: Iterable[Workout | Mapping[str, Any]]
    ) -> WorkoutReport:
        items = cls._coerce(workouts)
        durations = [w.duration for w in items if w.duration is not None]
        ranked = MathTools.rank_by_count(
            entry.exercise.name for w in items for entry in w.exercises
        )
        return WorkoutReport(
            total_workouts=len(items),
            total_duration=sum(durations),
            average_duration=MathTools.mean(durations),
            total_volume=sum(cls.format_workout_data(w).total_volume for w in items),
            most_frequent_exercises=[
                ExerciseFrequency(name=name, count=count) for name, count in ranked
            ],
            strength_progressions=cls._strength_progressions(items),
            average_frequency=MathTools.average_gap_days(w.date for w in items),
        )

    @classmethod
    def export_workouts_to_pdf(cls, workouts: Iterable[Workout | Mapping[str, Any]]) -> bytes:
        """Return a one-page PDF with report totals and volume per workout."""
        items = cls._coerce(workouts)
        if not items:
            return b""
        from matplotlib.figure import Figure

        report = cls.generate_workout_report(items)
        lines = [
            "Workout Report",
            "",
            f"Workouts: {report.total_workouts}",
            f"Total duration: {cls._number(report.total_duration)} min",
            f"Average duration: {report.average_duration:.1f} min",
            f"Total volume: {cls._number(report.total_volume)}",
            f"Average gap: {report.average_frequency:.1f} days",
        ]
        for freq in report.most_frequent_exercises[:5]:
            lines.append(f"  {freq.name}: {freq.count}")

        fig = Figure(figsize=(8.27, 11.69))
        text_ax = fig.add_axes([0.1, 0.55, 0.8, 0.4])
        text_ax.axis("off")
        text_ax.text(0, 1, "\n".join(lines), va="top", family="monospace")
        chart = fig.add_axes([0.1, 0.12, 0.8, 0.35])
        positions = list(range(len(items)))
        chart.bar(positions, [cls.format_workout_data(w).total_volume for w in items])
        chart.set_xticks(positions)
        chart.set_xticklabels(
            [f"{cls._day(w)} {w.name}" for w in items], rotation=45, ha="right", fontsize=7
        )
        chart.set_ylabel("Volume")
        chart.set_title("Volume per workout")
        buf = io.BytesIO()
        fig.savefig(buf, format="pdf")
        return buf.getvalue()

    @staticmethod
    def _without_notes(workout: Workout) -> Workout:
        exercises = [e.model_copy(update={"notes": None}) for e in workout.exercises]
        return workout.model_copy(update={"notes": None, "exercises": exercises})

    @classmethod
    def export_workouts(
        cls,
        workouts: Iterable[Workout | Mapping[str, Any]],
        options: ExportOptions | Mapping[str, Any],
    ) -> str | bytes:
        """Apply ``options`` and export in the requested format."""
        options = ExportOptions.model_validate(options)
        items = cls._coerce(workouts)
        if options.date_range is not None:
            start, end = options.date_range.start, options.date_range.end
            items = [w for w in items if start <= w.date <= end]
        if not options.include_notes:
            items = [cls._without_notes(w) for w in items]
        logger.debug("Exporting {} workouts as {}", len(items), options.format)

        if options.format == "json":
            if options.group_by_date:
                grouped: dict[str, list[dict]] = {}
                for workout in items:
                    grouped.setdefault(cls._day(workout), []).append(workout.to_wire())
                return json.dumps(grouped)
            return cls.export_workouts_to_json(items)
        if options.format == "csv":
            if options.group_by_date:
                items = sorted(items, key=lambda w: w.date.date())
            return cls.export_workouts_to_csv(items)
        return cls.export_workouts_to_pdf(items)
