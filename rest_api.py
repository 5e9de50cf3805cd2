from typing import Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Response

from config import load_settings
from db import AsyncKeyValueRepository, WorkoutRepository
from export_service import ExportService
from logging_config import configure_logging
from models import DateRange, ErrorKind, ExportOptions, Workout
from session_service import SessionService
from state import StateStore
from stats_service import StatisticsService

EARLIEST_DATE = "0001-01-01"
LATEST_DATE = "9999-12-31"


class WorkoutAPI:
    """Provides REST endpoints for workout sessions and analytics."""

    _STATUS_CODES = {
        ErrorKind.VALIDATION: 400,
        ErrorKind.NOT_FOUND: 404,
        ErrorKind.NO_ACTIVE_SESSION: 409,
        ErrorKind.STORAGE: 503,
        ErrorKind.DESERIALIZATION: 500,
    }

    _MEDIA_TYPES = {
        "json": "application/json",
        "csv": "text/csv",
        "pdf": "application/pdf",
    }

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
    ) -> None:
        self.settings = load_settings(yaml_path)
        configure_logging(self.settings.log_level)
        self.db_path = db_path or self.settings.db_path
        self.store = StateStore()
        self.storage = AsyncKeyValueRepository(self.db_path)
        self.workouts = WorkoutRepository(
            self.storage, self.store, self.settings.storage_key
        )
        self.sessions = SessionService(self.workouts)
        self.statistics = StatisticsService(
            self.workouts, favorite_limit=self.settings.favorite_limit
        )
        self.exporter = ExportService()
        self._loaded = False
        self.app = FastAPI(
            title="SnapSets API",
            description="REST API for workout sessions and analytics",
            dependencies=[Depends(self._ensure_loaded)],
        )
        self._setup_routes()

    async def _ensure_loaded(self) -> None:
        if self._loaded or self.store.workouts:
            return
        await self.workouts.load_from_storage()
        # a failed read is retried until the collection gains a workout
        error = self.store.error
        self._loaded = error is None or error.kind is not ErrorKind.STORAGE

    def _failure(self) -> HTTPException:
        error = self.store.error
        if error is None:
            return HTTPException(status_code=500, detail="operation failed")
        return HTTPException(
            status_code=self._STATUS_CODES[error.kind],
            detail={"kind": error.kind.value, "detail": error.detail},
        )

    def _filtered(
        self,
        start_date: Optional[str],
        end_date: Optional[str],
        tag: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[Workout]:
        if start_date or end_date:
            result = self.statistics.get_workouts_by_date_range(
                start_date or EARLIEST_DATE, end_date or LATEST_DATE
            )
        else:
            result = self.workouts.workouts
        if tag is not None:
            ids = {w.id for w in self.statistics.get_workouts_by_tag(tag)}
            result = [w for w in result if w.id in ids]
        if query is not None:
            ids = {w.id for w in self.statistics.search_workouts(query)}
            result = [w for w in result if w.id in ids]
        return result

    def _setup_routes(self) -> None:
        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and storage state.",
        )
        def health():
            error = self.store.error
            return {
                "status": "ok",
                "workouts": len(self.store.workouts),
                "error": str(error) if error else None,
            }

        @self.app.get(
            "/workouts",
            summary="List workouts",
            description="Completed workouts filtered by date range, tag or name.",
        )
        def list_workouts(
            start_date: str = None,
            end_date: str = None,
            tag: str = None,
            query: str = None,
        ):
            try:
                workouts = self._filtered(start_date, end_date, tag, query)
            except ValueError:
                raise HTTPException(
                    status_code=400, detail="dates must be in ISO-8601 format"
                )
            return [w.to_wire() for w in workouts]

        @self.app.post("/workouts", summary="Create workout")
        async def create_workout(data: Dict = Body(...)):
            workout = await self.workouts.create_workout(data)
            if workout is None:
                raise self._failure()
            return workout.to_wire()

        @self.app.get("/workouts/{workout_id}")
        def get_workout(workout_id: str):
            workout = self.workouts.get_workout(workout_id)
            if workout is None:
                raise HTTPException(status_code=404, detail="workout not found")
            return workout.to_wire()

        @self.app.put("/workouts/{workout_id}")
        async def update_workout(workout_id: str, data: Dict = Body(...)):
            workout = await self.workouts.update_workout(workout_id, data)
            if workout is None:
                raise self._failure()
            return workout.to_wire()

        @self.app.delete("/workouts/{workout_id}")
        async def delete_workout(workout_id: str):
            if not await self.workouts.delete_workout(workout_id):
                raise self._failure()
            return {"status": "deleted"}

        @self.app.get("/workouts/{workout_id}/summary")
        def workout_summary(workout_id: str):
            workout = self.workouts.get_workout(workout_id)
            if workout is None:
                raise HTTPException(status_code=404, detail="workout not found")
            return self.exporter.format_workout_data(workout).to_wire()

        @self.app.get("/session", summary="Active workout")
        def get_session():
            current = self.sessions.current_workout
            return {
                "active": current is not None,
                "workout": current.to_wire() if current else None,
            }

        @self.app.post("/session/start")
        def start_session(name: str, tags: List[str] = Query(None)):
            workout = self.sessions.start_workout(name, tags)
            if workout is None:
                raise self._failure()
            return workout.to_wire()

        @self.app.delete("/session")
        def discard_session():
            if not self.sessions.discard_current_workout():
                raise HTTPException(status_code=409, detail="no active workout")
            return {"status": "discarded"}

        @self.app.post("/session/exercises")
        def add_session_exercise(exercise: Dict = Body(...)):
            entry = self.sessions.add_exercise_to_current_workout(exercise)
            if entry is None:
                raise self._failure()
            return entry.to_wire()

        @self.app.post("/session/exercises/{exercise_id}/sets")
        def add_session_set(exercise_id: str, data: Dict = Body(...)):
            workout_set = self.sessions.add_set_to_exercise(exercise_id, data)
            if workout_set is None:
                raise self._failure()
            return workout_set.to_wire()

        @self.app.post("/session/exercises/{exercise_id}/sets/{set_id}/analysis")
        def annotate_session_set(exercise_id: str, set_id: str, data: Dict = Body(...)):
            workout_set = self.sessions.annotate_set(exercise_id, set_id, data)
            if workout_set is None:
                if self.store.error is not None:
                    raise self._failure()
                raise HTTPException(status_code=422, detail="analysis was not successful")
            return workout_set.to_wire()

        @self.app.post("/session/finish")
        async def finish_session():
            workout = await self.sessions.finish_current_workout()
            if workout is None:
                raise self._failure()
            return workout.to_wire()

        @self.app.get("/stats", summary="Workout statistics")
        def stats():
            return self.statistics.get_workout_stats().to_wire()

        @self.app.get("/report", summary="Workout report")
        def report(start_date: str = None, end_date: str = None):
            try:
                workouts = self._filtered(start_date, end_date)
            except ValueError:
                raise HTTPException(
                    status_code=400, detail="dates must be in ISO-8601 format"
                )
            return self.exporter.generate_workout_report(workouts).to_wire()

        @self.app.get("/export", summary="Export workouts")
        def export(
            format: str = "json",
            start_date: str = None,
            end_date: str = None,
            include_notes: bool = True,
            group_by_date: bool = False,
        ):
            if format not in self._MEDIA_TYPES:
                raise HTTPException(status_code=400, detail="format must be json, csv or pdf")
            date_range = None
            if start_date or end_date:
                try:
                    date_range = DateRange(
                        start=self.statistics.date_bound(start_date or EARLIEST_DATE),
                        end=self.statistics.date_bound(end_date or LATEST_DATE, end=True),
                    )
                except ValueError:
                    raise HTTPException(
                        status_code=400, detail="dates must be in ISO-8601 format"
                    )
            options = ExportOptions(
                format=format,
                date_range=date_range,
                include_notes=include_notes,
                group_by_date=group_by_date,
            )
            data = self.exporter.export_workouts(self.workouts.workouts, options)
            return Response(
                content=data,
                media_type=self._MEDIA_TYPES[format],
                headers={
                    "Content-Disposition": f"attachment; filename=workouts.{format}"
                },
            )
