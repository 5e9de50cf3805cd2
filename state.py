from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from models import ErrorKind, StoreError, Workout


@dataclass(frozen=True)
class StoreState:
    """Immutable view of the store published to subscribers."""

    workouts: tuple[Workout, ...] = ()
    current_workout: Optional[Workout] = None
    loading: bool = False
    error: Optional[StoreError] = None


Listener = Callable[[StoreState], None]


class StateStore:
    """Hold the workout collection, the active session and the current error."""

    def __init__(self) -> None:
        self.workouts: list[Workout] = []
        self.current_workout: Workout | None = None
        self.loading = False
        self.error: StoreError | None = None
        self._listeners: list[Listener] = []

    def snapshot(self) -> StoreState:
        current = self.current_workout
        return StoreState(
            workouts=tuple(w.model_copy(deep=True) for w in self.workouts),
            current_workout=current.model_copy(deep=True) if current else None,
            loading=self.loading,
            error=self.error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable removing it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self) -> None:
        if not self._listeners:
            return
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener {} failed", listener)

    def set_error(self, kind: ErrorKind, detail: str = "") -> StoreError:
        self.error = StoreError(kind, detail)
        logger.warning("{}", self.error)
        self.publish()
        return self.error

    def clear_error(self) -> None:
        self.error = None
