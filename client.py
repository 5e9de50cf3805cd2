import requests
from typing import Optional


class SnapSetsClient:
    """Simple REST client for the workout API."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def health(self) -> dict:
        resp = requests.get(f"{self.base_url}/health", timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def list_workouts(self, **params: str) -> list:
        resp = requests.get(f"{self.base_url}/workouts", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def create_workout(self, data: dict) -> dict:
        resp = requests.post(f"{self.base_url}/workouts", json=data, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_workout(self, workout_id: str) -> dict:
        resp = requests.get(f"{self.base_url}/workouts/{workout_id}", timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def update_workout(self, workout_id: str, data: dict) -> dict:
        resp = requests.put(
            f"{self.base_url}/workouts/{workout_id}", json=data, timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()

    def delete_workout(self, workout_id: str) -> None:
        resp = requests.delete(
            f"{self.base_url}/workouts/{workout_id}", timeout=self.timeout
        )
        resp.raise_for_status()

    def workout_summary(self, workout_id: str) -> dict:
        resp = requests.get(
            f"{self.base_url}/workouts/{workout_id}/summary", timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()

    def get_session(self) -> dict:
        resp = requests.get(f"{self.base_url}/session", timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def discard_workout(self) -> None:
        resp = requests.delete(f"{self.base_url}/session", timeout=self.timeout)
        resp.raise_for_status()

    def start_workout(self, name: str, tags: Optional[list[str]] = None) -> dict:
        params: dict = {"name": name}
        if tags:
            params["tags"] = tags
        resp = requests.post(
            f"{self.base_url}/session/start", params=params, timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()

    def add_exercise(self, exercise: dict) -> dict:
        resp = requests.post(
            f"{self.base_url}/session/exercises", json=exercise, timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()

    def add_set(self, exercise_id: str, reps: int, weight: Optional[float] = None, **extra) -> dict:
        data = {"reps": reps, **extra}
        if weight is not None:
            data["weight"] = weight
        resp = requests.post(
            f"{self.base_url}/session/exercises/{exercise_id}/sets",
            json=data,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def analyze_set(self, exercise_id: str, set_id: str, analysis: dict) -> dict:
        """Attach a vision analysis response to a set of the active workout."""
        resp = requests.post(
            f"{self.base_url}/session/exercises/{exercise_id}/sets/{set_id}/analysis",
            json=analysis,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def finish_workout(self) -> dict:
        resp = requests.post(f"{self.base_url}/session/finish", timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def stats(self) -> dict:
        resp = requests.get(f"{self.base_url}/stats", timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def report(self, **params: str) -> dict:
        resp = requests.get(f"{self.base_url}/report", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def export(self, fmt: str = "json", **params: str) -> bytes:
        resp = requests.get(
            f"{self.base_url}/export",
            params={"format": fmt, **params},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.content
