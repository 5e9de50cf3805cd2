import asyncio
import json
import sqlite3
from contextlib import contextmanager, asynccontextmanager
from typing import Any, List, Mapping, Optional, Tuple

import aiosqlite
from loguru import logger
from pydantic import ValidationError

from models import ErrorKind, StoreError, Workout
from state import StateStore

STORAGE_KEY = "workouts"


class StorageError(RuntimeError):
    """Raised when the key/value backend cannot read or write."""


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "key_value_store": (
            """CREATE TABLE key_value_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;")
        conn.execute(f"DROP TABLE {table}_old;")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous repository helpers using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                return list(await cursor.fetchall())
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc


class AsyncKeyValueRepository(AsyncBaseRepository):
    """Key/value backend holding serialized records."""

    async def get(self, key: str) -> Optional[str]:
        rows = await self.fetch_all(
            "SELECT value FROM key_value_store WHERE key = ?;", (key,)
        )
        return rows[0][0] if rows else None

    async def set(self, key: str, value: str) -> None:
        await self.execute(
            "INSERT OR REPLACE INTO key_value_store (key, value) VALUES (?, ?);",
            (key, value),
        )

    async def remove(self, key: str) -> None:
        await self.execute("DELETE FROM key_value_store WHERE key = ?;", (key,))

    async def clear(self) -> None:
        await self.execute("DELETE FROM key_value_store;")


class WorkoutRepository:
    """Durable collection of completed workouts.

    The whole collection is stored as one JSON array under ``storage_key``.
    In-memory state changes before the write is issued; a failed write keeps
    the change and reports ``ErrorKind.STORAGE``.
    """

    def __init__(
        self,
        storage: AsyncKeyValueRepository,
        store: StateStore | None = None,
        storage_key: str = STORAGE_KEY,
    ) -> None:
        self.storage = storage
        self.store = store if store is not None else StateStore()
        self.storage_key = storage_key
        self._write_lock = asyncio.Lock()

    @property
    def workouts(self) -> list[Workout]:
        return [w.model_copy(deep=True) for w in self.store.workouts]

    @property
    def last_error(self) -> StoreError | None:
        return self.store.error

    @property
    def loading(self) -> bool:
        return self.store.loading

    def get_workout(self, workout_id: str) -> Workout | None:
        index = self._index_of(workout_id)
        if index is None:
            return None
        return self.store.workouts[index].model_copy(deep=True)

    def _index_of(self, workout_id: str) -> int | None:
        for index, workout in enumerate(self.store.workouts):
            if workout.id == workout_id:
                return index
        return None

    @staticmethod
    def _decode(text: str) -> list[Workout]:
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError("stored workouts must be a JSON array")
        return [Workout.model_validate(item) for item in data]

    def _encode(self) -> str:
        return json.dumps([w.to_wire() for w in self.store.workouts])

    async def _persist(self) -> bool:
        async with self._write_lock:
            payload = self._encode()
            try:
                await self.storage.set(self.storage_key, payload)
            except StorageError as exc:
                self.store.set_error(ErrorKind.STORAGE, f"Failed to save workouts: {exc}")
                return False
        logger.debug("Saved {} workouts", len(self.store.workouts))
        return True

    def _succeed(self) -> None:
        self.store.clear_error()
        self.store.publish()

    async def load_from_storage(self) -> list[Workout]:
        """Replace the collection with the persisted record."""
        self.store.loading = True
        self.store.publish()
        try:
            text = await self.storage.get(self.storage_key)
        except StorageError as exc:
            self.store.workouts = []
            self.store.loading = False
            self.store.set_error(ErrorKind.STORAGE, f"Failed to load workouts: {exc}")
            return []
        try:
            workouts = self._decode(text) if text is not None else []
        except ValueError as exc:
            self.store.workouts = []
            self.store.loading = False
            self.store.set_error(
                ErrorKind.DESERIALIZATION, f"Failed to load workouts: {exc}"
            )
            return []
        self.store.workouts = workouts
        self.store.loading = False
        logger.info("Loaded {} workouts", len(workouts))
        self._succeed()
        return self.workouts

    async def create_workout(
        self, data: Mapping[str, Any] | Workout
    ) -> Workout | None:
        if isinstance(data, Workout):
            data = data.model_dump()
        fields = Workout.normalize_keys(data)
        name = fields.get("name")
        if not isinstance(name, str) or not name.strip() or fields.get("exercises") is None:
            self.store.set_error(ErrorKind.VALIDATION, "Invalid workout data")
            return None
        for key in ("id", "date"):
            if fields.get(key) is None:
                fields.pop(key, None)
        fields["is_completed"] = True
        try:
            workout = Workout.model_validate(fields)
        except ValidationError as exc:
            self.store.set_error(ErrorKind.VALIDATION, f"Invalid workout data: {exc}")
            return None
        if self._index_of(workout.id) is not None:
            self.store.set_error(ErrorKind.VALIDATION, f"Duplicate workout id {workout.id}")
            return None

        self.store.workouts.append(workout)
        self.store.publish()
        logger.info("Created workout {} ({})", workout.id, workout.name)
        if await self._persist():
            self._succeed()
        return workout.model_copy(deep=True)

    async def update_workout(
        self, workout_id: str, partial: Mapping[str, Any]
    ) -> Workout | None:
        index = self._index_of(workout_id)
        if index is None:
            self.store.set_error(ErrorKind.NOT_FOUND, "Workout not found")
            return None
        changes = Workout.normalize_keys(partial)
        changes.pop("id", None)
        if "name" in changes and (
            not isinstance(changes["name"], str) or not changes["name"].strip()
        ):
            self.store.set_error(ErrorKind.VALIDATION, "Invalid workout data")
            return None
        if changes.get("is_completed") is False:
            self.store.set_error(
                ErrorKind.VALIDATION, "Stored workouts must stay completed"
            )
            return None
        merged = self.store.workouts[index].model_dump()
        merged.update(changes)
        try:
            updated = Workout.model_validate(merged)
        except ValidationError as exc:
            self.store.set_error(ErrorKind.VALIDATION, f"Invalid workout data: {exc}")
            return None

        self.store.workouts[index] = updated
        self.store.publish()
        logger.info("Updated workout {}", workout_id)
        if await self._persist():
            self._succeed()
        return updated.model_copy(deep=True)

    async def delete_workout(self, workout_id: str) -> bool:
        index = self._index_of(workout_id)
        if index is None:
            self.store.set_error(ErrorKind.NOT_FOUND, "Workout not found")
            return False
        del self.store.workouts[index]
        self.store.publish()
        logger.info("Deleted workout {}", workout_id)
        if await self._persist():
            self._succeed()
        return True

    async def clear_all(self) -> None:
        """Drop every workout and the persisted record."""
        self.store.workouts = []
        self.store.publish()
        async with self._write_lock:
            try:
                await self.storage.remove(self.storage_key)
            except StorageError as exc:
                self.store.set_error(ErrorKind.STORAGE, f"Failed to clear workouts: {exc}")
                return
        self._succeed()
