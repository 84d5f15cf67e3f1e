"""
Storage layer — tasks, financial records, voice command log.

Two backends behind one async interface:
  - MemoryStorage: process-local, used for development and tests
  - SqliteStorage: single-file SQLite database, blocking calls run in a worker thread
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import fields
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from constants import VOICE_COMMAND_HISTORY_LIMIT
from .models import FinancialRecord, FinancialSummary, Task, VoiceCommandLog, to_money

logger = logging.getLogger(__name__)

_TASK_UPDATABLE = {"title", "description", "priority", "status", "due_date", "completed_at"}


class StorageError(Exception):
    """Raised when the backing store rejects or fails an operation."""


def _in_range(when: datetime, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and when < start:
        return False
    if end is not None and when > end:
        return False
    return True


def _summarize(records) -> FinancialSummary:
    summary = FinancialSummary()
    for record_type, amount in records:
        if record_type == "income":
            summary.income += Decimal(amount)
        elif record_type == "expense":
            summary.expenses += Decimal(amount)
    return summary


class Storage(ABC):
    """Async storage contract used by the dispatcher and the REST routes."""

    @abstractmethod
    async def create_task(self, task: Task) -> Task: ...

    @abstractmethod
    async def get_tasks(self, user_id: int, status: str | None = None) -> list[Task]:
        """Tasks for a user, newest first, optionally filtered by status."""

    @abstractmethod
    async def get_task(self, task_id: int, user_id: int) -> Task | None: ...

    @abstractmethod
    async def update_task(self, task_id: int, user_id: int, **updates) -> Task | None: ...

    @abstractmethod
    async def create_financial_record(self, record: FinancialRecord) -> FinancialRecord: ...

    @abstractmethod
    async def get_financial_records(self, user_id: int) -> list[FinancialRecord]: ...

    @abstractmethod
    async def get_financial_summary(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> FinancialSummary: ...

    @abstractmethod
    async def create_voice_command(self, log: VoiceCommandLog) -> VoiceCommandLog: ...

    @abstractmethod
    async def get_voice_commands(
        self, user_id: int, limit: int = VOICE_COMMAND_HISTORY_LIMIT,
    ) -> list[VoiceCommandLog]:
        """Voice command log for a user, newest first."""

    def close(self) -> None:
        pass


class MemoryStorage(Storage):
    """Process-local storage. Every method completes without yielding, so no locking is needed."""

    def __init__(self):
        self._tasks: dict[int, Task] = {}
        self._records: dict[int, FinancialRecord] = {}
        self._voice_commands: dict[int, VoiceCommandLog] = {}
        self._ids = {
            "tasks": itertools.count(1),
            "records": itertools.count(1),
            "voice_commands": itertools.count(1),
        }

    @staticmethod
    def _newest_first(rows):
        return sorted(rows, key=lambda r: (r.created_at, r.id), reverse=True)

    async def create_task(self, task: Task) -> Task:
        stored = copy.copy(task)
        stored.id = next(self._ids["tasks"])
        self._tasks[stored.id] = stored
        return copy.copy(stored)

    async def get_tasks(self, user_id: int, status: str | None = None) -> list[Task]:
        rows = [
            t for t in self._tasks.values()
            if t.user_id == user_id and (status is None or t.status == status)
        ]
        return [copy.copy(t) for t in self._newest_first(rows)]

    async def get_task(self, task_id: int, user_id: int) -> Task | None:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != user_id:
            return None
        return copy.copy(task)

    async def update_task(self, task_id: int, user_id: int, **updates) -> Task | None:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != user_id:
            return None
        for key, value in updates.items():
            if key not in _TASK_UPDATABLE:
                raise StorageError(f"Task field '{key}' cannot be updated")
            setattr(task, key, value)
        task.updated_at = datetime.now()
        return copy.copy(task)

    async def create_financial_record(self, record: FinancialRecord) -> FinancialRecord:
        stored = copy.copy(record)
        stored.amount = str(to_money(stored.amount))
        stored.id = next(self._ids["records"])
        self._records[stored.id] = stored
        return copy.copy(stored)

    async def get_financial_records(self, user_id: int) -> list[FinancialRecord]:
        rows = [r for r in self._records.values() if r.user_id == user_id]
        return [copy.copy(r) for r in self._newest_first(rows)]

    async def get_financial_summary(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> FinancialSummary:
        return _summarize(
            (r.type, r.amount)
            for r in self._records.values()
            if r.user_id == user_id and _in_range(r.date, start, end)
        )

    async def create_voice_command(self, log: VoiceCommandLog) -> VoiceCommandLog:
        stored = copy.copy(log)
        stored.id = next(self._ids["voice_commands"])
        self._voice_commands[stored.id] = stored
        return copy.copy(stored)

    async def get_voice_commands(
        self, user_id: int, limit: int = VOICE_COMMAND_HISTORY_LIMIT,
    ) -> list[VoiceCommandLog]:
        rows = [c for c in self._voice_commands.values() if c.user_id == user_id]
        return [copy.copy(c) for c in self._newest_first(rows)[:limit]]


# === SQLite ===

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    priority TEXT NOT NULL DEFAULT 'medium',
    status TEXT NOT NULL DEFAULT 'pending',
    due_date TEXT,
    completed_at TEXT,
    created_via_voice INTEGER NOT NULL DEFAULT 0,
    voice_transcription TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS financial_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    type TEXT NOT NULL,
    amount TEXT NOT NULL,
    category TEXT NOT NULL,
    description TEXT,
    date TEXT NOT NULL,
    created_via_voice INTEGER NOT NULL DEFAULT 0,
    voice_transcription TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS voice_commands (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    command TEXT NOT NULL,
    transcription TEXT NOT NULL,
    intent TEXT,
    confidence REAL,
    processing_time_ms INTEGER,
    successful INTEGER NOT NULL DEFAULT 1,
    error_message TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks (user_id, status);
CREATE INDEX IF NOT EXISTS idx_records_user ON financial_records (user_id);
CREATE INDEX IF NOT EXISTS idx_voice_commands_user ON voice_commands (user_id);
"""

_DATETIME_COLUMNS = {"completed_at", "created_at", "updated_at", "date"}
_BOOL_COLUMNS = {"created_via_voice", "successful"}


def _to_db(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        return str(value)
    return value


def _from_row(cls, row: sqlite3.Row):
    data = {}
    for f in fields(cls):
        value = row[f.name]
        if value is not None:
            if f.name == "due_date":
                value = date.fromisoformat(value)
            elif f.name in _DATETIME_COLUMNS:
                value = datetime.fromisoformat(value)
            elif f.name in _BOOL_COLUMNS:
                value = bool(value)
        data[f.name] = value
    return cls(**data)


class SqliteStorage(Storage):
    """SQLite-backed storage. One connection, serialized by a lock, used from worker threads."""

    def __init__(self, path: str | Path = ":memory:"):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._lock:
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        logger.info(f"SQLite storage ready at {self.path}")

    def _run(self, sql: str, params: tuple = ()) -> list[sqlite3.Row] | int:
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
                if sql.lstrip().upper().startswith("SELECT"):
                    return cursor.fetchall()
                self._conn.commit()
                return cursor.lastrowid if sql.lstrip().upper().startswith("INSERT") else cursor.rowcount
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.error(f"SQLite operation failed: {e}")
                raise StorageError(f"Database operation failed: {e}") from e

    async def _execute(self, sql: str, params: tuple = ()):
        return await asyncio.to_thread(self._run, sql, params)

    async def _insert(self, table: str, row) -> int:
        data = {f.name: _to_db(getattr(row, f.name)) for f in fields(row) if f.name != "id"}
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        return await self._execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(data.values()),
        )

    async def create_task(self, task: Task) -> Task:
        stored = copy.copy(task)
        stored.id = await self._insert("tasks", stored)
        return stored

    async def get_tasks(self, user_id: int, status: str | None = None) -> list[Task]:
        if status is None:
            rows = await self._execute(
                "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,),
            )
        else:
            rows = await self._execute(
                "SELECT * FROM tasks WHERE user_id = ? AND status = ? ORDER BY created_at DESC, id DESC",
                (user_id, status),
            )
        return [_from_row(Task, r) for r in rows]

    async def get_task(self, task_id: int, user_id: int) -> Task | None:
        rows = await self._execute("SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
        return _from_row(Task, rows[0]) if rows else None

    async def update_task(self, task_id: int, user_id: int, **updates) -> Task | None:
        bad = set(updates) - _TASK_UPDATABLE
        if bad:
            raise StorageError(f"Task field(s) {sorted(bad)} cannot be updated")
        updates["updated_at"] = datetime.now()
        assignments = ", ".join(f"{k} = ?" for k in updates)
        params = tuple(_to_db(v) for v in updates.values()) + (task_id, user_id)
        changed = await self._execute(
            f"UPDATE tasks SET {assignments} WHERE id = ? AND user_id = ?", params,
        )
        if not changed:
            return None
        return await self.get_task(task_id, user_id)

    async def create_financial_record(self, record: FinancialRecord) -> FinancialRecord:
        stored = copy.copy(record)
        stored.amount = str(to_money(stored.amount))
        stored.id = await self._insert("financial_records", stored)
        return stored

    async def get_financial_records(self, user_id: int) -> list[FinancialRecord]:
        rows = await self._execute(
            "SELECT * FROM financial_records WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,),
        )
        return [_from_row(FinancialRecord, r) for r in rows]

    async def get_financial_summary(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> FinancialSummary:
        sql = "SELECT type, amount, date FROM financial_records WHERE user_id = ?"
        rows = await self._execute(sql, (user_id,))
        return _summarize(
            (r["type"], r["amount"])
            for r in rows
            if _in_range(datetime.fromisoformat(r["date"]), start, end)
        )

    async def create_voice_command(self, log: VoiceCommandLog) -> VoiceCommandLog:
        stored = copy.copy(log)
        stored.id = await self._insert("voice_commands", stored)
        return stored

    async def get_voice_commands(
        self, user_id: int, limit: int = VOICE_COMMAND_HISTORY_LIMIT,
    ) -> list[VoiceCommandLog]:
        rows = await self._execute(
            "SELECT * FROM voice_commands WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (user_id, limit),
        )
        return [_from_row(VoiceCommandLog, r) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def create_storage(backend: str | None = None, path: str | None = None) -> Storage:
    """Build the storage backend named by STORAGE_BACKEND."""
    from .config import DATABASE_PATH, STORAGE_BACKEND

    backend = (backend or STORAGE_BACKEND).lower()
    if backend == "memory":
        return MemoryStorage()
    if backend == "sqlite":
        return SqliteStorage(path or DATABASE_PATH)
    raise ValueError(f"Unknown storage backend: {backend}")
