"""
Command dispatcher.

Maps (user, intent, entities) onto one storage mutation or read, writes one
voice command log row, and returns a DispatchResult the client can speak.
Never raises: storage failures become an `error` result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable

from constants import (
    DEDUP_WINDOW_S,
    DEFAULT_EXPENSE_CATEGORY,
    DEFAULT_INCOME_CATEGORY,
    DEFAULT_TASK_PRIORITY,
    INTENT_EXPENSE_ADD,
    INTENT_FINANCIAL_SUMMARY,
    INTENT_HELP,
    INTENT_INCOME_ADD,
    INTENT_JOKE,
    INTENT_NAVIGATE,
    INTENT_TASK_COMPLETE,
    INTENT_TASK_CREATE,
    INTENT_TASK_LIST,
    NAV_DESTINATIONS,
    TASK_LIST_LIMIT,
    TASK_PRIORITIES,
)
from voice.capabilities import IntentResponder, TemplateResponder

from .models import FinancialRecord, Task, VoiceCommandLog, to_money
from .storage import Storage

logger = logging.getLogger(__name__)

CLARIFY_TASK_TITLE = "What task would you like to create?"
CLARIFY_COMPLETE_TITLE = "Which task would you like to complete?"
CLARIFY_EXPENSE_AMOUNT = "How much was the expense?"
CLARIFY_INCOME_AMOUNT = "How much income would you like to record?"
UNKNOWN_INTENT_MESSAGE = "I didn't understand that command"

_UNSUCCESSFUL = {"error", "clarification_needed"}
_MAX_CACHED_RESULTS = 1000


@dataclass
class DispatchResult:
    """Outcome of one dispatched command (the actionResult JSON)."""
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    duplicate: bool = False

    @property
    def successful(self) -> bool:
        return self.type not in _UNSUCCESSFUL

    @property
    def message(self) -> str | None:
        return self.data.get("message")

    def to_dict(self) -> dict:
        return {"type": self.type, **self.data, "duplicate": self.duplicate}


def period_range(period: str | None, now: datetime) -> tuple[datetime | None, datetime | None]:
    """today / this week / this month / this year -> (start, end). Unknown -> all time."""
    if not period:
        return None, None
    midnight = datetime.combine(now.date(), datetime.min.time())
    if period == "today":
        start = midnight
    elif period == "this week":
        start = midnight - timedelta(days=now.weekday())
    elif period == "this month":
        start = midnight.replace(day=1)
    elif period == "this year":
        start = midnight.replace(month=1, day=1)
    else:
        return None, None
    return start, now


def _parse_due_date(value) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        logger.warning(f"Ignoring unparseable due date: {value!r}")
        return None


class CommandDispatcher:
    """
    Server-side executor of recognized commands.

    Usage:
        dispatcher = CommandDispatcher(MemoryStorage())
        result = await dispatcher.dispatch(1, "expense_add", {"amount": "4.50"})
    """

    def __init__(
        self,
        storage: Storage,
        responder: IntentResponder | None = None,
        dedup_window_s: float = DEDUP_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.storage = storage
        self.responder = responder or TemplateResponder()
        self.dedup_window_s = dedup_window_s
        self._clock = clock
        self._now = now
        # (user_id, command_id) -> (stored_at, result), oldest first
        self._recent: OrderedDict[tuple[int, str], tuple[float, DispatchResult]] = OrderedDict()
        self._inflight: dict[tuple[int, str], asyncio.Future] = {}
        self._handlers = {
            INTENT_TASK_CREATE: self._task_create,
            INTENT_TASK_COMPLETE: self._task_complete,
            INTENT_EXPENSE_ADD: self._expense_add,
            INTENT_INCOME_ADD: self._income_add,
            INTENT_TASK_LIST: self._task_list,
            INTENT_FINANCIAL_SUMMARY: self._financial_summary,
            INTENT_NAVIGATE: self._navigate,
            INTENT_JOKE: self._joke,
            INTENT_HELP: self._help,
        }

    async def dispatch(
        self,
        user_id: int,
        intent: str,
        entities: dict[str, Any] | None = None,
        *,
        transcription: str = "",
        confidence: float = 1.0,
        command_id: str | None = None,
        started_at: float | None = None,
    ) -> DispatchResult:
        started_at = started_at if started_at is not None else time.perf_counter()
        entities = entities or {}
        key = (user_id, command_id) if command_id else None

        while key is not None:
            cached = self._lookup(key)
            if cached is not None:
                logger.info(f"Duplicate command {command_id} for user {user_id}, returning cached result")
                return DispatchResult(type=cached.type, data=dict(cached.data), duplicate=True)
            pending = self._inflight.get(key)
            if pending is None:
                break
            # Same command still running; wait for it, then re-check the cache
            await asyncio.shield(pending)

        done = None
        if key is not None:
            done = asyncio.get_running_loop().create_future()
            self._inflight[key] = done

        try:
            handler = self._handlers.get(intent)
            try:
                if handler is None:
                    result = DispatchResult("unknown_intent", {"message": UNKNOWN_INTENT_MESSAGE})
                else:
                    result = await handler(user_id, entities, transcription)
            except Exception as e:
                logger.exception(f"Dispatch of '{intent}' for user {user_id} failed")
                result = DispatchResult("error", {"message": f"Failed to process command: {e}"})

            await self._log(user_id, intent, transcription, confidence, started_at, result)
            self._remember(key, result)
            return result
        finally:
            if key is not None:
                self._inflight.pop(key, None)
                if not done.done():
                    done.set_result(None)

    # === Idempotency ===

    def _lookup(self, key: tuple[int, str]) -> DispatchResult | None:
        self._expire()
        entry = self._recent.get(key)
        return entry[1] if entry else None

    def _remember(self, key: tuple[int, str] | None, result: DispatchResult) -> None:
        # Errors made no change, so a resend with the same id must run again
        if key is None or result.type == "error":
            return
        self._recent[key] = (self._clock(), result)
        self._recent.move_to_end(key)
        while len(self._recent) > _MAX_CACHED_RESULTS:
            self._recent.popitem(last=False)

    def _expire(self) -> None:
        cutoff = self._clock() - self.dedup_window_s
        while self._recent:
            key, (stored_at, _) = next(iter(self._recent.items()))
            if stored_at >= cutoff:
                break
            del self._recent[key]

    # === Logging ===

    async def _log(
        self,
        user_id: int,
        intent: str,
        transcription: str,
        confidence: float,
        started_at: float,
        result: DispatchResult,
    ) -> None:
        elapsed_ms = int((time.perf_counter() - started_at) * 1000)
        row = VoiceCommandLog(
            user_id=user_id,
            command=transcription,
            transcription=transcription,
            intent=intent,
            confidence=confidence,
            processing_time_ms=elapsed_ms,
            successful=result.successful,
            error_message=None if result.successful else result.message,
        )
        try:
            await self.storage.create_voice_command(row)
        except Exception as e:
            logger.error(f"Failed to log voice command for user {user_id}: {e}")

    # === Intent handlers ===

    async def _task_create(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        title = (entities.get("title") or "").strip()
        if not title:
            return DispatchResult("clarification_needed", {"message": CLARIFY_TASK_TITLE})

        priority = entities.get("priority") or DEFAULT_TASK_PRIORITY
        if priority not in TASK_PRIORITIES:
            priority = DEFAULT_TASK_PRIORITY

        task = await self.storage.create_task(Task(
            user_id=user_id,
            title=title,
            description=entities.get("description"),
            priority=priority,
            due_date=_parse_due_date(entities.get("due_date")),
            created_via_voice=True,
            voice_transcription=transcription or None,
        ))
        logger.info(f"Task {task.id} created by voice for user {user_id}")
        return DispatchResult("task_created", {"task": task.to_dict()})

    async def _task_complete(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        title = (entities.get("title") or "").strip().lower()
        if not title:
            return DispatchResult("clarification_needed", {"message": CLARIFY_COMPLETE_TITLE})

        pending = await self.storage.get_tasks(user_id, status="pending")
        match = next((t for t in pending if title in t.title.lower()), None)
        if match is None:
            return DispatchResult(
                "clarification_needed",
                {"message": f'I could not find a pending task called "{title}"'},
            )

        task = await self.storage.update_task(
            match.id, user_id, status="completed", completed_at=self._now(),
        )
        return DispatchResult("task_completed", {"task": task.to_dict()})

    async def _expense_add(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        return await self._record(
            user_id, entities, transcription,
            record_type="expense",
            default_category=DEFAULT_EXPENSE_CATEGORY,
            default_description="Voice expense entry",
            clarification=CLARIFY_EXPENSE_AMOUNT,
        )

    async def _income_add(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        return await self._record(
            user_id, entities, transcription,
            record_type="income",
            default_category=DEFAULT_INCOME_CATEGORY,
            default_description="Voice income entry",
            clarification=CLARIFY_INCOME_AMOUNT,
        )

    async def _record(
        self,
        user_id: int,
        entities: dict,
        transcription: str,
        record_type: str,
        default_category: str,
        default_description: str,
        clarification: str,
    ) -> DispatchResult:
        raw_amount = entities.get("amount")
        try:
            amount = to_money(raw_amount) if raw_amount is not None else None
        except ValueError:
            amount = None
        if amount is None or amount <= 0:
            return DispatchResult("clarification_needed", {"message": clarification})

        record = await self.storage.create_financial_record(FinancialRecord(
            user_id=user_id,
            type=record_type,
            amount=str(amount),
            category=entities.get("category") or default_category,
            description=entities.get("description") or default_description,
            date=self._now(),
            created_via_voice=True,
            voice_transcription=transcription or None,
        ))
        logger.info(f"{record_type.capitalize()} {record.id} of {record.amount} recorded for user {user_id}")
        return DispatchResult(f"{record_type}_added", {"record": record.to_dict()})

    async def _task_list(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        tasks = await self.storage.get_tasks(user_id, status="pending")
        return DispatchResult(
            "tasks_retrieved",
            {"tasks": [t.to_dict() for t in tasks[:TASK_LIST_LIMIT]]},
        )

    async def _financial_summary(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        period = entities.get("period")
        start, end = period_range(period, self._now())
        start = entities.get("start") or start
        end = entities.get("end") or end
        if isinstance(start, str):
            start = datetime.fromisoformat(start)
        if isinstance(end, str):
            end = datetime.fromisoformat(end)
        summary = await self.storage.get_financial_summary(user_id, start, end)
        return DispatchResult(
            "financial_summary",
            {"summary": summary.to_dict(), "period": period or "all time"},
        )

    async def _navigate(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        destination = entities.get("destination") or "dashboard"
        path = entities.get("path") or next(
            (p for _, name, p in NAV_DESTINATIONS if name == destination), "/dashboard",
        )
        return DispatchResult("navigation", {"destination": destination, "path": path})

    async def _joke(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        return DispatchResult("joke", {"message": self.responder.joke()})

    async def _help(self, user_id: int, entities: dict, transcription: str) -> DispatchResult:
        return DispatchResult("help", {"message": self.responder.help()})
