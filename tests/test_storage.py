"""Tests for the in-memory and SQLite storage backends."""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from backend.models import FinancialRecord, Task, VoiceCommandLog, to_money
from backend.storage import MemoryStorage, SqliteStorage, StorageError, create_storage

BASE = datetime(2026, 1, 1, 8, 0, 0)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    backend = MemoryStorage() if request.param == "memory" else SqliteStorage(":memory:")
    yield backend
    backend.close()


@pytest.mark.asyncio
async def test_tasks_newest_first_with_status_filter(store):
    await store.create_task(Task(user_id=1, title="old", created_at=BASE))
    await store.create_task(Task(user_id=1, title="new", created_at=BASE + timedelta(hours=1)))
    await store.create_task(Task(
        user_id=1, title="done", status="completed", created_at=BASE + timedelta(hours=2),
    ))
    await store.create_task(Task(user_id=2, title="other user", created_at=BASE))

    assert [t.title for t in await store.get_tasks(1)] == ["done", "new", "old"]
    assert [t.title for t in await store.get_tasks(1, status="pending")] == ["new", "old"]


@pytest.mark.asyncio
async def test_task_round_trips_fields(store):
    created = await store.create_task(Task(
        user_id=1,
        title="file taxes",
        priority="high",
        due_date=date(2026, 4, 15),
        created_via_voice=True,
        voice_transcription="create task file taxes urgent",
    ))

    fetched = await store.get_task(created.id, 1)

    assert fetched.id == created.id
    assert fetched.due_date == date(2026, 4, 15)
    assert fetched.created_via_voice is True
    assert fetched.priority == "high"


@pytest.mark.asyncio
async def test_update_task(store):
    task = await store.create_task(Task(user_id=1, title="buy milk"))
    done_at = datetime(2026, 1, 2, 9, 30)

    updated = await store.update_task(task.id, 1, status="completed", completed_at=done_at)

    assert updated.status == "completed"
    assert updated.completed_at == done_at
    assert await store.update_task(task.id, 2, status="completed") is None


@pytest.mark.asyncio
async def test_update_task_rejects_unknown_field(store):
    task = await store.create_task(Task(user_id=1, title="buy milk"))
    with pytest.raises(StorageError):
        await store.update_task(task.id, 1, user_id=2)


@pytest.mark.asyncio
async def test_records_store_two_place_amounts(store):
    record = await store.create_financial_record(
        FinancialRecord(user_id=1, type="expense", amount="4.5", category="food"),
    )
    assert record.amount == "4.50"
    (fetched,) = await store.get_financial_records(1)
    assert fetched.amount == "4.50"


@pytest.mark.asyncio
async def test_financial_summary_range(store):
    for amount, kind, day in [("100", "income", 1), ("30", "expense", 2), ("20", "expense", 10)]:
        await store.create_financial_record(FinancialRecord(
            user_id=1, type=kind, amount=amount, category="general", date=BASE + timedelta(days=day),
        ))

    everything = await store.get_financial_summary(1)
    first_week = await store.get_financial_summary(1, BASE, BASE + timedelta(days=7))

    assert everything.to_dict() == {"income": "100.00", "expenses": "50.00", "net": "50.00"}
    assert first_week.net == Decimal("70.00")
    assert (await store.get_financial_summary(99)).to_dict() == {
        "income": "0.00", "expenses": "0.00", "net": "0.00",
    }


@pytest.mark.asyncio
async def test_voice_commands_newest_first_with_limit(store):
    for i in range(4):
        await store.create_voice_command(VoiceCommandLog(
            user_id=1, command=f"c{i}", transcription=f"c{i}", intent="joke",
            confidence=0.9, processing_time_ms=5, created_at=BASE + timedelta(minutes=i),
        ))
    await store.create_voice_command(VoiceCommandLog(user_id=2, command="x", transcription="x"))

    rows = await store.get_voice_commands(1, limit=3)

    assert [r.command for r in rows] == ["c3", "c2", "c1"]
    assert rows[0].successful is True
    assert rows[0].confidence == 0.9


@pytest.mark.asyncio
async def test_sqlite_persists_across_connections(tmp_path):
    path = tmp_path / "data" / "voicedesk.db"
    first = SqliteStorage(path)
    await first.create_task(Task(user_id=1, title="persist me"))
    first.close()

    second = SqliteStorage(path)
    try:
        assert [t.title for t in await second.get_tasks(1)] == ["persist me"]
    finally:
        second.close()


def test_create_storage():
    assert isinstance(create_storage("memory"), MemoryStorage)
    with pytest.raises(ValueError):
        create_storage("postgres")


@pytest.mark.parametrize("value,expected", [
    ("4.5", Decimal("4.50")),
    ("$12", Decimal("12.00")),
    (7, Decimal("7.00")),
    (0.1, Decimal("0.10")),
    (Decimal("3.333"), Decimal("3.33")),
])
def test_to_money(value, expected):
    assert to_money(value) == expected


@pytest.mark.parametrize("value", ["lots", True, "NaN", None, "1e40"])
def test_to_money_rejects(value):
    with pytest.raises(ValueError):
        to_money(value)
