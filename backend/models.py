"""Domain rows owned by the storage layer: tasks, financial records, voice command log."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

_CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Decimal with two places. Accepts str, int, float or Decimal; floats go through str()."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip().lstrip("$"))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        return amount.quantize(_CENTS)
    except InvalidOperation as e:
        raise ValueError(f"Amount out of range: {value!r}") from e


def _iso(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _now() -> datetime:
    return datetime.now()


@dataclass
class Task:
    user_id: int
    title: str
    description: str | None = None
    priority: str = "medium"
    status: str = "pending"
    due_date: date | None = None
    completed_at: datetime | None = None
    created_via_voice: bool = False
    voice_transcription: str | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {k: _iso(v) for k, v in asdict(self).items()}


@dataclass
class FinancialRecord:
    user_id: int
    type: str                 # "income" | "expense"
    amount: str               # decimal string, two places
    category: str
    description: str | None = None
    date: datetime = field(default_factory=_now)
    created_via_voice: bool = False
    voice_transcription: str | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {k: _iso(v) for k, v in asdict(self).items()}


@dataclass
class VoiceCommandLog:
    user_id: int
    command: str
    transcription: str
    intent: str | None = None
    confidence: float | None = None
    processing_time_ms: int | None = None
    successful: bool = True
    error_message: str | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {k: _iso(v) for k, v in asdict(self).items()}


@dataclass
class FinancialSummary:
    income: Decimal = Decimal("0.00")
    expenses: Decimal = Decimal("0.00")

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses

    def to_dict(self) -> dict:
        return {
            "income": str(self.income.quantize(_CENTS)),
            "expenses": str(self.expenses.quantize(_CENTS)),
            "net": str(self.net.quantize(_CENTS)),
        }
