"""
Entity extraction for voice commands.
Pulls titles, amounts, categories, dates and destinations out of a
normalized (lower-cased, trimmed) transcript.
"""

from __future__ import annotations

import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

from constants import (
    DEFAULT_TASK_PRIORITY,
    NAV_DESTINATIONS,
)

# Ordered: "$4.50" beats "4 dollars" beats a bare number
_AMOUNT_PATTERNS = [
    re.compile(r'\$\s*(\d+(?:\.\d{1,2})?)'),
    re.compile(r'\b(\d+(?:\.\d{1,2})?)\s*dollars?\b'),
    re.compile(r'\b(\d+(?:\.\d{1,2})?)\b'),
]

_AMOUNT_PHRASE = re.compile(r'\$?\s*\d+(?:\.\d{1,2})?\s*(?:dollars?)?')
_DESCRIPTION_PATTERN = re.compile(r'\b(?:for|on)\s+(.+)')

_TITLE_FILLERS = ("called ", "named ", "to ", ": ")
_TITLE_SUFFIXES = (" as done", " as completed", " as complete", " as finished")

_PERIODS = ["today", "this week", "this month", "this year"]

_CENTS = Decimal("0.01")
_THOUSANDS = re.compile(r"(?<=\d),(?=\d{3}\b)")


def text_after(text: str, triggers: list[str]) -> str | None:
    """Return the text following the first trigger phrase found, or None."""
    for trigger in triggers:
        idx = text.find(trigger)
        if idx >= 0:
            return text[idx + len(trigger):].strip()
    return None


def extract_title(text: str, triggers: list[str]) -> str | None:
    remainder = text_after(text, triggers)
    if not remainder:
        return None
    for filler in _TITLE_FILLERS:
        if remainder.startswith(filler):
            remainder = remainder[len(filler):]
    for suffix in _TITLE_SUFFIXES:
        if remainder.endswith(suffix):
            remainder = remainder[:-len(suffix)]
    remainder = remainder.strip(" .,")
    return remainder or None


def extract_priority(text: str) -> str:
    if "urgent" in text or "high priority" in text:
        return "high"
    if "low priority" in text:
        return "low"
    return DEFAULT_TASK_PRIORITY


def extract_due_date(text: str, today: date) -> str | None:
    """Literal keyword match only: today / tomorrow / next week."""
    if "today" in text:
        return today.isoformat()
    if "tomorrow" in text:
        return (today + timedelta(days=1)).isoformat()
    if "next week" in text:
        return (today + timedelta(days=7)).isoformat()
    return None


def extract_amount(text: str) -> Decimal | None:
    """First positive number matched by the ordered amount patterns."""
    text = _THOUSANDS.sub("", text)
    for pattern in _AMOUNT_PATTERNS:
        for m in pattern.finditer(text):
            try:
                amount = Decimal(m.group(1)).quantize(_CENTS)
            except InvalidOperation:
                # Too many digits for the decimal context
                continue
            if amount > 0:
                return amount
    return None


def extract_category(text: str, table: dict[str, list[str]], default: str) -> str:
    keywords = [
        (synonym, canonical)
        for canonical, synonyms in table.items()
        for synonym in synonyms
    ]
    # Longest phrase first so "water bill" wins over "bill"-style overlaps
    keywords.sort(key=lambda kv: -len(kv[0]))
    for synonym, canonical in keywords:
        if re.search(rf'\b{re.escape(synonym)}\b', text):
            return canonical
    return default


def extract_description(text: str) -> str | None:
    m = _DESCRIPTION_PATTERN.search(text)
    if not m:
        return None
    description = _AMOUNT_PHRASE.sub(" ", _THOUSANDS.sub("", m.group(1)))
    description = " ".join(description.split()).strip(" .,")
    return description or None


def extract_period(text: str) -> str | None:
    for period in _PERIODS:
        if period in text:
            return period
    return None


def resolve_destination(text: str) -> tuple[str, str] | None:
    """Find a navigation destination in the text. Returns (name, path) or None."""
    for keywords, name, path in NAV_DESTINATIONS:
        for kw in keywords:
            if re.search(rf'\b{re.escape(kw)}\b', text):
                return name, path
    return None
