"""
Voice command parser.
Converts final speech transcripts into recognized commands (intent + entities).
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, NamedTuple

from constants import (
    DEFAULT_EXPENSE_CATEGORY,
    DEFAULT_INCOME_CATEGORY,
    DEFAULT_LANGUAGE,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    INTENT_EXPENSE_ADD,
    INTENT_FINANCIAL_SUMMARY,
    INTENT_HELP,
    INTENT_INCOME_ADD,
    INTENT_JOKE,
    INTENT_NAVIGATE,
    INTENT_TASK_COMPLETE,
    INTENT_TASK_CREATE,
    INTENT_TASK_LIST,
    INTENT_UNKNOWN,
)
from voice.entities import (
    extract_amount,
    extract_category,
    extract_description,
    extract_due_date,
    extract_period,
    extract_priority,
    extract_title,
    resolve_destination,
)

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    TASK_CREATE = INTENT_TASK_CREATE
    TASK_COMPLETE = INTENT_TASK_COMPLETE
    EXPENSE_ADD = INTENT_EXPENSE_ADD
    INCOME_ADD = INTENT_INCOME_ADD
    NAVIGATE = INTENT_NAVIGATE
    TASK_LIST = INTENT_TASK_LIST
    FINANCIAL_SUMMARY = INTENT_FINANCIAL_SUMMARY
    JOKE = INTENT_JOKE
    HELP = INTENT_HELP
    UNKNOWN = INTENT_UNKNOWN


@dataclass
class Transcript:
    """One speech recognition result."""
    text: str
    confidence: float = 1.0
    is_final: bool = True


@dataclass
class RecognizedCommand:
    """Structured command extracted from a voice transcript."""
    raw_text: str
    intent: Intent = Intent.UNKNOWN
    entities: dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0
    language: str = DEFAULT_LANGUAGE
    command_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)

    def to_payload(self) -> dict:
        """JSON body for POST /api/voice/dispatch."""
        return {
            "commandId": self.command_id,
            "text": self.raw_text,
            "intent": self.intent.value,
            "entities": {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.entities.items()
            },
            "confidence": self.confidence,
            "language": self.language,
        }


class CommandRule(NamedTuple):
    name: str
    predicate: Callable[[str], bool]
    intent: Intent
    extract: Callable[[str, date], dict[str, Any]]


# Trigger phrases
_NAV_VERBS = ["navigate to", "go to", "take me to", "switch to", "open", "navigate"]
_TASK_CREATE_TRIGGERS = ["create a task", "create task", "new task", "add a task", "add task",
                         "create todo", "new todo"]
_TASK_COMPLETE_TRIGGERS = ["complete the task", "complete task", "finish the task", "finish task",
                           "mark task", "mark the task"]
_EXPENSE_TRIGGERS = ["add an expense", "add expense", "record an expense", "record expense",
                     "log expense"]
_INCOME_TRIGGERS = ["add income", "record income", "log income", "received", "earned"]
_LIST_VERBS = ["show", "list", "what are", "read"]
_SUMMARY_VERBS = ["show", "what's my", "what is my", "give me", "how much"]
_SUMMARY_NOUNS = ["summary", "balance", "finances", "financial", "money", "spending", "spent"]
_HELP_TRIGGERS = ["help", "what can i say", "commands"]

_WHITESPACE = re.compile(r'\s+')
_SPENT_AMOUNT = re.compile(r"\bspent\s+(?:\$\s*)?\d")


def normalize(transcript: str) -> str:
    return _WHITESPACE.sub(" ", transcript.strip().lower())


def _contains_any(phrases: list[str]) -> Callable[[str], bool]:
    return lambda text: any(p in text for p in phrases)


def _is_navigation(text: str) -> bool:
    """Navigation verb must lead the utterance and name a known destination."""
    for verb in _NAV_VERBS:
        if text.startswith(verb + " "):
            remainder = text[len(verb):].strip()
            if resolve_destination(remainder):
                return True
    return False


def _is_expense(text: str) -> bool:
    """Bare "spent" needs a following amount, so "how much have i spent" stays a query."""
    return any(t in text for t in _EXPENSE_TRIGGERS) or bool(_SPENT_AMOUNT.search(text))


def _is_task_list(text: str) -> bool:
    return "task" in text and any(v in text for v in _LIST_VERBS)


def _is_financial_summary(text: str) -> bool:
    if "financial summary" in text:
        return True
    return any(v in text for v in _SUMMARY_VERBS) and any(n in text for n in _SUMMARY_NOUNS)


def _navigation_entities(text: str, today: date) -> dict[str, Any]:
    for verb in _NAV_VERBS:
        if text.startswith(verb + " "):
            found = resolve_destination(text[len(verb):].strip())
            if found:
                return {"destination": found[0], "path": found[1]}
    return {}


def _task_create_entities(text: str, today: date) -> dict[str, Any]:
    entities: dict[str, Any] = {"priority": extract_priority(text)}
    title = extract_title(text, _TASK_CREATE_TRIGGERS)
    if title:
        entities["title"] = title
    due = extract_due_date(text, today)
    if due:
        entities["due_date"] = due
    return entities


def _task_complete_entities(text: str, today: date) -> dict[str, Any]:
    title = extract_title(text, _TASK_COMPLETE_TRIGGERS)
    return {"title": title} if title else {}


def _money_entities(table: dict[str, list[str]], default_category: str):
    def extract(text: str, today: date) -> dict[str, Any]:
        entities: dict[str, Any] = {
            "category": extract_category(text, table, default_category),
        }
        amount = extract_amount(text)
        if amount is not None:
            entities["amount"] = amount
        description = extract_description(text)
        if description:
            entities["description"] = description
        return entities
    return extract


def _summary_entities(text: str, today: date) -> dict[str, Any]:
    period = extract_period(text)
    return {"period": period} if period else {}


def _no_entities(text: str, today: date) -> dict[str, Any]:
    return {}


# Evaluated top-down, first match wins.
# Navigation is anchored to the start of the utterance so phrases like
# "create task go to the gym" fall through to the task rule.
DEFAULT_RULES: list[CommandRule] = [
    CommandRule("navigate", _is_navigation, Intent.NAVIGATE, _navigation_entities),
    CommandRule("task_create", _contains_any(_TASK_CREATE_TRIGGERS), Intent.TASK_CREATE,
                _task_create_entities),
    CommandRule("task_complete", _contains_any(_TASK_COMPLETE_TRIGGERS), Intent.TASK_COMPLETE,
                _task_complete_entities),
    CommandRule("expense_add", _is_expense, Intent.EXPENSE_ADD,
                _money_entities(EXPENSE_CATEGORIES, DEFAULT_EXPENSE_CATEGORY)),
    CommandRule("income_add", _contains_any(_INCOME_TRIGGERS), Intent.INCOME_ADD,
                _money_entities(INCOME_CATEGORIES, DEFAULT_INCOME_CATEGORY)),
    CommandRule("task_list", _is_task_list, Intent.TASK_LIST, _no_entities),
    CommandRule("financial_summary", _is_financial_summary, Intent.FINANCIAL_SUMMARY,
                _summary_entities),
    CommandRule("joke", _contains_any(["joke"]), Intent.JOKE, _no_entities),
    CommandRule("help", _contains_any(_HELP_TRIGGERS), Intent.HELP, _no_entities),
]


class CommandParser:
    """Parses voice transcripts into recognized commands."""

    def __init__(
        self,
        rules: list[CommandRule] | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self._today = today or date.today

    def describe_rules(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def parse(
        self,
        transcript: str,
        language: str = DEFAULT_LANGUAGE,
        confidence: float = 1.0,
    ) -> RecognizedCommand:
        """
        Parse a final transcript into a RecognizedCommand.

        Never raises: anything that matches no rule comes back as
        intent=unknown with empty entities.
        """
        raw = transcript or ""
        text = normalize(raw)

        if not language.lower().startswith("en"):
            logger.debug(f"No rules for language '{language}', using English rules")

        if text:
            for rule in self.rules:
                if rule.predicate(text):
                    entities = rule.extract(text, self._today())
                    logger.debug(f"Rule '{rule.name}' matched '{raw}' -> {entities}")
                    return RecognizedCommand(
                        raw_text=raw,
                        intent=rule.intent,
                        entities=entities,
                        confidence=confidence,
                        language=language,
                    )

        logger.debug(f"Unrecognized transcript: '{raw}'")
        return RecognizedCommand(
            raw_text=raw,
            confidence=confidence,
            language=language,
        )
