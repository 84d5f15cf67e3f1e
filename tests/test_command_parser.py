"""Tests for the voice command parser and entity extractors."""
from decimal import Decimal

import pytest

from constants import EXPENSE_CATEGORIES
from voice.command_parser import CommandParser, CommandRule, Intent
from voice.entities import (
    extract_amount,
    extract_category,
    extract_period,
    resolve_destination,
)


class TestRuleOrder:
    def test_rules_are_evaluated_in_documented_order(self, parser):
        assert parser.describe_rules() == [
            "navigate",
            "task_create",
            "task_complete",
            "expense_add",
            "income_add",
            "task_list",
            "financial_summary",
            "joke",
            "help",
        ]

    def test_task_rule_wins_over_navigation_inside_title(self, parser):
        cmd = parser.parse("create task go to the gym")
        assert cmd.intent is Intent.TASK_CREATE
        assert cmd.entities["title"] == "go to the gym"

    def test_navigation_needs_known_destination(self, parser):
        cmd = parser.parse("go to the gym")
        assert cmd.intent is Intent.UNKNOWN
        assert cmd.entities == {}

    def test_expense_wins_over_task_list(self, parser):
        cmd = parser.parse("add expense 20 for task management books")
        assert cmd.intent is Intent.EXPENSE_ADD

    def test_spending_question_is_a_summary_not_an_expense(self, parser):
        cmd = parser.parse("how much have i spent this month")
        assert cmd.intent is Intent.FINANCIAL_SUMMARY
        assert cmd.entities == {"period": "this month"}

    def test_spent_followed_by_amount_is_an_expense(self, parser):
        assert parser.parse("spent 40 dollars on groceries").intent is Intent.EXPENSE_ADD

    def test_custom_rules_replace_defaults(self, parser):
        rules = [CommandRule("joke", lambda t: "joke" in t, Intent.JOKE, lambda t, d: {})]
        custom = CommandParser(rules=rules)
        assert custom.parse("create task joke").intent is Intent.JOKE
        assert custom.parse("create task buy milk").intent is Intent.UNKNOWN


class TestNavigation:
    @pytest.mark.parametrize("text,destination,path", [
        ("go to dashboard", "dashboard", "/dashboard"),
        ("open finances", "finances", "/dashboard?tab=finance"),
        ("take me to my tasks", "tasks", "/dashboard?tab=tasks"),
        ("Navigate to the AI chat", "ai", "/dashboard?tab=ai"),
    ])
    def test_destinations(self, parser, text, destination, path):
        cmd = parser.parse(text)
        assert cmd.intent is Intent.NAVIGATE
        assert cmd.entities == {"destination": destination, "path": path}


class TestTasks:
    def test_create_task_title_and_default_priority(self, parser):
        cmd = parser.parse("create task buy milk")
        assert cmd.intent is Intent.TASK_CREATE
        assert cmd.entities == {"title": "buy milk", "priority": "medium"}

    def test_urgent_is_high_priority(self, parser):
        cmd = parser.parse("add task call mom urgent")
        assert cmd.entities["priority"] == "high"

    def test_low_priority(self, parser):
        cmd = parser.parse("new task water the plants low priority")
        assert cmd.entities["priority"] == "low"

    @pytest.mark.parametrize("phrase,expected", [
        ("today", "2026-03-10"),
        ("tomorrow", "2026-03-11"),
        ("next week", "2026-03-17"),
    ])
    def test_relative_due_dates(self, parser, phrase, expected):
        cmd = parser.parse(f"create task submit report {phrase}")
        assert cmd.entities["due_date"] == expected

    def test_missing_title_is_absent(self, parser):
        cmd = parser.parse("create task")
        assert cmd.intent is Intent.TASK_CREATE
        assert "title" not in cmd.entities

    def test_complete_task(self, parser):
        cmd = parser.parse("complete task buy milk")
        assert cmd.intent is Intent.TASK_COMPLETE
        assert cmd.entities == {"title": "buy milk"}

    def test_mark_task_as_done(self, parser):
        cmd = parser.parse("mark task buy milk as done")
        assert cmd.intent is Intent.TASK_COMPLETE
        assert cmd.entities["title"] == "buy milk"

    @pytest.mark.parametrize("text", ["show my tasks", "what are my tasks", "list tasks"])
    def test_task_list(self, parser, text):
        assert parser.parse(text).intent is Intent.TASK_LIST


class TestMoney:
    def test_expense_with_dollar_sign(self, parser):
        cmd = parser.parse("I spent $12.50 on lunch")
        assert cmd.intent is Intent.EXPENSE_ADD
        assert cmd.entities["amount"] == Decimal("12.50")
        assert cmd.entities["category"] == "food"
        assert cmd.entities["description"] == "lunch"

    def test_expense_with_dollars_word(self, parser):
        cmd = parser.parse("add expense 30 dollars for taxi")
        assert cmd.entities["amount"] == Decimal("30.00")
        assert cmd.entities["category"] == "transport"
        assert cmd.entities["description"] == "taxi"

    def test_expense_without_amount(self, parser):
        cmd = parser.parse("add expense for coffee")
        assert cmd.intent is Intent.EXPENSE_ADD
        assert "amount" not in cmd.entities

    def test_amount_with_thousands_separator(self, parser):
        cmd = parser.parse("add expense 1,200 dollars for rent")
        assert cmd.entities["amount"] == Decimal("1200.00")
        assert cmd.entities["description"] == "rent"

    def test_oversized_amount_is_skipped(self, parser):
        cmd = parser.parse("add expense 100000000000000000000000000000 dollars for rent")
        assert cmd.intent is Intent.EXPENSE_ADD
        assert "amount" not in cmd.entities

    def test_expense_default_category(self, parser):
        cmd = parser.parse("add expense 15")
        assert cmd.entities["category"] == "general"

    def test_income(self, parser):
        cmd = parser.parse("received 2000 dollars salary")
        assert cmd.intent is Intent.INCOME_ADD
        assert cmd.entities["amount"] == Decimal("2000.00")
        assert cmd.entities["category"] == "salary"

    def test_income_default_category(self, parser):
        cmd = parser.parse("earned 50 from tutoring")
        assert cmd.intent is Intent.INCOME_ADD
        assert cmd.entities["category"] == "other"

    @pytest.mark.parametrize("text", ["what's my balance", "give me my financial summary"])
    def test_financial_summary(self, parser, text):
        cmd = parser.parse(text)
        assert cmd.intent is Intent.FINANCIAL_SUMMARY
        assert cmd.entities == {}

    def test_financial_summary_period(self, parser):
        cmd = parser.parse("show financial summary for this month")
        assert cmd.intent is Intent.FINANCIAL_SUMMARY
        assert cmd.entities == {"period": "this month"}


class TestMisc:
    def test_joke(self, parser):
        assert parser.parse("tell me a joke").intent is Intent.JOKE

    @pytest.mark.parametrize("text", ["help", "what can I say"])
    def test_help(self, parser, text):
        assert parser.parse(text).intent is Intent.HELP

    @pytest.mark.parametrize("text", ["", "   ", "blah blah blah"])
    def test_unknown_never_raises(self, parser, text):
        cmd = parser.parse(text)
        assert cmd.intent is Intent.UNKNOWN
        assert cmd.entities == {}

    def test_normalizes_but_keeps_raw_text(self, parser):
        raw = "  CREATE   Task   Buy Milk  "
        cmd = parser.parse(raw)
        assert cmd.raw_text == raw
        assert cmd.entities["title"] == "buy milk"

    def test_non_english_language_uses_english_rules(self, parser):
        cmd = parser.parse("create task buy milk", language="fr-FR", confidence=0.8)
        assert cmd.intent is Intent.TASK_CREATE
        assert cmd.language == "fr-FR"
        assert cmd.confidence == 0.8

    def test_command_ids_are_unique(self, parser):
        assert parser.parse("help").command_id != parser.parse("help").command_id

    def test_payload_serializes_amount_as_string(self, parser):
        cmd = parser.parse("I spent $12.50 on lunch")
        payload = cmd.to_payload()
        assert payload["intent"] == "expense_add"
        assert payload["entities"]["amount"] == "12.50"
        assert payload["commandId"] == cmd.command_id


class TestEntities:
    def test_amount_must_be_positive(self):
        assert extract_amount("the total was 0 dollars") is None

    def test_amount_quantized(self):
        assert extract_amount("$4.5") == Decimal("4.50")

    def test_dollar_sign_pattern_takes_precedence(self):
        assert extract_amount("3 dollars and then $7") == Decimal("7.00")

    def test_longest_category_synonym(self):
        assert extract_category("paid the water bill", EXPENSE_CATEGORIES, "general") == "utilities"

    def test_category_matches_whole_words(self):
        assert extract_category("a busy afternoon", EXPENSE_CATEGORIES, "general") == "general"

    def test_unknown_destination(self):
        assert resolve_destination("the moon") is None

    def test_period(self):
        assert extract_period("how much did i spend this week") == "this week"
        assert extract_period("how much did i spend") is None
