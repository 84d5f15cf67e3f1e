"""
VoiceDesk — Shared Constants
Voice layer and backend both import from here. Single source of truth.
"""

import os
from pathlib import Path

# === Project Paths ===
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = Path(os.environ.get(
    "VOICEDESK_DATA_DIR",
    str(Path.home() / ".voicedesk"),
))

# === Intents ===
INTENT_TASK_CREATE = "task_create"
INTENT_TASK_COMPLETE = "task_complete"
INTENT_EXPENSE_ADD = "expense_add"
INTENT_INCOME_ADD = "income_add"
INTENT_NAVIGATE = "navigate"
INTENT_TASK_LIST = "task_list"
INTENT_FINANCIAL_SUMMARY = "financial_summary"
INTENT_JOKE = "joke"
INTENT_HELP = "help"
INTENT_UNKNOWN = "unknown"

# === Tasks ===
TASK_PRIORITIES = ["low", "medium", "high"]
DEFAULT_TASK_PRIORITY = "medium"
TASK_STATUSES = ["pending", "in_progress", "completed", "cancelled"]
TASK_LIST_LIMIT = 5            # results are spoken, keep it short

# === Finance ===
DEFAULT_EXPENSE_CATEGORY = "general"
DEFAULT_INCOME_CATEGORY = "other"

# Canonical category -> spoken synonyms. Longest synonym wins on overlap.
EXPENSE_CATEGORIES = {
    "food": ["food", "groceries", "grocery", "lunch", "dinner", "breakfast",
             "coffee", "restaurant", "meal", "snacks"],
    "transport": ["transport", "taxi", "uber", "bus", "train", "fuel", "petrol",
                  "gas station", "parking"],
    "shopping": ["shopping", "clothes", "amazon", "mall"],
    "utilities": ["utilities", "electricity", "water bill", "internet", "phone bill"],
    "entertainment": ["entertainment", "movie", "movies", "netflix", "concert", "games"],
    "healthcare": ["healthcare", "doctor", "pharmacy", "medicine", "hospital", "dentist"],
    "housing": ["housing", "rent", "mortgage"],
    "education": ["education", "books", "course", "tuition"],
}
INCOME_CATEGORIES = {
    "salary": ["salary", "paycheck", "wages"],
    "freelance": ["freelance", "client", "contract", "consulting"],
    "investment": ["investment", "dividend", "dividends", "interest"],
    "gift": ["gift", "present"],
}

# === Navigation ===
# Destination keywords -> (destination name, client route)
NAV_DESTINATIONS = [
    (["dashboard", "home"], "dashboard", "/dashboard"),
    (["tasks", "task", "to do", "todo"], "tasks", "/dashboard?tab=tasks"),
    (["finances", "finance", "money", "budget"], "finances", "/dashboard?tab=finance"),
    (["voice", "commands"], "voice", "/dashboard?tab=voice"),
    (["assistant", "ai", "chat"], "ai", "/dashboard?tab=ai"),
]

# === Speech capture ===
DEFAULT_LANGUAGE = "en-US"
CONFIDENCE_THRESHOLD = 0.7
AUTO_RESTART_DELAY_S = 1.0

# === Command queue ===
INTER_COMMAND_DELAY_S = 0.1
MAX_COMMAND_RETRIES = 2
RETRY_DELAY_S = 0.25

# === Voice command log ===
VOICE_COMMAND_HISTORY_LIMIT = 50
DEDUP_WINDOW_S = 300.0
