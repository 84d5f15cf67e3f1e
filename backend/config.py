"""VoiceDesk backend configuration — integrates with shared constants.py."""

import os
import sys
from pathlib import Path

# Add project root to path so we can import constants
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from constants import DATA_DIR, DEDUP_WINDOW_S as _DEFAULT_DEDUP_WINDOW_S

# Server
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# Storage
STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "memory")   # "memory" | "sqlite"
DATABASE_PATH = os.environ.get("DATABASE_PATH", str(DATA_DIR / "voicedesk.db"))

# Dispatcher
DEDUP_WINDOW_S = float(os.environ.get("DEDUP_WINDOW_S", str(_DEFAULT_DEDUP_WINDOW_S)))

# Auth stand-in: every request names its user in this header
USER_HEADER = "X-User-Id"
