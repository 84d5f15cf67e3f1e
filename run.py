"""VoiceDesk — Launch script."""

import uvicorn
import os
import sys

# Ensure the project root is in path
sys.path.insert(0, os.path.dirname(__file__))

# Load .env before any other imports read os.environ
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))

from backend.config import HOST, LOG_LEVEL, PORT

if __name__ == "__main__":
    uvicorn.run(
        "backend.main:app",
        host=HOST,
        port=PORT,
        log_level=LOG_LEVEL.lower(),
        reload=os.environ.get("RELOAD", "0") == "1",
        reload_dirs=[os.path.dirname(__file__)],
    )
