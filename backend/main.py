"""
VoiceDesk Backend — FastAPI application.
REST + WebSocket API for voice-driven tasks and personal finance.
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Load .env from project root
from dotenv import load_dotenv
load_dotenv(PROJECT_ROOT / ".env")

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.api.routes import router as api_router
from backend.api.websocket import router as ws_router, sessions
from backend.config import CORS_ORIGINS, LOG_LEVEL
from backend.services.voice_service import voice_service

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    voice_service.initialize()
    yield
    await sessions.close_all()
    voice_service.shutdown()
    logger.info("VoiceDesk backend stopped")


app = FastAPI(
    title="VoiceDesk API",
    description="Voice command pipeline for tasks and personal finance",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")
app.include_router(ws_router)


@app.get("/")
async def root():
    return {"name": "VoiceDesk", "status": "running"}


@app.get("/health")
async def health():
    return {"status": "ok", "voice": voice_service.initialized}
