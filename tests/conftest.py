"""Pytest configuration and shared fixtures."""
import sys
from datetime import date, datetime
from pathlib import Path

# Project root holds the top-level packages and constants.py
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from fastapi.testclient import TestClient

from backend.dispatcher import CommandDispatcher
from backend.main import app
from backend.services.voice_service import VoiceService, get_voice_service
from backend.storage import MemoryStorage
from voice.capabilities import SilentTextToSpeech, TemplateResponder, TextPayloadSpeechToText
from voice.command_parser import CommandParser


@pytest.fixture
def fixed_today() -> date:
    """A Tuesday."""
    return date(2026, 3, 10)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
def parser(fixed_today: date) -> CommandParser:
    return CommandParser(today=lambda: fixed_today)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def responder() -> TemplateResponder:
    return TemplateResponder(jokes=["Why did the ledger blush? It saw the balance sheet."])


@pytest.fixture
def dispatcher(storage: MemoryStorage, responder: TemplateResponder) -> CommandDispatcher:
    return CommandDispatcher(storage, responder)


@pytest.fixture
def service(storage: MemoryStorage, responder: TemplateResponder) -> VoiceService:
    svc = VoiceService(
        storage=storage,
        stt=TextPayloadSpeechToText(),
        tts=SilentTextToSpeech(),
        responder=responder,
    )
    svc.initialize()
    return svc


@pytest.fixture
def client(service: VoiceService):
    app.dependency_overrides[get_voice_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers() -> dict:
    return {"X-User-Id": "1"}
