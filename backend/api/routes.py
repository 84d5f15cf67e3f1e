"""REST API routes for VoiceDesk."""

import base64
import binascii
import logging
from datetime import date, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from constants import (
    DEFAULT_EXPENSE_CATEGORY,
    DEFAULT_INCOME_CATEGORY,
    DEFAULT_LANGUAGE,
    TASK_STATUSES,
    VOICE_COMMAND_HISTORY_LIMIT,
)
from voice.capabilities import SynthesisError, TranscriptionError

from ..config import USER_HEADER
from ..dispatcher import period_range
from ..models import FinancialRecord, Task, to_money
from ..services.voice_service import ServiceNotReady, VoiceService, get_voice_service

logger = logging.getLogger(__name__)

router = APIRouter()


# === Request bodies ===

class ProcessCommandRequest(BaseModel):
    audioData: str | None = None
    language: str = DEFAULT_LANGUAGE


class DispatchRequest(BaseModel):
    text: str
    commandId: str | None = None
    intent: str | None = None
    entities: dict[str, Any] | None = None
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    language: str = DEFAULT_LANGUAGE


class SpeakRequest(BaseModel):
    text: str = ""
    voice: str | None = None


class TaskCreateRequest(BaseModel):
    title: str
    description: str | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    due_date: date | None = None


class FinancialRecordRequest(BaseModel):
    type: Literal["income", "expense"]
    amount: str | float
    category: str | None = None
    description: str | None = None
    date: datetime | None = None


# === Dependencies ===

def get_user_id(x_user_id: str | None = Header(None, alias=USER_HEADER)) -> int:
    """Stand-in identity: the caller names its user. Not an auth system."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail=f"Missing {USER_HEADER} header")
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {USER_HEADER} header")


def _naive(value: datetime | None) -> datetime | None:
    """Stored timestamps are naive local time."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Voice service not initialized"}, status_code=503)


# === Voice ===

@router.post("/voice/initialize")
async def initialize_voice(
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    try:
        service.initialize()
    except Exception as e:
        logger.exception("Voice service initialization failed")
        return JSONResponse({"error": f"Failed to initialize voice service: {e}"}, status_code=500)
    return JSONResponse({"message": "Voice service initialized successfully", "status": "ready"})


@router.post("/voice/process-command")
async def process_command(
    body: ProcessCommandRequest,
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    if not body.audioData:
        return JSONResponse({"error": "Audio data is required"}, status_code=400)
    try:
        audio = base64.b64decode(body.audioData, validate=True)
    except (binascii.Error, ValueError):
        return JSONResponse({"error": "Audio data must be base64 encoded"}, status_code=400)

    try:
        result = await service.process_audio(user_id, audio, body.language)
    except ServiceNotReady:
        return _not_ready()
    except TranscriptionError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        logger.exception(f"Voice command processing failed for user {user_id}")
        return JSONResponse({"error": f"Failed to process voice command: {e}"}, status_code=500)
    return JSONResponse(result)


@router.post("/voice/dispatch")
async def dispatch_command(
    body: DispatchRequest,
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    if not body.text.strip() and body.intent is None:
        return JSONResponse({"error": "Command text is required"}, status_code=400)
    try:
        result = await service.process_text(
            user_id,
            body.text,
            intent=body.intent,
            entities=body.entities,
            confidence=body.confidence,
            command_id=body.commandId,
            language=body.language,
        )
    except ServiceNotReady:
        return _not_ready()
    except Exception as e:
        logger.exception(f"Dispatch failed for user {user_id}")
        return JSONResponse({"error": f"Failed to process voice command: {e}"}, status_code=500)
    return JSONResponse(result)


@router.post("/voice/speak")
async def speak(
    body: SpeakRequest,
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    if not body.text.strip():
        return JSONResponse({"error": "Text is required"}, status_code=400)
    try:
        audio, media_type = await service.speak(body.text, body.voice)
    except ServiceNotReady:
        return _not_ready()
    except SynthesisError as e:
        logger.error(f"Speech synthesis failed: {e}")
        return JSONResponse({"error": str(e)}, status_code=503)
    return Response(content=audio, media_type=media_type)


@router.get("/voice/commands")
async def list_voice_commands(
    limit: int = Query(VOICE_COMMAND_HISTORY_LIMIT, ge=1, le=500),
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    try:
        commands = await service.get_commands(user_id, limit)
    except ServiceNotReady:
        return _not_ready()
    return JSONResponse({"commands": commands})


@router.get("/voice/status")
async def voice_status(service: VoiceService = Depends(get_voice_service)):
    return JSONResponse(service.status())


# === Tasks ===

@router.post("/tasks", status_code=201)
async def create_task(
    body: TaskCreateRequest,
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    if not service.initialized:
        return _not_ready()
    if not body.title.strip():
        return JSONResponse({"error": "Title is required"}, status_code=400)
    task = await service.storage.create_task(Task(
        user_id=user_id,
        title=body.title.strip(),
        description=body.description,
        priority=body.priority,
        due_date=body.due_date,
    ))
    return JSONResponse(task.to_dict(), status_code=201)


@router.get("/tasks")
async def list_tasks(
    status: str | None = None,
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    if not service.initialized:
        return _not_ready()
    if status is not None and status not in TASK_STATUSES:
        return JSONResponse({"error": f"Invalid status: {status}"}, status_code=400)
    tasks = await service.storage.get_tasks(user_id, status=status)
    return JSONResponse({"tasks": [t.to_dict() for t in tasks]})


# === Finance ===

@router.post("/financial/records", status_code=201)
async def create_financial_record(
    body: FinancialRecordRequest,
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    if not service.initialized:
        return _not_ready()
    try:
        amount = to_money(body.amount)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    if amount <= 0:
        return JSONResponse({"error": "Amount must be positive"}, status_code=400)

    default_category = DEFAULT_INCOME_CATEGORY if body.type == "income" else DEFAULT_EXPENSE_CATEGORY
    record = FinancialRecord(
        user_id=user_id,
        type=body.type,
        amount=str(amount),
        category=body.category or default_category,
        description=body.description,
    )
    if body.date is not None:
        record.date = _naive(body.date)
    record = await service.storage.create_financial_record(record)
    return JSONResponse(record.to_dict(), status_code=201)


@router.get("/financial/summary")
async def financial_summary(
    start: datetime | None = None,
    end: datetime | None = None,
    period: str | None = None,
    user_id: int = Depends(get_user_id),
    service: VoiceService = Depends(get_voice_service),
):
    if not service.initialized:
        return _not_ready()
    period_start, period_end = period_range(period, datetime.now())
    summary = await service.storage.get_financial_summary(
        user_id, _naive(start) or period_start, _naive(end) or period_end,
    )
    return JSONResponse(summary.to_dict())
