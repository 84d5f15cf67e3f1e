"""WebSocket endpoint — per-connection command queue + real-time feedback."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from constants import CONFIDENCE_THRESHOLD, DEFAULT_LANGUAGE
from voice.command_parser import RecognizedCommand
from voice.command_queue import CommandExecutor, CommandQueueRegistry
from voice.tts_feedback import Utterance, VoiceFeedback

from ..services.voice_service import VoiceService, get_voice_service

logger = logging.getLogger(__name__)

router = APIRouter()

# One executor per open connection
sessions = CommandQueueRegistry()


class TranscriptMessage(BaseModel):
    text: str = ""
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    is_final: bool = True


class VoiceSession:
    """State for one /ws/voice connection. Messages go out through `outbox` in order."""

    def __init__(self, session_id: str, user_id: int, service: VoiceService, language: str):
        self.session_id = session_id
        self.user_id = user_id
        self.service = service
        self.language = language
        self.outbox: asyncio.Queue[dict] = asyncio.Queue()
        self.feedback = VoiceFeedback(tts=service.tts, language=language)
        self.feedback.set_audio_callback(self._on_utterance)

    def build_executor(self, session_id: str) -> CommandExecutor:
        return CommandExecutor(self.execute, feedback=self.feedback, on_result=self.on_result)

    async def execute(self, command: RecognizedCommand) -> dict:
        response = await self.service.process_command(self.user_id, command)
        return response["actionResult"]

    async def on_result(self, command: RecognizedCommand, result: dict) -> None:
        self.send({
            "type": "command_result",
            "commandId": command.command_id,
            "transcription": command.raw_text,
            "intent": command.intent.value,
            "confidence": command.confidence,
            "actionResult": result,
            "timestamp": time.time(),
        })

    def _on_utterance(self, utterance: Utterance) -> None:
        self.send(utterance.to_message())

    def send(self, message: dict) -> None:
        self.outbox.put_nowait(message)


async def _sender(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_text(json.dumps(message, default=str))


def _resolve_user(websocket: WebSocket) -> int | None:
    # Browsers cannot set headers on a WebSocket, so a query parameter is accepted too
    raw = websocket.query_params.get("user_id") or websocket.headers.get("x-user-id")
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


@router.websocket("/ws/voice")
async def voice_websocket(websocket: WebSocket, service: VoiceService = Depends(get_voice_service)):
    await websocket.accept()

    user_id = _resolve_user(websocket)
    if user_id is None:
        await websocket.send_text(json.dumps({"type": "error", "message": "Missing user id"}))
        await websocket.close(code=1008)
        return
    if not service.initialized:
        await websocket.send_text(json.dumps({"type": "error", "message": "Voice service not initialized"}))
        await websocket.close(code=1013)
        return

    language = websocket.query_params.get("language", DEFAULT_LANGUAGE)
    session = VoiceSession(uuid.uuid4().hex, user_id, service, language)
    sessions.get(session.session_id, session.build_executor)
    sender = asyncio.create_task(_sender(websocket, session.outbox))
    logger.info(f"Voice session {session.session_id} opened for user {user_id} ({len(sessions)} active)")

    session.send({"type": "session_started", "sessionId": session.session_id, "timestamp": time.time()})

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                session.send({"type": "error", "message": "Messages must be JSON"})
                continue
            if not isinstance(message, dict):
                session.send({"type": "error", "message": "Messages must be JSON objects"})
                continue
            _handle_client_message(message, session)
    except WebSocketDisconnect:
        logger.info(f"Voice session {session.session_id} disconnected")
    finally:
        await sessions.close(session.session_id)
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)


def _handle_client_message(message: dict, session: VoiceSession) -> None:
    """Handle incoming messages from a voice client."""
    msg_type = message.get("type", "")

    if msg_type == "voice_transcript":
        try:
            transcript = TranscriptMessage.model_validate(message)
        except ValidationError as e:
            session.send({"type": "error", "message": f"Invalid voice_transcript: {e.errors()[0]['msg']}"})
            return
        text = transcript.text.strip()
        confidence = transcript.confidence
        if not text or not transcript.is_final:
            return
        if confidence < CONFIDENCE_THRESHOLD:
            logger.debug(f"Dropped low-confidence transcript ({confidence:.2f}): '{text}'")
            return
        command = session.service.parser.parse(text, session.language, confidence)
        sessions.get(session.session_id).enqueue(command)
        session.send({
            "type": "command_queued",
            "commandId": command.command_id,
            "intent": command.intent.value,
            "pending": sessions.get(session.session_id).pending,
            "timestamp": time.time(),
        })

    elif msg_type == "cancel_speech":
        session.feedback.cancel()

    elif msg_type == "ping":
        session.send({"type": "pong", "timestamp": time.time()})

    else:
        session.send({"type": "error", "message": f"Unknown message type: {msg_type}"})
