"""
Voice service — wraps the voice module for use by the API layer.
Provides a single interface for STT -> command extraction -> dispatch -> log,
plus speech synthesis for the speak endpoint.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from constants import DEFAULT_LANGUAGE, VOICE_COMMAND_HISTORY_LIMIT
from voice.capabilities import (
    ElevenLabsTextToSpeech,
    IntentResponder,
    SilentTextToSpeech,
    SpeechToText,
    SynthesisError,
    TemplateResponder,
    TextPayloadSpeechToText,
    TextToSpeech,
)
from voice.command_parser import CommandParser, Intent, RecognizedCommand
from voice.config import STT_PROVIDER, TTS_PROVIDER

from ..config import DEDUP_WINDOW_S
from ..dispatcher import CommandDispatcher
from ..storage import Storage, create_storage

logger = logging.getLogger(__name__)


class ServiceNotReady(Exception):
    """Raised when the voice pipeline is used before initialize()."""


def build_speech_to_text(provider: str = STT_PROVIDER) -> SpeechToText:
    if provider == "text":
        return TextPayloadSpeechToText()
    raise ValueError(f"Unknown STT provider: {provider}")


def build_text_to_speech(provider: str = TTS_PROVIDER) -> TextToSpeech:
    if provider == "silent":
        return SilentTextToSpeech()
    if provider == "elevenlabs":
        return ElevenLabsTextToSpeech()
    raise ValueError(f"Unknown TTS provider: {provider}")


class VoiceService:
    """
    Central voice service used by REST and WebSocket handlers.
    Holds storage, the command parser, the dispatcher and the speech capabilities.
    Collaborators left as None are built from configuration in initialize().
    """

    def __init__(
        self,
        storage: Storage | None = None,
        stt: SpeechToText | None = None,
        tts: TextToSpeech | None = None,
        responder: IntentResponder | None = None,
        parser: CommandParser | None = None,
        dedup_window_s: float = DEDUP_WINDOW_S,
    ):
        self.storage = storage
        self.stt = stt
        self.tts = tts
        self.responder = responder or TemplateResponder()
        self.parser = parser or CommandParser()
        self.dedup_window_s = dedup_window_s
        self.dispatcher: CommandDispatcher | None = None
        self.initialized = False
        self.started_at = time.time()

    def initialize(self) -> None:
        """Build missing collaborators. Safe to call more than once."""
        if self.initialized:
            return
        if self.storage is None:
            self.storage = create_storage()
        if self.stt is None:
            self.stt = build_speech_to_text()
        if self.tts is None:
            self.tts = build_text_to_speech()
        self.dispatcher = CommandDispatcher(
            self.storage, self.responder, dedup_window_s=self.dedup_window_s,
        )
        self.initialized = True
        logger.info(
            f"Voice service initialized (storage={type(self.storage).__name__}, "
            f"stt={type(self.stt).__name__}, tts={type(self.tts).__name__})"
        )

    def shutdown(self) -> None:
        if self.storage is not None:
            self.storage.close()
        self.initialized = False

    def _require_ready(self) -> None:
        if not self.initialized:
            raise ServiceNotReady("Voice service not initialized")

    # === Pipeline ===

    async def process_audio(self, user_id: int, audio: bytes, language: str = DEFAULT_LANGUAGE) -> dict:
        """
        Transcribe an audio payload, extract the command and dispatch it.
        Raises TranscriptionError when the payload holds no usable speech.
        """
        self._require_ready()
        started_at = time.perf_counter()
        transcript = await asyncio.to_thread(self.stt.transcribe, audio, language)
        command = self.parser.parse(transcript.text, language, transcript.confidence)
        return await self.process_command(user_id, command, started_at=started_at)

    async def process_text(
        self,
        user_id: int,
        text: str,
        *,
        intent: str | None = None,
        entities: dict[str, Any] | None = None,
        confidence: float = 1.0,
        command_id: str | None = None,
        language: str = DEFAULT_LANGUAGE,
    ) -> dict:
        """Dispatch a transcript. Extraction runs server-side unless the client sent an intent."""
        self._require_ready()
        started_at = time.perf_counter()
        if intent is None:
            command = self.parser.parse(text, language, confidence)
        else:
            try:
                parsed_intent = Intent(intent)
            except ValueError:
                logger.warning(f"Client sent unknown intent '{intent}'")
                parsed_intent = Intent.UNKNOWN
            command = RecognizedCommand(
                raw_text=text,
                intent=parsed_intent,
                entities=dict(entities or {}),
                confidence=confidence,
                language=language,
            )
        if command_id:
            command.command_id = command_id
        return await self.process_command(user_id, command, started_at=started_at)

    async def process_command(
        self,
        user_id: int,
        command: RecognizedCommand,
        started_at: float | None = None,
    ) -> dict:
        self._require_ready()
        started_at = started_at if started_at is not None else time.perf_counter()
        result = await self.dispatcher.dispatch(
            user_id,
            command.intent.value,
            command.entities,
            transcription=command.raw_text,
            confidence=command.confidence,
            command_id=command.command_id,
            started_at=started_at,
        )
        return {
            "transcription": command.raw_text,
            "intent": command.intent.value,
            "confidence": command.confidence,
            "processingTime": int((time.perf_counter() - started_at) * 1000),
            "actionResult": result.to_dict(),
        }

    # === Speech ===

    async def speak(self, text: str, voice: str | None = None) -> tuple[bytes, str]:
        """Synthesize text. Returns (audio bytes, media type)."""
        self._require_ready()
        if not self.tts.ready:
            raise SynthesisError("Text-to-speech provider not ready")
        audio = await asyncio.to_thread(self.tts.synthesize, text, voice)
        return audio, self.tts.media_type

    # === Log / status ===

    async def get_commands(self, user_id: int, limit: int = VOICE_COMMAND_HISTORY_LIMIT) -> list[dict]:
        self._require_ready()
        rows = await self.storage.get_voice_commands(user_id, limit)
        return [row.to_dict() for row in rows]

    def status(self) -> dict:
        return {
            "stt": bool(self.stt is not None and self.stt.ready),
            "tts": bool(self.tts is not None and self.tts.ready),
            "initialized": self.initialized,
            "uptime": round(time.time() - self.started_at, 3),
            "timestamp": time.time(),
        }


# Singleton
voice_service = VoiceService()


def get_voice_service() -> VoiceService:
    """FastAPI dependency; tests override it with their own instance."""
    return voice_service
