"""
Voice feedback.
Turns dispatch results into spoken confirmations. At most one utterance is
audible: a new speak() cancels whatever is still playing, nothing is queued.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

from constants import DEFAULT_LANGUAGE
from voice.capabilities import SynthesisError, TextToSpeech
from voice.config import (
    FEEDBACK_EVENTS,
    SPEECH_PITCH,
    SPEECH_RATE,
    SPEECH_VOLUME,
)

logger = logging.getLogger(__name__)


@dataclass
class VoiceInfo:
    name: str
    lang: str
    voice_id: str | None = None


@dataclass
class Utterance:
    text: str
    rate: float
    pitch: float
    volume: float
    language: str
    voice: str | None = None
    audio: bytes | None = None
    timestamp: float = field(default_factory=time.time)

    def to_message(self) -> dict:
        return {
            "type": "feedback",
            "text": self.text,
            "language": self.language,
            "audio_base64": base64.b64encode(self.audio).decode("ascii") if self.audio else None,
            "timestamp": self.timestamp,
        }


class AudioOutput(Protocol):
    def play(self, utterance: Utterance) -> None:
        ...

    def cancel(self) -> None:
        ...


class RecordingAudioOutput:
    """Headless output: tracks the audible utterance and what got cut off."""

    def __init__(self):
        self.current: Utterance | None = None
        self.played: list[Utterance] = []
        self.cancelled: list[Utterance] = []

    def play(self, utterance: Utterance) -> None:
        self.current = utterance
        self.played.append(utterance)

    def cancel(self) -> None:
        if self.current is not None:
            self.cancelled.append(self.current)
            self.current = None

    def finish(self) -> None:
        """Playback reached the end on its own."""
        self.current = None


def select_voice(voices: list[VoiceInfo], language: str) -> VoiceInfo | None:
    """Prefer an enhanced/premium voice for the language prefix, else any match."""
    prefix = language.split("-")[0].lower()
    matching = [v for v in voices if v.lang.lower().startswith(prefix)]
    for v in matching:
        if "enhanced" in v.name.lower() or "premium" in v.name.lower():
            return v
    return matching[0] if matching else None


def compose_feedback(result: dict | None) -> str:
    """Sentence spoken for a dispatch result (the actionResult JSON)."""
    if not result:
        return FEEDBACK_EVENTS["unknown_intent"]

    kind = result.get("type")

    if kind == "task_created":
        task = result.get("task") or {}
        return FEEDBACK_EVENTS["task_created"].format(
            title=task.get("title", ""), priority=task.get("priority", "medium"),
        )
    if kind == "task_completed":
        task = result.get("task") or {}
        return FEEDBACK_EVENTS["task_completed"].format(title=task.get("title", ""))
    if kind in ("expense_added", "income_added"):
        record = result.get("record") or {}
        return FEEDBACK_EVENTS[kind].format(
            amount=record.get("amount", ""), category=record.get("category", ""),
        )
    if kind == "tasks_retrieved":
        tasks = result.get("tasks") or []
        if not tasks:
            return FEEDBACK_EVENTS["no_tasks"]
        return FEEDBACK_EVENTS["tasks_retrieved"].format(
            count=len(tasks), titles=", ".join(t.get("title", "") for t in tasks),
        )
    if kind == "financial_summary":
        summary = result.get("summary") or {}
        return FEEDBACK_EVENTS["financial_summary"].format(
            income=summary.get("income", "0.00"),
            expenses=summary.get("expenses", "0.00"),
            net=summary.get("net", "0.00"),
        )
    if kind == "navigation":
        return FEEDBACK_EVENTS["navigation"].format(destination=result.get("destination", ""))

    # joke, help, clarification_needed, unknown_intent, error carry their own text
    message = result.get("message")
    if message:
        return message
    return FEEDBACK_EVENTS.get(kind, FEEDBACK_EVENTS["unknown_intent"])


class VoiceFeedback:
    """
    Speech synthesis front-end with cancel-on-speak semantics.

    When a TextToSpeech capability is given and ready, audio bytes are attached
    to each utterance (server mode, delivered over the WebSocket). Without one,
    utterances are text-only and the client speaks them itself.
    """

    def __init__(
        self,
        tts: TextToSpeech | None = None,
        output: AudioOutput | None = None,
        language: str = DEFAULT_LANGUAGE,
        voices: list[VoiceInfo] | None = None,
        rate: float = SPEECH_RATE,
        pitch: float = SPEECH_PITCH,
        volume: float = SPEECH_VOLUME,
    ):
        self.tts = tts
        self.output = output or RecordingAudioOutput()
        self.language = language
        self.rate = rate
        self.pitch = pitch
        self.volume = volume
        preferred = select_voice(voices or [], language)
        self.voice = preferred.voice_id or preferred.name if preferred else None
        self._audio_callback: Callable[[Utterance], None] | None = None
        self._feedback_log: list[Utterance] = []

    def set_audio_callback(self, callback: Callable[[Utterance], None]) -> None:
        """Set callback for delivering utterances to clients: callback(utterance)."""
        self._audio_callback = callback

    def cancel(self) -> None:
        self.output.cancel()

    def speak(
        self,
        text: str,
        rate: float | None = None,
        pitch: float | None = None,
        volume: float | None = None,
    ) -> Utterance | None:
        utterance = self._begin(text, rate, pitch, volume)
        if utterance is None:
            return None
        utterance.audio = self._synthesize(utterance)
        return self._deliver(utterance)

    async def speak_async(
        self,
        text: str,
        rate: float | None = None,
        pitch: float | None = None,
        volume: float | None = None,
    ) -> Utterance | None:
        """speak() for callers on the event loop: synthesis runs in a worker thread."""
        utterance = self._begin(text, rate, pitch, volume)
        if utterance is None:
            return None
        utterance.audio = await asyncio.to_thread(self._synthesize, utterance)
        return self._deliver(utterance)

    def _begin(
        self,
        text: str,
        rate: float | None,
        pitch: float | None,
        volume: float | None,
    ) -> Utterance | None:
        if not text:
            return None

        # One audible utterance at a time
        self.cancel()

        return Utterance(
            text=text,
            rate=rate if rate is not None else self.rate,
            pitch=pitch if pitch is not None else self.pitch,
            volume=volume if volume is not None else self.volume,
            language=self.language,
            voice=self.voice,
        )

    def _synthesize(self, utterance: Utterance) -> bytes | None:
        if self.tts is None or not self.tts.ready:
            return None
        try:
            return self.tts.synthesize(
                utterance.text,
                voice=self.voice,
                rate=utterance.rate,
                pitch=utterance.pitch,
                volume=utterance.volume,
            )
        except SynthesisError as e:
            logger.error(f"TTS synthesis failed, sending text only: {e}")
            return None

    def _deliver(self, utterance: Utterance) -> Utterance:
        self.output.play(utterance)
        self._feedback_log.append(utterance)

        if self._audio_callback:
            self._audio_callback(utterance)

        return utterance

    async def announce_result(self, result: dict | None) -> Utterance | None:
        return await self.speak_async(compose_feedback(result))

    async def announce_error(self) -> Utterance | None:
        return await self.speak_async(FEEDBACK_EVENTS["error"])

    def announce_notice(self, text: str) -> Utterance | None:
        return self.speak(text)

    def get_feedback_log(self) -> list[Utterance]:
        return list(self._feedback_log)
