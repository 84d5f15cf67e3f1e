"""
Speech and responder capabilities.

The pipeline only talks to these interfaces, so a real speech model can be
swapped in without touching the parser, queue or dispatcher:

  - SpeechToText:    audio bytes -> Transcript
  - TextToSpeech:    text -> audio bytes
  - IntentResponder: canned answers for intents that touch no storage
"""

from __future__ import annotations

import io
import logging
import random
import wave
from typing import Iterable, Protocol

import requests

from voice.command_parser import Transcript
from voice.config import (
    ELEVENLABS_API_KEY,
    ELEVENLABS_MODEL_ID,
    ELEVENLABS_VOICE_ID,
    HELP_TEXT,
    JOKES,
    TTS_TIMEOUT_S,
    TTS_VOICE_SETTINGS,
)

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    """Raised when an audio payload cannot be turned into a transcript."""


class SynthesisError(Exception):
    """Raised when text cannot be turned into audio."""


class SpeechToText(Protocol):
    ready: bool

    def transcribe(self, audio: bytes, language: str = "en-US") -> Transcript:
        ...


class TextToSpeech(Protocol):
    ready: bool
    media_type: str

    def synthesize(
        self,
        text: str,
        voice: str | None = None,
        rate: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
    ) -> bytes:
        ...


class IntentResponder(Protocol):
    def joke(self) -> str:
        ...

    def help(self) -> str:
        ...


# === Speech to text ===

class TextPayloadSpeechToText:
    """
    Treats the uploaded payload as a UTF-8 transcript.
    Lets browsers that already ran recognition locally reuse the audio endpoint,
    and keeps development setups free of a model download.
    """

    ready = True

    def __init__(self, confidence: float = 0.95):
        self.confidence = confidence

    def transcribe(self, audio: bytes, language: str = "en-US") -> Transcript:
        try:
            text = audio.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise TranscriptionError("Audio payload is not a UTF-8 transcript") from e
        if not text:
            raise TranscriptionError("No speech detected")
        return Transcript(text=text, confidence=self.confidence, is_final=True)


class ScriptedSpeechToText:
    """Returns pre-recorded transcripts in order. Test double."""

    ready = True

    def __init__(self, transcripts: Iterable[str | Transcript]):
        self._pending = [
            t if isinstance(t, Transcript) else Transcript(text=t, confidence=0.95)
            for t in transcripts
        ]
        self.received: list[bytes] = []

    def transcribe(self, audio: bytes, language: str = "en-US") -> Transcript:
        self.received.append(audio)
        if not self._pending:
            raise TranscriptionError("No scripted transcript left")
        return self._pending.pop(0)


# === Text to speech ===

class ElevenLabsTextToSpeech:
    """ElevenLabs streaming TTS, returns mp3 bytes."""

    media_type = "audio/mpeg"

    def __init__(self, api_key: str | None = None, voice_id: str | None = None):
        self.api_key = api_key or ELEVENLABS_API_KEY
        self.voice_id = voice_id or ELEVENLABS_VOICE_ID
        self.ready = bool(self.api_key)
        if not self.ready:
            logger.warning("ELEVENLABS_API_KEY not set. Speech synthesis disabled.")

    def synthesize(
        self,
        text: str,
        voice: str | None = None,
        rate: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
    ) -> bytes:
        if not self.ready:
            raise SynthesisError("ElevenLabs API key not configured")

        url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice or self.voice_id}/stream"
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        payload = {
            "text": text,
            "model_id": ELEVENLABS_MODEL_ID,
            "voice_settings": {**TTS_VOICE_SETTINGS, "speed": rate},
        }
        try:
            resp = requests.post(url, json=payload, headers=headers, stream=True, timeout=TTS_TIMEOUT_S)
        except requests.RequestException as e:
            raise SynthesisError(f"ElevenLabs request failed: {e}") from e

        if resp.status_code != 200:
            logger.error(f"ElevenLabs API error {resp.status_code}: {resp.text[:200]}")
            raise SynthesisError(f"ElevenLabs API error {resp.status_code}")

        return b"".join(resp.iter_content(chunk_size=4096))


class SilentTextToSpeech:
    """Produces a valid silent WAV sized to the text. Used offline and in tests."""

    ready = True
    media_type = "audio/wav"

    def __init__(self, sample_rate: int = 16000, seconds_per_char: float = 0.06):
        self.sample_rate = sample_rate
        self.seconds_per_char = seconds_per_char
        self.spoken: list[str] = []

    def synthesize(
        self,
        text: str,
        voice: str | None = None,
        rate: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
    ) -> bytes:
        self.spoken.append(text)
        seconds = max(0.1, len(text) * self.seconds_per_char / max(rate, 0.1))
        n_frames = int(seconds * self.sample_rate)
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)
            wav.setframerate(self.sample_rate)
            wav.writeframes(b"\x00\x00" * n_frames)
        return buf.getvalue()


# === Responder ===

class TemplateResponder:
    """Canned jokes and help text."""

    def __init__(self, jokes: list[str] | None = None, rng: random.Random | None = None):
        self.jokes = list(jokes or JOKES)
        self._rng = rng or random.Random()

    def joke(self) -> str:
        return self._rng.choice(self.jokes)

    def help(self) -> str:
        return HELP_TEXT
