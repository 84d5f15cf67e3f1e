"""
Voice input listener.
Wraps a speech recognition engine, tracks listening state, and emits
interim / final transcripts to the caller.
"""

from __future__ import annotations

import asyncio
import importlib.util
import logging
from enum import Enum
from typing import Callable, Protocol

from constants import AUTO_RESTART_DELAY_S, CONFIDENCE_THRESHOLD, DEFAULT_LANGUAGE
from voice.command_parser import Transcript
from voice.config import FEEDBACK_EVENTS

logger = logging.getLogger(__name__)

# Engine error codes that mean "stop trying" rather than "try again"
_FATAL_ERRORS = {"not-allowed", "service-not-allowed", "audio-capture"}


class ListenerState(Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"


class RecognitionEngine(Protocol):
    """
    Platform speech recognizer. Reports back through the adapter's
    handle_result / handle_error / handle_end, on the adapter's event loop.
    """

    def start(self, handlers: "SpeechCaptureAdapter", language: str, interim_results: bool) -> None:
        ...

    def stop(self) -> None:
        ...


class SpeechCaptureAdapter:
    """
    Listening state machine: IDLE -> LISTENING -> (result | error | stopped) -> IDLE.

    If the engine drops out while the caller still wants to listen, listening
    restarts after `restart_delay` seconds.

    Usage:
        adapter = SpeechCaptureAdapter(engine, on_final=lambda t: executor.enqueue(parser.parse(t.text)))
        adapter.start_listening()
    """

    def __init__(
        self,
        engine: RecognitionEngine | None,
        language: str = DEFAULT_LANGUAGE,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        interim_results: bool = True,
        restart_delay: float = AUTO_RESTART_DELAY_S,
        on_interim: Callable[[Transcript], None] | None = None,
        on_final: Callable[[Transcript], None] | None = None,
        on_notice: Callable[[str], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.engine = engine
        self.language = language
        self.confidence_threshold = confidence_threshold
        self.interim_results = interim_results
        self.restart_delay = restart_delay
        self.on_interim = on_interim
        self.on_final = on_final
        self.on_notice = on_notice
        self._loop = loop
        self._state = ListenerState.IDLE
        self._engine_running = False
        self._want_listening = False
        self._restart_handle: asyncio.TimerHandle | None = None
        self.restart_count = 0
        self.current_transcript = ""

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is ListenerState.LISTENING

    @property
    def wants_listening(self) -> bool:
        return self._want_listening

    @property
    def supported(self) -> bool:
        return self.engine is not None

    def start_listening(self) -> bool:
        """Start the engine. No-op if already listening. Returns True if listening."""
        if self.engine is None:
            self._notice(FEEDBACK_EVENTS["not_supported"])
            return False
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._want_listening = True
        if self._state is ListenerState.LISTENING:
            return True
        self.current_transcript = ""
        if self._engine_running:
            # Recoverable error: the engine never stopped, so just resume
            self._state = ListenerState.LISTENING
            return True
        return self._start_engine()

    def stop_listening(self) -> None:
        self._want_listening = False
        self._cancel_restart()
        self._state = ListenerState.IDLE
        if self._engine_running:
            self._engine_running = False
            self.engine.stop()

    def toggle_listening(self) -> bool:
        if self._want_listening:
            self.stop_listening()
            return False
        return self.start_listening()

    # === Engine callbacks ===

    def handle_result(self, transcript: Transcript) -> None:
        self.current_transcript = transcript.text
        if not transcript.is_final:
            if self.interim_results and self.on_interim:
                self.on_interim(transcript)
            return

        if transcript.confidence < self.confidence_threshold:
            logger.debug(
                f"Dropped low-confidence transcript ({transcript.confidence:.2f}): '{transcript.text}'"
            )
            return

        logger.info(f"Final transcript ({transcript.confidence:.2f}): '{transcript.text}'")
        if self.on_final:
            self.on_final(transcript)

    def handle_error(self, code: str) -> None:
        logger.warning(f"Voice recognition error: {code}")
        self._state = ListenerState.IDLE
        if code == "no-speech":
            self._notice(FEEDBACK_EVENTS["no_speech"])
        elif code in _FATAL_ERRORS:
            self._want_listening = False
            self._cancel_restart()
            self._notice(FEEDBACK_EVENTS["permission_denied"])

    def handle_end(self) -> None:
        self._state = ListenerState.IDLE
        self._engine_running = False
        if self._want_listening:
            self._schedule_restart()

    # === Internals ===

    def _start_engine(self) -> bool:
        try:
            self.engine.start(self, self.language, self.interim_results)
        except Exception as e:
            logger.error(f"Failed to start voice recognition: {e}")
            self.handle_error("audio-capture")
            return False
        self._engine_running = True
        self._state = ListenerState.LISTENING
        logger.info("Voice recognition started")
        return True

    def _schedule_restart(self) -> None:
        if self._restart_handle is not None or self._loop is None:
            return
        self._restart_handle = self._loop.call_later(self.restart_delay, self._restart)

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    def _restart(self) -> None:
        self._restart_handle = None
        if self._want_listening and not self._engine_running:
            self.restart_count += 1
            logger.info(f"Restarting voice recognition (restart #{self.restart_count})")
            self._start_engine()

    def _notice(self, text: str) -> None:
        if self.on_notice:
            self.on_notice(text)


def _require_module(module_name: str, install_hint: str) -> None:
    if importlib.util.find_spec(module_name) is None:
        raise RuntimeError(
            f"Missing dependency '{module_name}'. Install with: {install_hint}"
        )


class MicrophoneRecognitionEngine:
    """
    RecognitionEngine backed by the SpeechRecognition library.
    Listens on the default microphone in a background thread and posts
    results back onto the adapter's event loop.
    """

    def __init__(self, phrase_time_limit: float = 10.0, ambient_duration: float = 0.5):
        _require_module("speech_recognition", 'pip install "voicedesk[mic]"')
        import speech_recognition as sr

        self._sr = sr
        self._recognizer = sr.Recognizer()
        self.phrase_time_limit = phrase_time_limit
        self.ambient_duration = ambient_duration
        self._stopper = None
        self._handlers: SpeechCaptureAdapter | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def start(self, handlers: SpeechCaptureAdapter, language: str, interim_results: bool) -> None:
        self._handlers = handlers
        self._loop = asyncio.get_running_loop()
        microphone = self._sr.Microphone()
        with microphone as source:
            self._recognizer.adjust_for_ambient_noise(source, duration=self.ambient_duration)

        loop = self._loop
        sr = self._sr

        def on_audio(recognizer, audio):
            try:
                result = recognizer.recognize_google(audio, language=language, show_all=True)
            except sr.RequestError as e:
                logger.error(f"Speech service request failed: {e}")
                loop.call_soon_threadsafe(handlers.handle_error, "network")
                return
            alternatives = result.get("alternative", []) if isinstance(result, dict) else []
            if not alternatives:
                loop.call_soon_threadsafe(handlers.handle_error, "no-speech")
                return
            best = alternatives[0]
            transcript = Transcript(
                text=best.get("transcript", ""),
                confidence=float(best.get("confidence", 1.0)),
                is_final=True,
            )
            loop.call_soon_threadsafe(handlers.handle_result, transcript)

        self._stopper = self._recognizer.listen_in_background(
            microphone, on_audio, phrase_time_limit=self.phrase_time_limit,
        )

    def stop(self) -> None:
        if self._stopper is not None:
            self._stopper(wait_for_stop=False)
            self._stopper = None
        if self._handlers is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._handlers.handle_end)
