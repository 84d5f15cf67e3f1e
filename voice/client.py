"""
HTTP client for the voice backend.
Used by a client-side CommandExecutor to run recognized commands remotely.
"""

from __future__ import annotations

import asyncio
import base64
import logging

import requests

from voice.command_parser import RecognizedCommand
from voice.command_queue import TransientCommandError
from voice.config import VOICE_API_TIMEOUT_S, VOICE_API_URL

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {502, 503, 504}


class VoiceApiClient:
    """
    Thin requests wrapper around the /api/voice endpoints.

    Usage:
        client = VoiceApiClient(user_id=1)
        executor = CommandExecutor(client.execute, feedback=VoiceFeedback())
    """

    def __init__(
        self,
        user_id: int,
        base_url: str | None = None,
        timeout: float = VOICE_API_TIMEOUT_S,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or VOICE_API_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"X-User-Id": str(user_id)})

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientCommandError(f"{method} {path} failed: {e}") from e

        if resp.status_code in _TRANSIENT_STATUS:
            raise TransientCommandError(f"{method} {path} returned {resp.status_code}")
        resp.raise_for_status()
        return resp

    # === Voice pipeline ===

    def dispatch(self, command: RecognizedCommand) -> dict:
        """Send a recognized command, return the actionResult."""
        resp = self._request("POST", "/api/voice/dispatch", json=command.to_payload())
        return resp.json().get("actionResult") or {}

    async def execute(self, command: RecognizedCommand) -> dict:
        """CommandExecutor-compatible coroutine."""
        return await asyncio.to_thread(self.dispatch, command)

    def process_audio(self, audio: bytes) -> dict:
        payload = {"audioData": base64.b64encode(audio).decode("ascii")}
        return self._request("POST", "/api/voice/process-command", json=payload).json()

    def speak(self, text: str, voice: str | None = None) -> bytes:
        body = {"text": text}
        if voice:
            body["voice"] = voice
        return self._request("POST", "/api/voice/speak", json=body).content

    def list_commands(self, limit: int | None = None) -> list[dict]:
        params = {"limit": limit} if limit else None
        return self._request("GET", "/api/voice/commands", params=params).json().get("commands", [])

    def status(self) -> dict:
        return self._request("GET", "/api/voice/status").json()

    # === Direct domain endpoints ===

    def create_task(self, title: str, **fields) -> dict:
        return self._request("POST", "/api/tasks", json={"title": title, **fields}).json()

    def create_financial_record(self, type: str, amount: str, **fields) -> dict:
        body = {"type": type, "amount": str(amount), **fields}
        return self._request("POST", "/api/financial/records", json=body).json()
