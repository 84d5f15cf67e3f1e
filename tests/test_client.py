"""Tests for the HTTP client used by client-side executors."""
from unittest.mock import MagicMock

import pytest
import requests

from voice.client import VoiceApiClient
from voice.command_parser import CommandParser
from voice.command_queue import TransientCommandError


def _client(response=None, error=None) -> tuple[VoiceApiClient, MagicMock]:
    session = MagicMock()
    session.headers = {}
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = response
    return VoiceApiClient(user_id=7, base_url="http://voice.local/", session=session), session


def test_dispatch_posts_command_payload():
    response = MagicMock(status_code=200)
    response.json.return_value = {"actionResult": {"type": "joke", "message": "ha"}}
    client, session = _client(response)
    command = CommandParser().parse("tell me a joke")

    result = client.dispatch(command)

    assert result == {"type": "joke", "message": "ha"}
    assert session.headers["X-User-Id"] == "7"
    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "http://voice.local/api/voice/dispatch")
    assert session.request.call_args.kwargs["json"]["commandId"] == command.command_id


@pytest.mark.parametrize("error", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_network_errors_are_transient(error):
    client, _ = _client(error=error)
    with pytest.raises(TransientCommandError):
        client.dispatch(CommandParser().parse("help"))


def test_gateway_errors_are_transient():
    client, _ = _client(MagicMock(status_code=503))
    with pytest.raises(TransientCommandError):
        client.status()


def test_client_errors_raise():
    response = MagicMock(status_code=401)
    response.raise_for_status.side_effect = requests.HTTPError("401")
    client, _ = _client(response)
    with pytest.raises(requests.HTTPError):
        client.list_commands()


@pytest.mark.asyncio
async def test_execute_runs_dispatch_off_loop():
    response = MagicMock(status_code=200)
    response.json.return_value = {"actionResult": {"type": "help", "message": "You can say"}}
    client, _ = _client(response)

    result = await client.execute(CommandParser().parse("help"))

    assert result["type"] == "help"
