"""Tests for the per-session command executor."""
import asyncio

import pytest

from voice.command_parser import Intent, RecognizedCommand
from voice.command_queue import CommandExecutor, CommandQueueRegistry, TransientCommandError
from voice.tts_feedback import VoiceFeedback


def _command(text: str) -> RecognizedCommand:
    return RecognizedCommand(raw_text=text, intent=Intent.JOKE)


def _executor(execute, **kwargs) -> CommandExecutor:
    kwargs.setdefault("inter_command_delay", 0)
    kwargs.setdefault("retry_delay", 0)
    return CommandExecutor(execute, **kwargs)


@pytest.mark.asyncio
async def test_commands_run_in_arrival_order():
    executed = []

    async def execute(command):
        await asyncio.sleep(0.01)
        executed.append(command.raw_text)
        return {"type": "joke", "message": command.raw_text}

    executor = _executor(execute)
    for text in ["a", "b", "c"]:
        executor.enqueue(_command(text))
    assert executor.pending == 3

    await executor.join()

    assert executed == ["a", "b", "c"]
    assert [r.outcome for r in executor.history] == ["ok", "ok", "ok"]
    assert executor.pending == 0
    assert not executor.is_draining


@pytest.mark.asyncio
async def test_at_most_one_execution_in_flight():
    in_flight = 0
    peak = 0

    async def execute(command):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return {}

    executor = _executor(execute)
    for i in range(5):
        executor.enqueue(_command(str(i)))
    await executor.join()

    assert peak == 1


@pytest.mark.asyncio
async def test_enqueue_during_drain_is_picked_up_by_running_loop():
    executed = []
    executor = None

    async def execute(command):
        executed.append(command.raw_text)
        if command.raw_text == "first":
            executor.enqueue(_command("late"))
        return {}

    executor = _executor(execute)
    executor.enqueue(_command("first"))
    executor.enqueue(_command("second"))
    await executor.join()

    assert executed == ["first", "second", "late"]


@pytest.mark.asyncio
async def test_transient_failure_retried_before_next_command():
    executed = []
    failures = {"a": 1}

    async def execute(command):
        executed.append(command.command_id)
        if failures.get(command.raw_text):
            failures[command.raw_text] -= 1
            raise TransientCommandError("connection reset")
        return {"type": "joke", "message": "ok"}

    executor = _executor(execute)
    a, b = _command("a"), _command("b")
    executor.enqueue(a)
    executor.enqueue(b)
    await executor.join()

    assert executed == [a.command_id, a.command_id, b.command_id]
    assert executor.history[0].attempts == 2
    assert executor.history[0].outcome == "ok"


@pytest.mark.asyncio
async def test_exhausted_retries_apologize_and_continue():
    feedback = VoiceFeedback()
    executed = []

    async def execute(command):
        executed.append(command.raw_text)
        if command.raw_text == "bad":
            raise TransientCommandError("timeout")
        return {"type": "help", "message": "You can say things"}

    executor = _executor(execute, feedback=feedback, max_retries=2)
    executor.enqueue(_command("bad"))
    executor.enqueue(_command("good"))
    await executor.join()

    assert executed == ["bad", "bad", "bad", "good"]
    failed, ok = executor.history
    assert failed.outcome == "failed"
    assert failed.attempts == 3
    assert ok.outcome == "ok"
    spoken = [u.text for u in feedback.get_feedback_log()]
    assert spoken == ["There was an error processing that command.", "You can say things"]


@pytest.mark.asyncio
async def test_non_transient_failure_is_not_retried():
    calls = 0

    async def execute(command):
        nonlocal calls
        calls += 1
        raise ValueError("boom")

    executor = _executor(execute)
    executor.enqueue(_command("x"))
    await executor.join()

    assert calls == 1
    assert executor.history[0].outcome == "failed"
    assert executor.history[0].error == "boom"


@pytest.mark.asyncio
async def test_result_is_spoken_and_delivered():
    feedback = VoiceFeedback()
    delivered = []

    async def execute(command):
        return {"type": "task_created", "task": {"title": "buy milk", "priority": "high"}}

    async def on_result(command, result):
        delivered.append((command.raw_text, result["type"]))

    executor = _executor(execute, feedback=feedback, on_result=on_result)
    executor.enqueue(_command("create task buy milk"))
    await executor.join()

    assert feedback.get_feedback_log()[0].text == 'Task "buy milk" created with high priority'
    assert delivered == [("create task buy milk", "task_created")]


@pytest.mark.asyncio
async def test_broken_audio_callback_does_not_stop_the_queue():
    async def execute(command):
        if command.raw_text == "bad":
            raise ValueError("boom")
        return {"type": "joke", "message": command.raw_text}

    def broken_callback(utterance):
        raise RuntimeError("speaker unplugged")

    feedback = VoiceFeedback()
    feedback.set_audio_callback(broken_callback)
    executor = _executor(execute, feedback=feedback)
    executor.enqueue(_command("bad"))
    executor.enqueue(_command("good"))

    await executor.join()

    assert [r.outcome for r in executor.history] == ["failed", "ok"]
    assert executor.pending == 0


@pytest.mark.asyncio
async def test_closed_executor_rejects_commands():
    async def execute(command):
        return {}

    executor = _executor(execute)
    await executor.close()

    with pytest.raises(RuntimeError):
        executor.enqueue(_command("late"))


@pytest.mark.asyncio
async def test_registry_owns_one_executor_per_session():
    async def execute(command):
        return {}

    registry = CommandQueueRegistry(lambda session_id: _executor(execute))
    first = registry.get("s1")
    assert registry.get("s1") is first
    assert registry.get("s2") is not first
    assert len(registry) == 2

    await registry.close("s1")
    assert len(registry) == 1
    with pytest.raises(RuntimeError):
        first.enqueue(_command("x"))

    await registry.close_all()
    assert len(registry) == 0


def test_registry_without_factory_needs_one_per_call():
    registry = CommandQueueRegistry()
    with pytest.raises(KeyError):
        registry.get("unknown")
