"""
Command queue / executor.

One executor per session. Recognized commands are executed strictly in
arrival order with at most one execution in flight; the await on each
execution is the only serialization point.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from constants import (
    INTER_COMMAND_DELAY_S,
    MAX_COMMAND_RETRIES,
    RETRY_DELAY_S,
)
from voice.command_parser import RecognizedCommand
from voice.tts_feedback import VoiceFeedback

logger = logging.getLogger(__name__)

ExecuteFn = Callable[[RecognizedCommand], Awaitable[dict]]


class TransientCommandError(Exception):
    """Execution failed in a way worth retrying (network drop, timeout)."""


@dataclass
class ExecutionRecord:
    command_id: str
    intent: str
    started_at: float
    attempts: int
    outcome: str            # "ok" | "failed"
    result: dict | None = None
    error: str | None = None


class CommandExecutor:
    """
    FIFO command queue with a single drain loop.

    Usage:
        executor = CommandExecutor(client.execute, feedback=VoiceFeedback())
        executor.enqueue(parser.parse("create task buy milk"))
        await executor.join()
    """

    def __init__(
        self,
        execute: ExecuteFn,
        feedback: VoiceFeedback | None = None,
        inter_command_delay: float = INTER_COMMAND_DELAY_S,
        max_retries: int = MAX_COMMAND_RETRIES,
        retry_delay: float = RETRY_DELAY_S,
        on_result: Callable[[RecognizedCommand, dict], Awaitable[None]] | None = None,
    ):
        self._execute = execute
        self.feedback = feedback
        self.inter_command_delay = inter_command_delay
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._on_result = on_result
        self._queue: deque[RecognizedCommand] = deque()
        self._drain_task: asyncio.Task | None = None
        self._draining = False
        self._closed = False
        self.history: list[ExecutionRecord] = []

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def enqueue(self, command: RecognizedCommand) -> None:
        """Append a command; start draining unless a drain loop is already running."""
        if self._closed:
            raise RuntimeError("Command executor is closed")
        self._queue.append(command)
        logger.debug(f"Queued {command.intent.value} ({command.command_id}), {len(self._queue)} pending")
        self._start_drain()

    def _start_drain(self) -> None:
        if self._draining or not self._queue:
            return
        # Flag is set before the task runs so a burst of enqueues starts one loop
        self._draining = True
        self._drain_task = asyncio.get_running_loop().create_task(self._drain_loop())

    async def drain(self) -> None:
        """Execute queued commands one at a time until the queue is empty."""
        self._start_drain()
        await self.join()

    async def _drain_loop(self) -> None:
        try:
            while self._queue:
                command = self._queue.popleft()
                await self._run(command)
                await asyncio.sleep(self.inter_command_delay)
        finally:
            self._draining = False

    async def join(self) -> None:
        """Wait until the current drain loop (if any) finishes."""
        task = self._drain_task
        if task is not None and not task.done():
            await task

    async def close(self) -> None:
        """Refuse new commands and let the queued ones finish."""
        self._closed = True
        await self.join()

    async def _run(self, command: RecognizedCommand) -> None:
        started_at = time.time()
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await self._execute(command)
            except TransientCommandError as e:
                if attempts <= self.max_retries:
                    logger.warning(
                        f"Transient failure on {command.command_id} (attempt {attempts}): {e}, retrying"
                    )
                    await asyncio.sleep(self.retry_delay)
                    continue
                await self._fail(command, started_at, attempts, e)
                return
            except Exception as e:
                await self._fail(command, started_at, attempts, e)
                return
            break

        self.history.append(ExecutionRecord(
            command_id=command.command_id,
            intent=command.intent.value,
            started_at=started_at,
            attempts=attempts,
            outcome="ok",
            result=result,
        ))
        try:
            if self.feedback:
                await self.feedback.announce_result(result)
            if self._on_result:
                await self._on_result(command, result)
        except Exception:
            logger.exception(f"Delivering result for {command.command_id} failed")

    async def _fail(self, command: RecognizedCommand, started_at: float, attempts: int, error: Exception) -> None:
        logger.exception(f"Voice command {command.command_id} ('{command.raw_text}') failed: {error}")
        self.history.append(ExecutionRecord(
            command_id=command.command_id,
            intent=command.intent.value,
            started_at=started_at,
            attempts=attempts,
            outcome="failed",
            error=str(error),
        ))
        if self.feedback:
            try:
                await self.feedback.announce_error()
            except Exception:
                logger.exception(f"Announcing failure of {command.command_id} failed")


class CommandQueueRegistry:
    """Owns one CommandExecutor per session id."""

    def __init__(self, factory: Callable[[str], CommandExecutor] | None = None):
        self._factory = factory
        self._executors: dict[str, CommandExecutor] = {}

    def get(
        self,
        session_id: str,
        factory: Callable[[str], CommandExecutor] | None = None,
    ) -> CommandExecutor:
        """Executor for the session, built by `factory` (or the registry default) on first use."""
        executor = self._executors.get(session_id)
        if executor is None:
            build = factory or self._factory
            if build is None:
                raise KeyError(f"No executor for session {session_id}")
            executor = build(session_id)
            self._executors[session_id] = executor
        return executor

    async def close(self, session_id: str) -> None:
        executor = self._executors.pop(session_id, None)
        if executor is not None:
            await executor.close()

    async def close_all(self) -> None:
        for session_id in list(self._executors):
            await self.close(session_id)

    def __len__(self) -> int:
        return len(self._executors)
