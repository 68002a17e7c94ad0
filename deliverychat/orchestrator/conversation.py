"""Conversation orchestrator: one user turn from message to answer.

Drives a turn through the assistant backend in either ingestion mode:

- polling: start a run, poll its status, execute requested tool calls in
  one batch per ``requires_action`` and return the final answer.
- streaming: forward text deltas as they arrive, assemble tool-call
  fragments, execute the calls when the stream settles in
  ``requires_action``, then stream the resumed run the same way.

Every step is recorded on a Turn and logged, and progress is published to
the status broadcaster. Tool failures never end the turn: they go back to
the model as error tool outputs so it can correct itself.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum

from deliverychat.errors import DeliveryChatError, RunFailedError, RunTimeoutError, format_tool_error
from deliverychat.orchestrator.assembler import ToolCallAssembler
from deliverychat.orchestrator.backend.base import AssistantBackend
from deliverychat.orchestrator.models import (
    AssembledCall,
    Run,
    RunFinished,
    RunStatus,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolOutput,
)
from deliverychat.orchestrator.tools import Tool, ToolDefinition
from deliverychat.services.status_broadcaster import StatusBroadcaster
from deliverychat.services.status_events import StatusEvent

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    start = "start"
    thread_ready = "thread_ready"
    turn_submitted = "turn_submitted"
    run_started = "run_started"
    tool_requested = "tool_requested"
    tool_executed = "tool_executed"
    run_resumed = "run_resumed"
    run_completed = "run_completed"
    answer_extracted = "answer_extracted"
    done = "done"
    error = "error"


@dataclass
class Turn:
    """Per-request record of one user turn."""

    thread_id: str | None = None
    run_id: str | None = None
    state: TurnState = TurnState.start
    history: list[TurnState] = field(default_factory=lambda: [TurnState.start])
    tool_rounds: int = 0
    answer: str = ""

    def advance(self, state: TurnState) -> None:
        logger.info(
            "Turn %s -> %s (thread=%s run=%s)", self.state.value, state.value, self.thread_id, self.run_id
        )
        self.state = state
        self.history.append(state)


@dataclass(frozen=True)
class ChatReply:
    thread_id: str
    message: str


@dataclass
class StreamingTurn:
    """A streamed turn whose thread is ready; iterate ``chunks`` for the body."""

    thread_id: str
    turn: Turn
    chunks: AsyncIterator[str]


class ConversationOrchestrator:
    """Runs user turns against the assistant backend.

    Args:
        backend: Assistant backend owning threads and runs.
        tools: Tools declared to the model and dispatched by name.
        instructions: System instructions for every run.
        broadcaster: Status broadcaster; events are dropped if None.
        poll_interval: Seconds between run status checks.
        max_poll_attempts: Status checks before a polled turn times out.
        max_tool_rounds: Tool round trips allowed in one streamed turn.
        sleep: Awaitable used between polls (swapped out in tests).
    """

    def __init__(
        self,
        backend: AssistantBackend,
        tools: Sequence[Tool],
        instructions: str,
        broadcaster: StatusBroadcaster | None = None,
        poll_interval: float = 1.0,
        max_poll_attempts: int = 60,
        max_tool_rounds: int = 5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.tools = {tool.name: tool for tool in tools}
        self.instructions = instructions
        self.broadcaster = broadcaster
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.max_tool_rounds = max_tool_rounds
        self._sleep = sleep

    @property
    def definitions(self) -> list[ToolDefinition]:
        return [tool.definition for tool in self.tools.values()]

    def _publish(self, event: StatusEvent) -> None:
        if self.broadcaster is not None:
            self.broadcaster.publish(event)

    def _fail(self, turn: Turn, error: DeliveryChatError) -> None:
        turn.advance(TurnState.error)
        logger.error("Turn failed on thread %s: %s", turn.thread_id, error)
        self._publish(StatusEvent.failed(turn.thread_id, error.message))

    async def _prepare(self, turn: Turn, message: str, thread_id: str | None) -> str:
        if thread_id:
            thread = await self.backend.get_thread(thread_id)
        else:
            thread = await self.backend.create_thread()
        turn.thread_id = thread.id
        turn.advance(TurnState.thread_ready)

        await self.backend.add_message(thread.id, message)
        turn.advance(TurnState.turn_submitted)
        return thread.id

    # --- tool execution --------------------------------------------------

    def _error_output(
        self, thread_id: str, call: AssembledCall, error: DeliveryChatError, query: str | None = None
    ) -> ToolOutput:
        logger.warning("Tool call %s (%s) failed: %s", call.id, call.name, error)
        self._publish(StatusEvent.failed(thread_id, error.message, query=query))
        return ToolOutput(tool_call_id=call.id, output=format_tool_error(error), is_error=True)

    async def _execute_call(self, thread_id: str, call: AssembledCall) -> ToolOutput:
        if call.error is not None:
            return self._error_output(thread_id, call, call.error)
        tool = self.tools[call.name]
        try:
            request = tool.describe_call(call.arguments)
        except DeliveryChatError as e:
            return self._error_output(thread_id, call, e)

        parameters = request.parameters
        self._publish(StatusEvent.querying(
            thread_id,
            request.statement,
            dict(parameters) if isinstance(parameters, Mapping) else list(parameters),
        ))
        try:
            result = await tool.run(call.arguments)
        except DeliveryChatError as e:
            return self._error_output(thread_id, call, e, query=request.statement)

        self._publish(StatusEvent.results_ready(thread_id, request.statement, result.to_payload()["rows"]))
        return ToolOutput(tool_call_id=call.id, output=result.to_json())

    async def execute_calls(self, thread_id: str, calls: Sequence[AssembledCall]) -> list[ToolOutput]:
        """Execute assembled calls in order; every call yields exactly one output."""
        outputs = []
        for call in calls:
            outputs.append(await self._execute_call(thread_id, call))
        return outputs

    # --- polling mode ----------------------------------------------------

    async def ask(self, message: str, thread_id: str | None = None) -> ChatReply:
        """Run one turn in polling mode and return the assistant's answer.

        Raises:
            ThreadNotFoundError: Unknown ``thread_id``.
            ThreadBusyError: The thread already has an active run.
            RunFailedError: The run failed or expired.
            RunTimeoutError: The run did not settle within the poll budget.
        """
        turn = Turn()
        try:
            thread_id = await self._prepare(turn, message, thread_id)
            run = await self.backend.create_run(thread_id, self.instructions, self.definitions)
            turn.run_id = run.id
            turn.advance(TurnState.run_started)
            self._publish(StatusEvent.thinking(thread_id))

            await self._poll(turn, run)
            answer = await self._extract_answer(turn)
        except DeliveryChatError as e:
            self._fail(turn, e)
            raise

        self._publish(StatusEvent.complete(thread_id))
        turn.advance(TurnState.done)
        return ChatReply(thread_id=thread_id, message=answer)

    async def _poll(self, turn: Turn, run: Run) -> Run:
        attempts = 0
        while True:
            if run.status == RunStatus.completed:
                turn.advance(TurnState.run_completed)
                return run
            if run.status in (RunStatus.failed, RunStatus.expired):
                raise RunFailedError(run.id, run.status.value, run.last_error)
            if run.status == RunStatus.requires_action:
                turn.tool_rounds += 1
                turn.advance(TurnState.tool_requested)
                calls = ToolCallAssembler(self.tools).complete(run.required_action)
                try:
                    outputs = await self.execute_calls(turn.thread_id, calls)
                except BaseException:
                    await self._release(run, "Tool execution was interrupted")
                    raise
                turn.advance(TurnState.tool_executed)
                run = await self.backend.submit_tool_outputs(turn.thread_id, run.id, outputs)
                turn.advance(TurnState.run_resumed)
                continue

            if attempts >= self.max_poll_attempts:
                # The backend run is left alone; it may still finish later.
                raise RunTimeoutError(run.id, attempts)
            await self._sleep(self.poll_interval)
            attempts += 1
            run = await self.backend.get_run(turn.thread_id, run.id)
            logger.debug("Run %s status %s (check %d)", run.id, run.status.value, attempts)

    async def _extract_answer(self, turn: Turn) -> str:
        thread = await self.backend.get_thread(turn.thread_id)
        latest = thread.latest_assistant_message()
        answer = latest.text if latest is not None else None
        if answer is None:
            logger.warning("Run %s completed without a text answer", turn.run_id)
            answer = ""
        turn.answer = answer
        turn.advance(TurnState.answer_extracted)
        return answer

    # --- streaming mode --------------------------------------------------

    async def start_stream(self, message: str, thread_id: str | None = None) -> StreamingTurn:
        """Prepare the thread and return the streamed body of the turn.

        Thread errors are raised here, before any body is produced; later
        failures are written into the body as ``Error: <message>``.
        """
        turn = Turn()
        try:
            thread_id = await self._prepare(turn, message, thread_id)
        except DeliveryChatError as e:
            self._fail(turn, e)
            raise
        return StreamingTurn(thread_id=thread_id, turn=turn, chunks=self._stream_chunks(turn))

    async def _release(self, run: Run | None, reason: str) -> None:
        """Cancel a run left waiting for tool outputs so its thread accepts new turns."""
        if run is None or run.status != RunStatus.requires_action:
            return
        try:
            await self.backend.cancel_run(run.thread_id, run.id, reason)
        except DeliveryChatError as e:
            logger.warning("Could not cancel run %s: %s", run.id, e)

    async def _stream_chunks(self, turn: Turn) -> AsyncIterator[str]:
        thread_id = turn.thread_id
        self._publish(StatusEvent.thinking(thread_id))
        events = self.backend.stream_run(thread_id, self.instructions, self.definitions)
        turn.advance(TurnState.run_started)
        parts: list[str] = []
        waiting: Run | None = None
        reason = "Turn ended before tool outputs were submitted"
        try:
            while True:
                assembler = ToolCallAssembler(self.tools)
                finished: Run | None = None
                async with aclosing(events):
                    async for event in events:
                        text = self._consume(event, assembler)
                        if text:
                            parts.append(text)
                            yield text
                        if isinstance(event, RunFinished):
                            finished = event.run

                if finished is None:
                    raise RunFailedError(turn.run_id or "unknown", "failed", "Stream ended without a final event")
                turn.run_id = finished.id
                if finished.status == RunStatus.completed:
                    break
                if finished.status != RunStatus.requires_action:
                    raise RunFailedError(finished.id, finished.status.value, finished.last_error)
                waiting = finished
                if turn.tool_rounds >= self.max_tool_rounds:
                    raise RunFailedError(
                        finished.id, "failed", f"Exceeded {self.max_tool_rounds} tool round trips"
                    )

                turn.tool_rounds += 1
                turn.advance(TurnState.tool_requested)
                calls = assembler.finish() or assembler.complete(finished.required_action)
                outputs = await self.execute_calls(thread_id, calls)
                turn.advance(TurnState.tool_executed)
                events = self.backend.stream_tool_outputs(thread_id, finished.id, outputs)
                turn.advance(TurnState.run_resumed)
        except DeliveryChatError as e:
            reason = e.message
            self._fail(turn, e)
            yield f"Error: {e.message}"
            return
        except Exception as e:
            # Headers are already sent; the body is the only channel left.
            reason = str(e)
            logger.exception("Streamed turn failed on thread %s", thread_id)
            turn.advance(TurnState.error)
            self._publish(StatusEvent.failed(thread_id, str(e)))
            yield f"Error: {e}"
            return
        finally:
            await self._release(waiting, reason)

        turn.advance(TurnState.run_completed)
        turn.answer = "".join(parts)
        turn.advance(TurnState.answer_extracted)
        self._publish(StatusEvent.complete(thread_id))
        turn.advance(TurnState.done)

    @staticmethod
    def _consume(event: StreamEvent, assembler: ToolCallAssembler) -> str | None:
        if isinstance(event, TextDelta):
            return event.text
        if isinstance(event, ToolCallDelta):
            assembler.feed(event)
        return None
