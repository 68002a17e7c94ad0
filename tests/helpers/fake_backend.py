"""Scripted assistant backend for orchestrator and API tests.

Threads and runs live in a real ThreadStore; what the "model" does is
scripted per run:

- polled runs: ``polled`` holds one list of Settle steps per create_run().
  Each get_run() applies the next step (submit_tool_outputs() queues the
  run and the next get_run() continues the same script).
- streamed runs: ``streams`` holds one list of events per stream_run() or
  stream_tool_outputs() call; the list ends with a Settle that decides the
  run's status after the events are yielded.
"""

from collections import deque
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from deliverychat.orchestrator.backend.base import AssistantBackend
from deliverychat.orchestrator.models import (
    Message,
    Run,
    RunFinished,
    RunStatus,
    StreamEvent,
    TextDelta,
    Thread,
    ToolCall,
    ToolOutput,
)
from deliverychat.orchestrator.tools import ToolDefinition
from deliverychat.services.thread_store import ThreadStore


@dataclass
class Settle:
    """Next status of a scripted run.

    ``answer`` is appended as an assistant text turn on ``completed``;
    ``tool_calls`` are the pending calls on ``requires_action``.
    """

    status: RunStatus
    answer: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    error: str | None = None


class FakeAssistantBackend(AssistantBackend):
    def __init__(self, store: ThreadStore | None = None) -> None:
        self.store = store or ThreadStore()
        self.polled: deque[list[Settle]] = deque()
        self.streams: deque[list[StreamEvent | Settle]] = deque()
        self.scripts: dict[str, deque[Settle]] = {}
        self.created_threads: list[str] = []
        self.runs_started: list[tuple[str, str, list[ToolDefinition]]] = []
        self.submitted: list[list[ToolOutput]] = []
        self.status_log: list[RunStatus] = []
        self.cancelled: list[tuple[str, str]] = []
        self.closed = False

    async def create_thread(self) -> Thread:
        thread = self.store.create_thread()
        self.created_threads.append(thread.id)
        return thread

    async def get_thread(self, thread_id: str) -> Thread:
        return self.store.get_thread(thread_id)

    async def add_message(self, thread_id: str, text: str) -> Message:
        return self.store.add_user_message(thread_id, text)

    def _apply(self, run: Run, step: Settle) -> None:
        thread = self.store.get_thread(run.thread_id)
        if step.status == RunStatus.completed:
            if step.answer is not None:
                thread.messages.append(
                    Message(role="assistant", content=[{"type": "text", "text": step.answer}])
                )
            self.store.finish_run(run, RunStatus.completed)
        elif step.status == RunStatus.requires_action:
            run.required_action = list(step.tool_calls)
            run.transition(RunStatus.requires_action)
        elif step.status in (RunStatus.failed, RunStatus.expired):
            self.store.finish_run(run, step.status, step.error)
        else:
            run.transition(step.status)
        self.status_log.append(run.status)

    async def create_run(self, thread_id: str, instructions: str, tools: Sequence[ToolDefinition]) -> Run:
        run = self.store.start_run(thread_id)
        self.runs_started.append((thread_id, instructions, list(tools)))
        self.scripts[run.id] = deque(self.polled.popleft())
        self.status_log.append(run.status)
        return run

    async def get_run(self, thread_id: str, run_id: str) -> Run:
        run = self.store.get_run(thread_id, run_id)
        script = self.scripts.get(run_id)
        if script and not run.status.is_terminal:
            self._apply(run, script.popleft())
        return run

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]) -> Run:
        run = self.store.get_run(thread_id, run_id)
        self.submitted.append(list(outputs))
        run.required_action = []
        run.transition(RunStatus.queued)
        self.status_log.append(run.status)
        return run

    async def cancel_run(self, thread_id: str, run_id: str, reason: str) -> Run:
        run = self.store.get_run(thread_id, run_id)
        self.cancelled.append((run_id, reason))
        if not run.status.is_terminal:
            self.store.finish_run(run, RunStatus.failed, reason)
        return run

    async def _play(self, run: Run) -> AsyncIterator[StreamEvent]:
        script = self.streams.popleft()
        run.transition(RunStatus.in_progress)
        text = []
        for item in script:
            if isinstance(item, Settle):
                if item.status == RunStatus.completed and item.answer is None:
                    item.answer = "".join(text)
                self._apply(run, item)
                yield RunFinished(run=run)
                return
            if isinstance(item, TextDelta):
                text.append(item.text)
            yield item

    async def stream_run(
        self, thread_id: str, instructions: str, tools: Sequence[ToolDefinition]
    ) -> AsyncIterator[StreamEvent]:
        run = self.store.start_run(thread_id)
        self.runs_started.append((thread_id, instructions, list(tools)))
        async for event in self._play(run):
            yield event

    async def stream_tool_outputs(
        self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]
    ) -> AsyncIterator[StreamEvent]:
        run = self.store.get_run(thread_id, run_id)
        self.submitted.append(list(outputs))
        run.required_action = []
        run.transition(RunStatus.queued)
        async for event in self._play(run):
            yield event

    async def aclose(self) -> None:
        self.closed = True
