"""Assistant backend on the Anthropic Messages API.

The Messages API is stateless, so threads and runs are kept in a
ThreadStore and replayed to the model on every request:

- a run is one or more ``messages.create`` calls. A response that stops
  with ``tool_use`` leaves the run in ``requires_action`` with its tool
  calls; submitting outputs appends a ``tool_result`` turn and queues the
  run again.
- polled runs execute in a background task; streamed runs translate the
  raw stream events (``content_block_start`` / ``content_block_delta``)
  into TextDelta and ToolCallDelta and finish with RunFinished.

Tool-use block ids become tool call ids, so outputs route back to the
right ``tool_use`` block.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from deliverychat.config import DEFAULT_MODEL
from deliverychat.errors import RunNotFoundError
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
    ToolCallDelta,
    ToolOutput,
)
from deliverychat.orchestrator.tools import ToolDefinition
from deliverychat.services.thread_store import ThreadStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _RunConfig:
    instructions: str
    tools: tuple[ToolDefinition, ...]


def _block_to_dict(block: Any) -> dict[str, Any] | None:
    """Keep the fields needed to replay a content block; drop other block types."""
    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return None


class AnthropicAssistantBackend(AssistantBackend):
    """Threads and runs backed by Claude.

    Args:
        client: Anthropic async client; created from the environment if None.
        model: Claude model id.
        max_tokens: Output token cap per request.
        store: Thread store; a private one is created if None.
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2048,
        store: ThreadStore | None = None,
    ) -> None:
        self._client = client or AsyncAnthropic()
        self.model = model
        self.max_tokens = max_tokens
        self.store = store or ThreadStore()
        self._configs: dict[str, _RunConfig] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # --- threads ---------------------------------------------------------

    async def create_thread(self) -> Thread:
        return self.store.create_thread()

    async def get_thread(self, thread_id: str) -> Thread:
        return self.store.get_thread(thread_id)

    async def add_message(self, thread_id: str, text: str) -> Message:
        return self.store.add_user_message(thread_id, text)

    # --- request building -----------------------------------------------

    def _request_params(self, thread: Thread, config: _RunConfig) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": config.instructions,
            "tools": [
                {"name": t.name, "description": t.description, "input_schema": t.input_schema}
                for t in config.tools
            ],
            "messages": [{"role": m.role, "content": m.content} for m in thread.messages],
        }

    def _settle(self, thread: Thread, run: Run, content: list[dict[str, Any]], stop_reason: str | None) -> None:
        """Record the assistant turn and move the run to its next status."""
        thread.messages.append(Message(role="assistant", content=content))
        tool_uses = [block for block in content if block["type"] == "tool_use"]
        if stop_reason == "tool_use" and tool_uses:
            run.required_action = [
                ToolCall(id=block["id"], name=block["name"], arguments=json.dumps(block["input"]))
                for block in tool_uses
            ]
            run.transition(RunStatus.requires_action)
            logger.info("Run %s requires action (%d tool call(s))", run.id, len(tool_uses))
        else:
            self.store.finish_run(run, RunStatus.completed)
            self._configs.pop(run.id, None)

    def _fail(self, run: Run, error: str) -> None:
        self.store.finish_run(run, RunStatus.failed, error)
        self._configs.pop(run.id, None)

    def _append_tool_results(self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]) -> tuple[Thread, Run]:
        thread = self.store.get_thread(thread_id)
        run = self.store.get_run(thread_id, run_id)
        if run.status != RunStatus.requires_action:
            raise RunNotFoundError(
                f"Run '{run_id}' is {run.status.value}, not waiting for tool outputs",
                {"run_id": run_id, "status": run.status.value},
            )
        by_id = {output.tool_call_id: output for output in outputs}
        blocks = []
        for call in run.required_action:
            output = by_id.get(call.id) or ToolOutput(
                tool_call_id=call.id, output="No output was submitted for this call", is_error=True
            )
            blocks.append({
                "type": "tool_result",
                "tool_use_id": call.id,
                "content": output.output,
                "is_error": output.is_error,
            })
        thread.messages.append(Message(role="user", content=blocks))
        run.required_action = []
        run.transition(RunStatus.queued)
        return thread, run

    # --- polled runs -----------------------------------------------------

    def _schedule(self, thread: Thread, run: Run) -> None:
        task = asyncio.create_task(self._execute(thread, run))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, thread: Thread, run: Run) -> None:
        config = self._configs[run.id]
        run.transition(RunStatus.in_progress)
        try:
            response = await self._client.messages.create(**self._request_params(thread, config))
        except anthropic.APIError as e:
            logger.error("Run %s failed: %s", run.id, e)
            self._fail(run, str(e))
            return
        except Exception as e:
            logger.exception("Run %s failed unexpectedly", run.id)
            self._fail(run, str(e))
            return
        content = [b for b in (_block_to_dict(block) for block in response.content) if b]
        self._settle(thread, run, content, response.stop_reason)

    async def create_run(
        self, thread_id: str, instructions: str, tools: Sequence[ToolDefinition]
    ) -> Run:
        thread = self.store.get_thread(thread_id)
        run = self.store.start_run(thread_id)
        self._configs[run.id] = _RunConfig(instructions, tuple(tools))
        self._schedule(thread, run)
        return run

    async def get_run(self, thread_id: str, run_id: str) -> Run:
        return self.store.get_run(thread_id, run_id)

    async def submit_tool_outputs(
        self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]
    ) -> Run:
        thread, run = self._append_tool_results(thread_id, run_id, outputs)
        self._schedule(thread, run)
        return run

    async def cancel_run(self, thread_id: str, run_id: str, reason: str) -> Run:
        run = self.store.get_run(thread_id, run_id)
        if not run.status.is_terminal:
            logger.info("Cancelling run %s (%s): %s", run.id, run.status.value, reason)
            if run.status == RunStatus.requires_action:
                # Pending tool_use blocks must be answered before the next turn.
                self._append_tool_results(thread_id, run_id, [
                    ToolOutput(tool_call_id=call.id, output=reason, is_error=True) for call in run.required_action
                ])
            self._fail(run, reason)
        return run

    # --- streamed runs ---------------------------------------------------

    async def _stream(self, thread: Thread, run: Run) -> AsyncIterator[StreamEvent]:
        config = self._configs[run.id]
        run.transition(RunStatus.in_progress)
        tool_ids: dict[int, str] = {}
        try:
            async with self._client.messages.stream(**self._request_params(thread, config)) as stream:
                async for event in stream:
                    if event.type == "content_block_start" and event.content_block.type == "tool_use":
                        tool_ids[event.index] = event.content_block.id
                        yield ToolCallDelta(
                            name=event.content_block.name,
                            call_id=event.content_block.id,
                            index=event.index,
                        )
                    elif event.type == "content_block_delta":
                        if event.delta.type == "text_delta":
                            yield TextDelta(text=event.delta.text)
                        elif event.delta.type == "input_json_delta":
                            yield ToolCallDelta(
                                arguments=event.delta.partial_json,
                                call_id=tool_ids.get(event.index),
                                index=event.index,
                            )
                message = await stream.get_final_message()
        except anthropic.APIError as e:
            logger.error("Streamed run %s failed: %s", run.id, e)
            self._fail(run, str(e))
            yield RunFinished(run=run)
            return
        content = [b for b in (_block_to_dict(block) for block in message.content) if b]
        self._settle(thread, run, content, message.stop_reason)
        yield RunFinished(run=run)

    async def stream_run(
        self, thread_id: str, instructions: str, tools: Sequence[ToolDefinition]
    ) -> AsyncIterator[StreamEvent]:
        thread = self.store.get_thread(thread_id)
        run = self.store.start_run(thread_id)
        self._configs[run.id] = _RunConfig(instructions, tuple(tools))
        async with aclosing(self._guarded_stream(thread, run)) as events:
            async for event in events:
                yield event

    async def stream_tool_outputs(
        self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]
    ) -> AsyncIterator[StreamEvent]:
        thread, run = self._append_tool_results(thread_id, run_id, outputs)
        async with aclosing(self._guarded_stream(thread, run)) as events:
            async for event in events:
                yield event

    async def _guarded_stream(self, thread: Thread, run: Run) -> AsyncIterator[StreamEvent]:
        """Stream a run; a consumer that stops early fails the run and frees the thread."""
        try:
            async with aclosing(self._stream(thread, run)) as events:
                async for event in events:
                    yield event
        finally:
            if not run.status.is_terminal and run.status != RunStatus.requires_action:
                logger.warning("Streamed run %s abandoned by its consumer", run.id)
                self._fail(run, "Stream closed before the run finished")

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._client.close()
