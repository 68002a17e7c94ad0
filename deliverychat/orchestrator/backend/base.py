"""Contract for the hosted assistant that owns threads and runs.

The orchestrator only talks to this interface. A backend must support both
ingestion modes: runs that are polled until they settle, and runs whose
output is streamed as TextDelta / ToolCallDelta events ending in one
RunFinished event.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from deliverychat.orchestrator.models import Message, Run, StreamEvent, Thread, ToolOutput
from deliverychat.orchestrator.tools import ToolDefinition


class AssistantBackend(ABC):
    """Threads, messages and runs of a hosted assistant."""

    @abstractmethod
    async def create_thread(self) -> Thread:
        """Create an empty conversation."""

    @abstractmethod
    async def get_thread(self, thread_id: str) -> Thread:
        """Return a thread; raises ThreadNotFoundError if unknown."""

    @abstractmethod
    async def add_message(self, thread_id: str, text: str) -> Message:
        """Append a user turn; raises ThreadBusyError while a run is active."""

    @abstractmethod
    async def create_run(
        self, thread_id: str, instructions: str, tools: Sequence[ToolDefinition]
    ) -> Run:
        """Start a run processed in the background; poll with get_run()."""

    @abstractmethod
    async def get_run(self, thread_id: str, run_id: str) -> Run:
        """Current state of a run."""

    @abstractmethod
    async def submit_tool_outputs(
        self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]
    ) -> Run:
        """Hand tool results to a ``requires_action`` run and resume it."""

    @abstractmethod
    async def cancel_run(self, thread_id: str, run_id: str, reason: str) -> Run:
        """Fail a run that will not be resumed and release its thread.

        No-op for runs that are already terminal.
        """

    @abstractmethod
    def stream_run(
        self, thread_id: str, instructions: str, tools: Sequence[ToolDefinition]
    ) -> AsyncIterator[StreamEvent]:
        """Start a run and stream its output."""

    @abstractmethod
    def stream_tool_outputs(
        self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]
    ) -> AsyncIterator[StreamEvent]:
        """Submit tool results and stream the resumed run."""

    async def aclose(self) -> None:
        """Release network resources."""
