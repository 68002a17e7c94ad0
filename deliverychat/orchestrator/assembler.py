"""Tool-call assembler for streamed assistant output.

Streams deliver a tool call as a run of fragments: the first usually
carries the function name, later ones only carry slices of the JSON
argument text. The assembler keeps one buffer per call identity, appends
fragments in arrival order, and turns the buffers into complete calls when
the stream ends.

Call identity:
- a fragment with ``call_id`` or ``index`` addresses that call; a new
  identity opens a new call with an empty buffer.
- an anonymous fragment (no identity) with no name continues the current
  call; one whose name differs from the current call's name starts a new
  call and drops the previous anonymous buffer.
- a nameless fragment arriving before any call exists is attributed to
  the only registered tool. With several tools registered there is no
  safe guess and UnknownToolCallError is raised.

Runs that stop in ``requires_action`` deliver calls already complete;
``complete()`` converts those into the same AssembledCall shape.

One assembler instance belongs to one run and is never shared.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from deliverychat.errors import ToolArgumentsParseError, UnknownToolCallError
from deliverychat.orchestrator.models import AssembledCall, ToolCall, ToolCallDelta, new_id

logger = logging.getLogger(__name__)


@dataclass
class _PendingCall:
    key: str
    id: str
    name: str | None
    buffer: str = ""


class ToolCallAssembler:
    """Accumulates tool-call fragments for a single run.

    Args:
        tool_names: Names of the tools registered for this run.
    """

    def __init__(self, tool_names: Iterable[str]) -> None:
        self.tool_names = tuple(tool_names)
        self._calls: dict[str, _PendingCall] = {}
        self._current: _PendingCall | None = None
        self._anonymous_count = 0

    @property
    def current_function_name(self) -> str | None:
        return self._current.name if self._current else None

    @property
    def has_calls(self) -> bool:
        return bool(self._calls)

    def _default_name(self) -> str:
        if len(self.tool_names) == 1:
            return self.tool_names[0]
        raise UnknownToolCallError(
            "Tool call fragment has no function name and more than one tool is registered",
            {"registered_tools": list(self.tool_names)},
        )

    def _open(self, key: str, call_id: str | None, name: str | None) -> _PendingCall:
        call = _PendingCall(key=key, id=call_id or new_id("call"), name=name)
        self._calls[key] = call
        return call

    def _resolve(self, delta: ToolCallDelta) -> _PendingCall:
        name = delta.name.strip() if delta.name and delta.name.strip() else None

        if delta.call_id is not None or delta.index is not None:
            key = f"id:{delta.call_id}" if delta.call_id is not None else f"index:{delta.index}"
            call = self._calls.get(key)
            if call is None:
                call = self._open(key, delta.call_id, name or None)
                logger.debug("Tool call started: %s (%s)", call.name, key)
            if call.name is None:
                call.name = name or (
                    self._current.name if self._current and self._current.name else self._default_name()
                )
            return call

        # Anonymous fragment
        current = self._current
        if name is None:
            if current is not None:
                if current.name is None:
                    current.name = self._default_name()
                return current
            logger.debug("Nameless fragment before any call; using the registered tool")
            name = self._default_name()
        elif current is not None and name == current.name:
            return current

        if current is not None and current.key.startswith("anon:"):
            logger.debug("New call %s replaces unfinished %s call", name, current.name)
            self._calls.pop(current.key, None)
        self._anonymous_count += 1
        return self._open(f"anon:{self._anonymous_count}", None, name)

    def feed(self, delta: ToolCallDelta) -> None:
        """Apply one fragment. Must be called in arrival order."""
        call = self._resolve(delta)
        self._current = call
        if delta.arguments:
            call.buffer += delta.arguments

    def finish(self) -> list[AssembledCall]:
        """Close the stream and return every assembled call in start order."""
        assembled = [
            self._parse(call.id, call.name or "", call.buffer) for call in self._calls.values()
        ]
        self._calls.clear()
        self._current = None
        return assembled

    def complete(self, tool_calls: Iterable[ToolCall]) -> list[AssembledCall]:
        """Convert calls delivered whole (``requires_action``) to AssembledCall."""
        assembled = []
        for call in tool_calls:
            if isinstance(call.arguments, Mapping):
                assembled.append(self._check_name(AssembledCall(
                    id=call.id,
                    name=call.name,
                    raw_arguments=json.dumps(dict(call.arguments)),
                    arguments=dict(call.arguments),
                )))
            else:
                assembled.append(self._parse(call.id, call.name, call.arguments))
        return assembled

    def _check_name(self, call: AssembledCall) -> AssembledCall:
        if call.error is None and call.name not in self.tool_names:
            call.arguments = None
            call.error = UnknownToolCallError(
                f"Unknown tool '{call.name}'",
                {"registered_tools": list(self.tool_names)},
            )
        return call

    def _parse(self, call_id: str, name: str, raw: str) -> AssembledCall:
        call = AssembledCall(id=call_id, name=name, raw_arguments=raw)
        if not raw.strip():
            call.error = ToolArgumentsParseError("Tool call has no arguments", raw)
            return self._check_name(call)
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Could not parse arguments for %s: %s", name, e)
            call.error = ToolArgumentsParseError(f"Could not parse tool arguments: {e}", raw)
            return self._check_name(call)
        if not isinstance(parsed, dict):
            call.error = ToolArgumentsParseError(
                f"Tool arguments must be a JSON object, got {type(parsed).__name__}", raw
            )
            return self._check_name(call)
        call.arguments = parsed
        return self._check_name(call)
