"""Tests for reassembling streamed tool calls."""

import pytest

from deliverychat.errors import ToolArgumentsParseError, UnknownToolCallError
from deliverychat.orchestrator.assembler import ToolCallAssembler
from deliverychat.orchestrator.models import ToolCall, ToolCallDelta

QUERY = "query_database"


def _feed(assembler: ToolCallAssembler, *deltas: ToolCallDelta) -> None:
    for delta in deltas:
        assembler.feed(delta)


class TestAnonymousDeltas:
    """Deltas without call identity (name-based continuation rules)."""

    def test_nameless_continuation_joins_current_call(self):
        assembler = ToolCallAssembler([QUERY])
        _feed(
            assembler,
            ToolCallDelta(name=QUERY, arguments='{"sql":'),
            ToolCallDelta(name=None, arguments='"SELECT 1"}'),
        )
        calls = assembler.finish()

        assert len(calls) == 1
        assert calls[0].name == QUERY
        assert calls[0].raw_arguments == '{"sql":"SELECT 1"}'
        assert calls[0].ok
        assert calls[0].arguments == {"sql": "SELECT 1"}

    def test_new_name_discards_previous_buffer(self):
        assembler = ToolCallAssembler([QUERY, "describe_table"])
        _feed(
            assembler,
            ToolCallDelta(name=QUERY, arguments='{"query": "SELECT * FROM deli'),
            ToolCallDelta(name="describe_table", arguments='{"table": '),
            ToolCallDelta(arguments='"deliveries"}'),
        )
        calls = assembler.finish()

        assert len(calls) == 1
        assert calls[0].name == "describe_table"
        assert calls[0].raw_arguments == '{"table": "deliveries"}'
        assert calls[0].arguments == {"table": "deliveries"}

    def test_same_name_repeated_continues_call(self):
        assembler = ToolCallAssembler([QUERY])
        _feed(
            assembler,
            ToolCallDelta(name=QUERY, arguments='{"query": '),
            ToolCallDelta(name=QUERY, arguments='"SELECT 1", "parameters": {}}'),
        )
        calls = assembler.finish()
        assert len(calls) == 1
        assert calls[0].arguments == {"query": "SELECT 1", "parameters": {}}

    def test_nameless_first_delta_defaults_to_sole_tool(self):
        assembler = ToolCallAssembler([QUERY])
        assembler.feed(ToolCallDelta(arguments='{"query": "SELECT 1"}'))
        assert assembler.current_function_name == QUERY
        assert assembler.finish()[0].name == QUERY

    def test_nameless_first_delta_with_several_tools_fails(self):
        assembler = ToolCallAssembler([QUERY, "describe_table"])
        with pytest.raises(UnknownToolCallError):
            assembler.feed(ToolCallDelta(arguments='{"query": "SELECT 1"}'))


class TestIdentifiedDeltas:
    """Deltas carrying call ids or stream indexes."""

    def test_id_and_index_together_address_one_call(self):
        assembler = ToolCallAssembler([QUERY])
        _feed(
            assembler,
            ToolCallDelta(name=QUERY, call_id="toolu_1", index=1),
            ToolCallDelta(arguments='{"query": ', call_id="toolu_1", index=1),
            ToolCallDelta(name=QUERY, call_id="toolu_2", index=2),
            ToolCallDelta(arguments='"SELECT 2"}', call_id="toolu_2", index=2),
            ToolCallDelta(arguments='"SELECT 1"}', call_id="toolu_1", index=1),
        )
        calls = assembler.finish()

        assert [call.id for call in calls] == ["toolu_1", "toolu_2"]
        assert calls[0].arguments == {"query": "SELECT 1"}
        assert calls[1].arguments == {"query": "SELECT 2"}

    def test_index_only_fragments_interleave(self):
        assembler = ToolCallAssembler([QUERY])
        _feed(
            assembler,
            ToolCallDelta(name=QUERY, index=0, arguments='{"query": '),
            ToolCallDelta(name=QUERY, index=1, arguments='{"query": '),
            ToolCallDelta(index=1, arguments='"SELECT 2"}'),
            ToolCallDelta(index=0, arguments='"SELECT 1"}'),
        )
        calls = assembler.finish()
        assert [call.arguments for call in calls] == [{"query": "SELECT 1"}, {"query": "SELECT 2"}]

    def test_nameless_identified_call_inherits_current_name(self):
        assembler = ToolCallAssembler([QUERY])
        _feed(
            assembler,
            ToolCallDelta(name=QUERY, index=0, arguments='{"query": "SELECT 1"}'),
            ToolCallDelta(index=1, arguments='{"query": "SELECT 2"}'),
        )
        calls = assembler.finish()
        assert [call.name for call in calls] == [QUERY, QUERY]


class TestCompletion:
    """Argument parsing at the end of the stream."""

    def test_malformed_json_is_attached_not_raised(self):
        assembler = ToolCallAssembler([QUERY])
        assembler.feed(ToolCallDelta(name=QUERY, arguments='{"query": "SELECT'))
        call = assembler.finish()[0]

        assert not call.ok
        assert isinstance(call.error, ToolArgumentsParseError)
        assert call.error.raw_arguments == '{"query": "SELECT'

    def test_empty_arguments(self):
        assembler = ToolCallAssembler([QUERY])
        assembler.feed(ToolCallDelta(name=QUERY))
        call = assembler.finish()[0]
        assert isinstance(call.error, ToolArgumentsParseError)
        assert "no arguments" in call.error.message

    def test_non_object_arguments(self):
        assembler = ToolCallAssembler([QUERY])
        assembler.feed(ToolCallDelta(name=QUERY, arguments='["SELECT 1"]'))
        call = assembler.finish()[0]
        assert isinstance(call.error, ToolArgumentsParseError)

    def test_unregistered_tool(self):
        assembler = ToolCallAssembler([QUERY])
        assembler.feed(ToolCallDelta(name="drop_everything", arguments="{}"))
        call = assembler.finish()[0]
        assert isinstance(call.error, UnknownToolCallError)
        assert call.arguments is None

    def test_finish_resets_state(self):
        assembler = ToolCallAssembler([QUERY])
        assembler.feed(ToolCallDelta(name=QUERY, arguments="{}"))
        assembler.finish()
        assert not assembler.has_calls
        assert assembler.current_function_name is None
        assert assembler.finish() == []


class TestCompleteCalls:
    """Calls delivered whole by a requires_action run."""

    def test_string_and_mapping_arguments_produce_same_shape(self):
        assembler = ToolCallAssembler([QUERY])
        calls = assembler.complete([
            ToolCall(id="call_1", name=QUERY, arguments='{"query": "SELECT 1"}'),
            ToolCall(id="call_2", name=QUERY, arguments={"query": "SELECT 1"}),
        ])
        assert [call.id for call in calls] == ["call_1", "call_2"]
        assert calls[0].arguments == calls[1].arguments == {"query": "SELECT 1"}

    def test_streamed_and_polled_calls_match(self):
        streamed = ToolCallAssembler([QUERY])
        _feed(
            streamed,
            ToolCallDelta(name=QUERY, call_id="call_1", arguments='{"query": '),
            ToolCallDelta(call_id="call_1", arguments='"SELECT 1"}'),
        )
        polled = ToolCallAssembler([QUERY]).complete(
            [ToolCall(id="call_1", name=QUERY, arguments='{"query": "SELECT 1"}')]
        )
        assert streamed.finish() == polled

    def test_bad_payload_is_attached(self):
        calls = ToolCallAssembler([QUERY]).complete([ToolCall(id="c", name=QUERY, arguments="not json")])
        assert isinstance(calls[0].error, ToolArgumentsParseError)
