"""Integration tests for the Dispatcher query loop.

Tests cover the full model/tool cycle against the in-process weather
server: answer assembly, transcript shape, tool failures folded into the
transcript, model failures, step limits, busy rejection and connection loss.

All tests use scripted model clients -- no real API calls.
"""

from __future__ import annotations

import threading
import time

import pytest

from tests.conftest import ScriptedModel, text_reply, tool_reply
from toolwire.client.dispatcher import (
    Dispatcher,
    DispatcherConfig,
    DispatcherState,
    StepResult,
)
from toolwire.client.session import ClientSession
from toolwire.exceptions import (
    ConnectionClosed,
    DispatcherBusyError,
    ModelError,
    TransportError,
)
from toolwire.llm.protocols import ModelReply, TextSegment, ToolUse
from toolwire.server.weather import WEATHER_TOOL
from toolwire.transport.memory import MemoryTransport


# ---------------------------------------------------------------------------
# Weather scenarios
# ---------------------------------------------------------------------------


class TestWeatherScenario:
    def test_tokyo_answer_joins_text_around_tool_call(self, client_session):
        model = ScriptedModel(
            [
                tool_reply(WEATHER_TOOL, {"City": "Tokyo"}, before="before"),
                text_reply("after"),
            ]
        )
        dispatcher = Dispatcher(model, client_session)

        result = dispatcher.run("What's the weather in Tokyo?")

        assert result.answer == "before\nafter"
        assert result.model_calls == 2
        assert [s.tool_use.name for s in result.steps] == [WEATHER_TOOL]
        assert result.steps[0].result.text == "The weather in Tokyo is 20 degrees Celsius"
        assert dispatcher.state == DispatcherState.DONE

    def test_transcript_carries_tool_result_into_second_call(self, client_session):
        model = ScriptedModel(
            [
                tool_reply(WEATHER_TOOL, {"City": "Tokyo"}, call_id="toolu_9"),
                text_reply("It is 20 degrees."),
            ]
        )
        Dispatcher(model, client_session).run("What's the weather in Tokyo?")

        first, second = model.calls
        assert [t.role for t in first["transcript"]] == ["user"]
        assert [t.role for t in second["transcript"]] == ["user", "assistant", "tool_result"]

        tool_result = second["transcript"][2].content
        assert tool_result["tool_use_id"] == "toolu_9"
        assert tool_result["tool_name"] == WEATHER_TOOL
        assert tool_result["content"] == "The weather in Tokyo is 20 degrees Celsius"
        assert tool_result["is_error"] is False

        assert [t.name for t in first["tools"]] == [WEATHER_TOOL]

    def test_paris_round_trip(self, client_session):
        model = ScriptedModel(
            [tool_reply(WEATHER_TOOL, {"City": "Paris"}), text_reply("Done.")]
        )
        result = Dispatcher(model, client_session).run("Paris?")

        step = result.steps[0]
        assert "Paris" in step.result.text
        assert step.result.is_error is False
        assert step.success is True

    def test_plain_answer_without_tools(self, client_session):
        model = ScriptedModel([text_reply("Hello!", "", "How can I help?")])
        assert Dispatcher(model, client_session).process_query("hi") == "Hello!\nHow can I help?"

    def test_each_query_starts_a_fresh_transcript(self, client_session):
        model = ScriptedModel([text_reply("one"), text_reply("two")])
        dispatcher = Dispatcher(model, client_session)
        dispatcher.run("first")
        dispatcher.run("second")

        assert [t.content for t in model.calls[1]["transcript"]] == ["second"]

    def test_multiple_tool_uses_in_one_reply_run_in_order(self, client_session):
        reply = ModelReply(
            segments=[
                ToolUse(id="a", name=WEATHER_TOOL, arguments={"City": "Oslo"}),
                ToolUse(id="b", name=WEATHER_TOOL, arguments={"City": "Lima"}),
            ]
        )
        model = ScriptedModel([reply, text_reply("Both fine.")])
        result = Dispatcher(model, client_session).run("Oslo and Lima?")

        assert [s.tool_use.id for s in result.steps] == ["a", "b"]
        assert [t.role for t in result.transcript] == [
            "user",
            "assistant",
            "tool_result",
            "tool_result",
        ]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_tool_error_is_folded_into_transcript(self, client_session):
        model = ScriptedModel(
            [tool_reply(WEATHER_TOOL, {}), text_reply("Which city?")]
        )
        result = Dispatcher(model, client_session).run("weather?")

        assert result.answer == "Which city?"
        assert result.steps[0].success is False
        tool_result = model.calls[1]["transcript"][2].content
        assert tool_result["is_error"] is True
        assert "City" in tool_result["content"]

    def test_unknown_tool_is_folded_into_transcript(self, client_session):
        model = ScriptedModel([tool_reply("no-such-tool", {}), text_reply("Sorry.")])
        result = Dispatcher(model, client_session).run("do it")

        assert result.answer == "Sorry."
        tool_result = model.calls[1]["transcript"][2].content
        assert tool_result["is_error"] is True
        assert "Unknown tool: no-such-tool" in tool_result["content"]
        assert result.steps[0].result.correlation_id != ""

    def test_model_error_aborts_query(self, client_session):
        model = ScriptedModel([ModelError("upstream down")])
        dispatcher = Dispatcher(model, client_session)

        with pytest.raises(ModelError, match="upstream down"):
            dispatcher.run("hi")
        assert dispatcher.state == DispatcherState.IDLE

    def test_unexpected_model_exception_becomes_model_error(self, client_session):
        model = ScriptedModel([KeyError("content")])
        with pytest.raises(ModelError, match="KeyError"):
            Dispatcher(model, client_session).run("hi")

    def test_dispatcher_usable_after_model_error(self, client_session):
        model = ScriptedModel([ModelError("once"), text_reply("recovered")])
        dispatcher = Dispatcher(model, client_session)
        with pytest.raises(ModelError):
            dispatcher.run("hi")
        assert dispatcher.process_query("hi again") == "recovered"

    def test_close_during_tool_call_raises_connection_closed(self, weather_server):
        started = threading.Event()
        release = threading.Event()

        def slow(arguments):
            started.set()
            release.wait(5)
            return "late"

        weather_server.add_tool("slow", slow)
        session = ClientSession.connect(MemoryTransport(weather_server), "memory://")
        model = ScriptedModel([tool_reply("slow", {}), text_reply("unreachable")])
        dispatcher = Dispatcher(model, session)
        errors = []

        def run():
            try:
                dispatcher.run("go slow")
            except ConnectionClosed as exc:
                errors.append(exc)

        thread = threading.Thread(target=run)
        thread.start()
        assert started.wait(5)
        session.close()
        thread.join(timeout=5)
        release.set()

        assert not thread.is_alive()
        assert len(errors) == 1
        assert len(model.calls) == 1
        assert dispatcher.state == DispatcherState.IDLE

    def test_query_after_connection_drop_raises_transport_error(self, weather_server):
        conn = MemoryTransport(weather_server).connect("memory://")
        session = ClientSession(conn)
        session.start()
        session.initialize()
        conn.close()
        deadline = time.monotonic() + 5
        while not session.closed and time.monotonic() < deadline:
            time.sleep(0.01)
        assert session.closed is True

        model = ScriptedModel([text_reply("I have no weather data.")])
        dispatcher = Dispatcher(model, session)

        with pytest.raises(TransportError):
            dispatcher.process_query("What's the weather in Tokyo?")
        assert model.calls == []
        assert dispatcher.tools == session.tools
        assert dispatcher.state == DispatcherState.IDLE


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfig:
    def test_max_steps_truncates(self, client_session):
        model = ScriptedModel([tool_reply(WEATHER_TOOL, {"City": "Tokyo"}, before="again")])
        dispatcher = Dispatcher(model, client_session, DispatcherConfig(max_steps=3))

        result = dispatcher.run("loop forever")

        assert result.truncated is True
        assert result.model_calls == 3
        assert len(result.steps) == 3
        assert result.answer == "again\nagain\nagain"

    def test_announce_tool_calls(self, client_session):
        model = ScriptedModel(
            [tool_reply(WEATHER_TOOL, {"City": "Tokyo"}), text_reply("Sunny-ish.")]
        )
        config = DispatcherConfig(announce_tool_calls=True)
        answer = Dispatcher(model, client_session, config).process_query("Tokyo?")

        assert answer == "[Calling tool weather-tool with args {'City': 'Tokyo'}]\nSunny-ish."

    def test_on_step_callback(self, client_session):
        seen: list[StepResult] = []
        model = ScriptedModel(
            [tool_reply(WEATHER_TOOL, {"City": "Tokyo"}), text_reply("ok")]
        )
        Dispatcher(model, client_session, DispatcherConfig(on_step=seen.append)).run("Tokyo?")

        assert [s.step for s in seen] == [1]
        assert seen[0].tool_use.arguments == {"City": "Tokyo"}

    def test_failing_callback_does_not_break_query(self, client_session):
        def explode(step):
            raise RuntimeError("callback bug")

        model = ScriptedModel(
            [tool_reply(WEATHER_TOOL, {"City": "Tokyo"}), text_reply("ok")]
        )
        answer = Dispatcher(model, client_session, DispatcherConfig(on_step=explode)).process_query("x")
        assert answer == "ok"


# ---------------------------------------------------------------------------
# Basic chat mode, concurrency, lifecycle
# ---------------------------------------------------------------------------


def test_basic_chat_mode_sends_no_tools():
    model = ScriptedModel([text_reply("Just text.")])
    dispatcher = Dispatcher(model)

    assert dispatcher.process_query("hi") == "Just text."
    assert model.calls[0]["tools"] == []


def test_overlapping_query_is_rejected(client_session):
    entered = threading.Event()
    release = threading.Event()

    class BlockingModel(ScriptedModel):
        def send(self, transcript, tools):
            entered.set()
            release.wait(5)
            return super().send(transcript, tools)

    dispatcher = Dispatcher(BlockingModel([text_reply("first")]), client_session)
    results = []
    thread = threading.Thread(target=lambda: results.append(dispatcher.process_query("one")))
    thread.start()
    assert entered.wait(5)

    with pytest.raises(DispatcherBusyError):
        dispatcher.run("two")

    release.set()
    thread.join(timeout=5)
    assert results == ["first"]


def test_close_closes_model(client_session):
    model = ScriptedModel([text_reply("bye")])
    with Dispatcher(model, client_session):
        pass
    assert model.closed is True


def test_text_segments_keep_reply_order(client_session):
    reply = ModelReply(
        segments=[
            TextSegment(text="Checking."),
            ToolUse(id="t1", name=WEATHER_TOOL, arguments={"City": "Kyiv"}),
            TextSegment(text="One moment."),
        ]
    )
    model = ScriptedModel([reply, text_reply("20 degrees.")])
    answer = Dispatcher(model, client_session).process_query("Kyiv?")
    assert answer == "Checking.\nOne moment.\n20 degrees."
