"""Tests for the agent loop controller, driven by a scripted adapter."""

import json
from datetime import datetime
from typing import List
from zoneinfo import ZoneInfo

import httpx
import pytest

from tradebench.agent.adapters import (
    ChatCompletionsAdapter,
    ProviderError,
)
from tradebench.agent.agent_loop import AgentLoop
from tradebench.agent.prompt import NUDGE_MESSAGE
from tradebench.agent.tool_bridge import ToolBridge
from tradebench.agent.transcript import Transcript
from tradebench.core.schema import (
    NormalizedResponse,
    Role,
    StopReason,
    ToolCall,
)
from tradebench.scheduling.window_gate import (
    ScheduleConfig,
    WindowGate,
)
from tradebench.tools import ToolRegistry
from tests.helpers.fakes import (
    FixedClock,
    ScriptedAdapter,
)

IN_WINDOW = datetime(2024, 3, 12, 8, 1, tzinfo=ZoneInfo("America/New_York"))


def _text(text: str) -> NormalizedResponse:
    return NormalizedResponse(text=text)


def _calls(*calls: ToolCall) -> NormalizedResponse:
    return NormalizedResponse(tool_calls=list(calls))


@pytest.fixture
def bridge() -> ToolBridge:
    registry = ToolRegistry()

    @registry.tool("checkPrice")
    def _check_price(symbol: str) -> dict:
        return {"symbol": symbol, "price": 190.0}

    @registry.tool("addScratchpad")
    def _note(message: str) -> dict:
        return {"message": message}

    gate = WindowGate(ScheduleConfig(windows=["08:00"]), clock=FixedClock(IN_WINDOW))
    return ToolBridge(registry, gate)


def _loop(adapter: ScriptedAdapter, bridge: ToolBridge, **kwargs) -> AgentLoop:
    kwargs.setdefault("awareness", False)
    return AgentLoop(adapter, bridge, transcript=Transcript(sink=None), **kwargs)


def test_tool_calls_are_paired_in_order(bridge: ToolBridge) -> None:
    """Each call gets one assistant message followed by its tool result, in call order."""

    first = ToolCall(id="a", name="checkPrice", arguments={"symbol": "AAPL"})
    second = ToolCall(id="b", name="addScratchpad", arguments={"message": "watching AAPL"})
    adapter = ScriptedAdapter([_calls(first, second), _text("done")])

    result = _loop(adapter, bridge).run()

    added = result.messages[2:]
    assert [(m.role, m.tool_call_id) for m in added] == [
        (Role.ASSISTANT, None),
        (Role.TOOL, "a"),
        (Role.ASSISTANT, None),
        (Role.TOOL, "b"),
    ]
    assert [m.tool_calls[0].id for m in added if m.role == Role.ASSISTANT] == ["a", "b"]
    assert json.loads(added[1].content) == {"symbol": "AAPL", "price": 190.0}
    # the second model step saw both pairs
    assert len(adapter.calls[1]) == 6


def test_text_after_meaningful_action_completes(bridge: ToolBridge) -> None:
    """A text-only reply after a note ends the session as completed."""

    note = ToolCall(name="addScratchpad", arguments={"message": "no trades today"})
    adapter = ScriptedAdapter([_calls(note), _text("All done.")])

    result = _loop(adapter, bridge).run()

    assert result.stop_reason == StopReason.COMPLETED
    assert result.model_calls == 2
    assert result.steps == 2


def test_text_only_exhausts_after_nudges(bridge: ToolBridge) -> None:
    """With max_nudges=2 a text-only model is called exactly three times."""

    adapter = ScriptedAdapter([_text("thinking...")] * 5)

    result = _loop(adapter, bridge, max_nudges=2).run()

    assert result.stop_reason == StopReason.EXHAUSTED
    assert result.model_calls == 3
    nudges = [m for m in result.messages if m.role == Role.USER and m.content == NUDGE_MESSAGE]
    assert len(nudges) == 2


def test_read_only_tools_are_not_meaningful(bridge: ToolBridge) -> None:
    """Price checks alone do not let a text reply complete the session."""

    check = ToolCall(name="checkPrice", arguments={"symbol": "AAPL"})
    adapter = ScriptedAdapter([_calls(check), _text("hmm"), _text("still hmm")])

    result = _loop(adapter, bridge, max_nudges=1).run()

    assert result.stop_reason == StopReason.EXHAUSTED
    assert result.model_calls == 3


def test_provider_error_stops_immediately(bridge: ToolBridge) -> None:
    """A provider failure ends the session without retrying the step."""

    adapter = ScriptedAdapter([ProviderError(500, "upstream down"), _text("never sent")])

    result = _loop(adapter, bridge).run()

    assert result.stop_reason == StopReason.PROVIDER_ERROR
    assert result.model_calls == 1
    assert "upstream down" in result.error


def test_unreadable_reply_stops_as_provider_error(bridge: ToolBridge) -> None:
    """A vendor reply the adapter cannot read ends the session instead of crashing it."""

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": ["x"]}))
    adapter = ChatCompletionsAdapter(model="m", api_key="k", transport=transport)

    result = AgentLoop(adapter, bridge, transcript=Transcript(sink=None), awareness=False).run()

    assert result.stop_reason == StopReason.PROVIDER_ERROR
    assert "unexpected reply shape" in result.error


def test_empty_response_stops(bridge: ToolBridge) -> None:
    """A reply with neither text nor tool calls ends the session."""

    adapter = ScriptedAdapter([_text("   ")])

    result = _loop(adapter, bridge).run()

    assert result.stop_reason == StopReason.EMPTY_RESPONSE
    assert result.model_calls == 1


def test_max_steps_bounds_the_session(bridge: ToolBridge) -> None:
    """A model that keeps calling tools is cut off at max_steps."""

    check = ToolCall(name="checkPrice", arguments={"symbol": "AAPL"})
    adapter = ScriptedAdapter([_calls(check)] * 10)

    result = _loop(adapter, bridge, max_steps=3).run()

    assert result.stop_reason == StopReason.MAX_STEPS
    assert result.model_calls == 3
    assert result.steps == 3


def test_duplicate_call_ids_are_replaced(bridge: ToolBridge) -> None:
    """Repeated call ids within one reply are re-issued so results pair unambiguously."""

    calls = [
        ToolCall(id="dup", name="checkPrice", arguments={"symbol": "AAPL"}),
        ToolCall(id="dup", name="checkPrice", arguments={"symbol": "SPY"}),
    ]
    adapter = ScriptedAdapter([_calls(*calls), _text("ok")])

    result = _loop(adapter, bridge, max_nudges=0).run()

    tool_ids: List[str] = [m.tool_call_id for m in result.messages if m.role == Role.TOOL]
    assert len(tool_ids) == 2
    assert tool_ids[0] == "dup"
    assert tool_ids[1] != "dup"


def test_tool_errors_are_reported_to_the_model(bridge: ToolBridge) -> None:
    """Unknown tools produce an error payload and the session continues."""

    bogus = ToolCall(name="launchRocket", arguments={})
    adapter = ScriptedAdapter([_calls(bogus), _text("oh well")])
    transcript = Transcript(sink=None)

    result = AgentLoop(
        adapter, bridge, transcript=transcript, awareness=False, max_nudges=0
    ).run()

    tool_message = next(m for m in result.messages if m.role == Role.TOOL)
    assert "launchRocket" in json.loads(tool_message.content)["error"]
    assert any(line.startswith("[error] launchRocket") for line in transcript.lines)


def test_awareness_context_is_added(bridge: ToolBridge) -> None:
    """Window status from getWindowStatus is summarized before the task instruction."""

    bridge.registry.register(
        "getWindowStatus",
        lambda: bridge.gate.status().model_dump(mode="json"),
        parameters={"type": "object", "properties": {}},
    )
    loop = _loop(ScriptedAdapter([]), bridge, awareness=True)

    messages = loop.initial_messages()

    assert messages[0].role == Role.SYSTEM
    assert messages[1].content.startswith("Session context: Active window: w1")
    assert len(messages) == 3


def test_invalid_limits_are_rejected(bridge: ToolBridge) -> None:
    """max_steps below one or negative max_nudges are configuration errors."""

    with pytest.raises(ValueError):
        _loop(ScriptedAdapter([]), bridge, max_steps=0)
    with pytest.raises(ValueError):
        _loop(ScriptedAdapter([]), bridge, max_nudges=-1)
