"""End-to-end session wiring: settings, catalogue, bridge and loop with a scripted model."""

from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from tradebench.agent.session import (
    WindowRunner,
    build_agent,
)
from tradebench.agent.transcript import Transcript
from tradebench.config import Settings
from tradebench.core.schema import (
    NormalizedResponse,
    Role,
    StopReason,
    ToolCall,
)
from tradebench.scheduling.window_gate import (
    Window,
    WindowGate,
)
from tradebench.tools.web_search import WebSearch
from tests.helpers.fakes import (
    FakeBrokerage,
    FixedClock,
    ScriptedAdapter,
)

NY = ZoneInfo("America/New_York")


def _script() -> list:
    buy = ToolCall(name="buyShares", arguments={"symbol": "AAPL", "quantity": 3, "note": "test"})
    return [NormalizedResponse(tool_calls=[buy]), NormalizedResponse(text="Bought AAPL.")]


@pytest.fixture
def config(tmp_path: Path) -> Settings:
    return Settings(DATA_DIR=str(tmp_path), TRADING_WINDOWS="08:00,09:31", MAX_NUDGES=1)


@pytest.fixture
def gate(config: Settings) -> WindowGate:
    return WindowGate(
        config.schedule_config(), clock=FixedClock(datetime(2024, 3, 12, 8, 1, tzinfo=NY))
    )


def test_session_places_trade_inside_window(config: Settings, gate: WindowGate) -> None:
    """A buy during a window reaches the brokerage and the session completes."""

    brokerage = FakeBrokerage()
    transcript = Transcript(sink=None)
    agent = build_agent(
        gate, brokerage, config, adapter=ScriptedAdapter(_script()), transcript=transcript
    )

    result = agent.run()

    assert result.stop_reason == StopReason.COMPLETED
    assert brokerage.orders[0]["qty"] == 3
    assert any(line.startswith("- Actions this step: trade: buy") for line in transcript.lines)
    assert "Session context:" in result.messages[1].content


def test_session_trade_denied_outside_window(config: Settings) -> None:
    """On a weekend the same script is refused and nothing is ordered."""

    saturday = FixedClock(datetime(2024, 3, 16, 8, 1, tzinfo=NY))
    gate = WindowGate(config.schedule_config(), clock=saturday)
    brokerage = FakeBrokerage()
    agent = build_agent(
        gate, brokerage, config, adapter=ScriptedAdapter(_script()), transcript=Transcript(None)
    )

    result = agent.run()

    assert brokerage.order_count == 0
    tool_message = next(m for m in result.messages if m.role == Role.TOOL)
    assert '"type": "WindowClosed"' in tool_message.content


def test_custom_system_prompt(config: Settings, gate: WindowGate, tmp_path: Path) -> None:
    """A system_prompt.md in the data directory replaces the built-in prompt."""

    (tmp_path / "system_prompt.md").write_text("Trade only index funds.", encoding="utf-8")
    agent = build_agent(gate, FakeBrokerage(), config, adapter=ScriptedAdapter([]))
    assert agent.system_prompt == "Trade only index funds."
    assert agent.max_nudges == 1


def test_window_runner_runs_one_session(config: Settings, gate: WindowGate) -> None:
    """An announced window starts a background session that trades through the gate."""

    brokerage = FakeBrokerage()
    runner = WindowRunner(
        gate, brokerage, config, adapter_factory=lambda: ScriptedAdapter(_script())
    )
    window = gate.status().current
    assert isinstance(window, Window)

    runner.on_open(window)
    runner.join(timeout=10)

    assert not runner.running
    assert runner.last_result is not None
    assert runner.last_result.stop_reason == StopReason.COMPLETED
    assert brokerage.order_count == 1


def test_close_releases_search_client(config: Settings, gate: WindowGate) -> None:
    """Closing a session closes the web search client built for it."""

    agent = build_agent(gate, FakeBrokerage(), config, adapter=ScriptedAdapter([]))
    searches = [r for r in agent.resources if isinstance(r, WebSearch)]
    assert len(searches) == 1
    assert not searches[0].closed

    agent.close()

    assert searches[0].closed


def test_window_runner_closes_session_clients(
    config: Settings, gate: WindowGate, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Each background session closes its search client once it finishes."""

    closed = []
    original = WebSearch.close

    def recording_close(self: WebSearch) -> None:
        closed.append(self)
        original(self)

    monkeypatch.setattr(WebSearch, "close", recording_close)
    runner = WindowRunner(
        config=config,
        gate=gate,
        brokerage=FakeBrokerage(),
        adapter_factory=lambda: ScriptedAdapter(_script()),
    )
    window = gate.status().current
    assert isinstance(window, Window)

    for _ in range(2):
        runner.on_open(window)
        runner.join(timeout=10)

    assert len(closed) == 2
    assert closed[0] is not closed[1]
    assert all(search.closed for search in closed)
