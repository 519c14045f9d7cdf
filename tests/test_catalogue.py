"""Tests for the trading tool catalogue wired through the bridge."""

import json
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from tradebench.agent.tool_bridge import ToolBridge
from tradebench.memory.scratchpad import Scratchpad
from tradebench.scheduling.window_gate import (
    ScheduleConfig,
    WindowGate,
)
from tradebench.tools import ToolRegistry
from tradebench.tools.catalogue import build_trading_tools
from tests.helpers.fakes import (
    FakeBrokerage,
    FixedClock,
)

NY = ZoneInfo("America/New_York")
TUESDAY_0802 = datetime(2024, 3, 12, 8, 2, tzinfo=NY)
TUESDAY_0805 = datetime(2024, 3, 12, 8, 5, tzinfo=NY)

EXPECTED_TOOLS = {
    "viewPortfolio",
    "checkPrice",
    "buyShares",
    "sellShares",
    "viewAccountBalance",
    "viewOpenOrders",
    "getWindowStatus",
    "getMetrics",
    "webSearch",
    "addScratchpad",
    "getScratchpad",
}


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TUESDAY_0802)


@pytest.fixture
def brokerage() -> FakeBrokerage:
    return FakeBrokerage()


@pytest.fixture
def bridge(tmp_path: Path, clock: FixedClock, brokerage: FakeBrokerage) -> ToolBridge:
    gate = WindowGate(
        ScheduleConfig(windows=["08:00", "09:31", "12:00", "15:55"], duration_minutes=4),
        clock=clock,
    )
    registry = build_trading_tools(
        ToolRegistry(),
        brokerage=brokerage,
        gate=gate,
        scratchpad=Scratchpad(tmp_path / "scratchpad.jsonl"),
        data_dir=tmp_path,
    )
    return ToolBridge(registry, gate)


def _payload(bridge: ToolBridge, name: str, **arguments) -> dict:
    outcome = bridge.execute(name, arguments)
    return json.loads(outcome.payload)


def test_catalogue_is_complete(bridge: ToolBridge) -> None:
    """All eleven tools are registered; only the order tools mutate."""

    definitions = {d.name: d for d in bridge.definitions()}
    assert set(definitions) == EXPECTED_TOOLS
    assert {n for n, d in definitions.items() if d.mutating} == {"buyShares", "sellShares"}
    assert definitions["buyShares"].parameters["required"] == ["symbol", "quantity"]


def test_buy_inside_window(bridge: ToolBridge, brokerage: FakeBrokerage) -> None:
    """A buy inside a window reaches the brokerage with an upper-cased symbol."""

    result = _payload(bridge, "buyShares", symbol="aapl", quantity=2, note="momentum")
    assert result["order"]["symbol"] == "AAPL"
    assert brokerage.orders == [{"id": "o1", "symbol": "AAPL", "qty": 2, "side": "buy"}]


def test_buy_outside_window_is_denied(
    bridge: ToolBridge, clock: FixedClock, brokerage: FakeBrokerage
) -> None:
    """At 08:05 ET a buy returns WindowClosed and the brokerage sees nothing."""

    clock.now = TUESDAY_0805
    outcome = bridge.execute("buyShares", {"symbol": "AAPL", "quantity": 1})
    assert outcome.error_type == "WindowClosed"
    assert brokerage.order_count == 0


@pytest.mark.parametrize("quantity", [0, -3, 1.5, "2", True])
def test_invalid_quantity_is_rejected(
    bridge: ToolBridge, brokerage: FakeBrokerage, quantity: object
) -> None:
    """Only whole positive quantities are sent to the brokerage."""

    outcome = bridge.execute("sellShares", {"symbol": "AAPL", "quantity": quantity})
    assert not outcome.ok
    assert "quantity" in outcome.error
    assert brokerage.order_count == 0


def test_read_only_tools(bridge: ToolBridge, clock: FixedClock) -> None:
    """Account, price and status tools work outside windows too."""

    clock.now = TUESDAY_0805
    assert _payload(bridge, "checkPrice", symbol="SPY")["price"] == 500.0
    assert _payload(bridge, "viewAccountBalance")["cash"] == 10_000.0
    assert _payload(bridge, "viewPortfolio")["positions"] == []
    assert _payload(bridge, "viewOpenOrders") == []

    status = _payload(bridge, "getWindowStatus")
    assert status["active"] is False
    assert status["next"]["id"] == "w2"


def test_unknown_symbol_is_an_error(bridge: ToolBridge) -> None:
    """Brokerage failures come back as tool errors."""

    outcome = bridge.execute("checkPrice", {"symbol": "NOPE"})
    assert not outcome.ok
    assert "NOPE" in outcome.error


def test_scratchpad_round_trip(bridge: ToolBridge) -> None:
    """Notes written through addScratchpad are returned by getScratchpad."""

    entry = _payload(bridge, "addScratchpad", message="watch AAPL at open", tags=["aapl"])
    assert entry["author"] == "agent"
    notes = _payload(bridge, "getScratchpad", limit=5)
    assert [n["message"] for n in notes] == ["watch AAPL at open"]
    assert notes[0]["tags"] == ["aapl"]


def test_metrics_without_history(bridge: ToolBridge) -> None:
    """With no stored series every metric is zero."""

    assert _payload(bridge, "getMetrics") == {
        "equityReturn": 0.0,
        "benchReturn": 0.0,
        "alpha": 0.0,
        "maxDrawdown": 0.0,
        "sharpe": 0.0,
    }


def test_web_search_unconfigured(bridge: ToolBridge) -> None:
    """Without a search client the tool reports an error payload instead of failing."""

    result = _payload(bridge, "webSearch", query="AAPL earnings")
    assert result["results"] == []
    assert "not configured" in result["error"]


def test_string_tags_are_rejected(bridge: ToolBridge) -> None:
    """addScratchpad refuses a bare string for tags and stores nothing."""

    outcome = bridge.execute("addScratchpad", {"message": "hi", "tags": "risk"})
    assert not outcome.ok
    assert "Invalid arguments" in outcome.error
    assert "tags" in outcome.error
    assert _payload(bridge, "getScratchpad") == []


@pytest.mark.parametrize(
    "name, arguments",
    [
        ("checkPrice", {}),
        ("checkPrice", {"symbol": "   "}),
        ("webSearch", {"query": "x", "limit": 11}),
        ("getScratchpad", {"limit": 0}),
        ("addScratchpad", {"tags": ["a"]}),
    ],
)
def test_arguments_are_validated(bridge: ToolBridge, name: str, arguments: dict) -> None:
    """Arguments that do not match a tool's model never reach its handler."""

    outcome = bridge.execute(name, arguments)
    assert not outcome.ok
    assert outcome.error.startswith(f"Invalid arguments for tool '{name}'")


def test_unknown_keys_are_ignored(bridge: ToolBridge) -> None:
    """Extra keys are dropped, as for tools that take no arguments at all."""

    assert _payload(bridge, "viewAccountBalance", verbose=True)["cash"] == 10_000.0


def test_advertised_schemas_follow_argument_models(bridge: ToolBridge) -> None:
    """Schemas are plain JSON schema: no titles and no nullable unions."""

    definitions = {d.name: d.parameters for d in bridge.definitions()}
    assert definitions["viewPortfolio"] == {"type": "object", "properties": {}}

    note = definitions["addScratchpad"]
    assert note["required"] == ["message"]
    assert note["properties"]["tags"] == {"type": "array", "items": {"type": "string"}}

    order = definitions["sellShares"]["properties"]
    assert order["quantity"]["type"] == "integer"
    assert order["quantity"]["minimum"] == 1
    assert order["note"]["type"] == "string"

    rendered = json.dumps(definitions)
    assert '"title"' not in rendered
    assert "anyOf" not in rendered
