"""In-memory stand-ins for the brokerage, the LLM adapter and the clock."""

from datetime import datetime
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Sequence,
)

from tradebench.agent.adapters import BaseAdapter
from tradebench.agent.adapters.base import (
    ProviderError,
    WireRequest,
)
from tradebench.core.schema import (
    Message,
    NormalizedResponse,
    ToolDefinition,
)


class FakeBrokerage:
    """Paper account with fixed prices that counts every order it receives."""

    def __init__(self, prices: Mapping[str, float] | None = None, cash: float = 10_000.0) -> None:
        self.prices = dict(prices or {"AAPL": 190.0, "SPY": 500.0})
        self.cash = cash
        self.positions: Dict[str, int] = {}
        self.orders: List[Dict[str, Any]] = []

    @property
    def order_count(self) -> int:
        return len(self.orders)

    def get_account(self) -> Mapping[str, Any]:
        equity = self.cash + sum(self.prices[s] * q for s, q in self.positions.items())
        return {"cash": self.cash, "equity": equity, "buying_power": self.cash}

    def get_positions(self) -> List[Mapping[str, Any]]:
        return [{"symbol": s, "qty": q} for s, q in sorted(self.positions.items())]

    def get_latest_price(self, symbol: str) -> Mapping[str, Any]:
        if symbol not in self.prices:
            raise KeyError(f"no quote for {symbol}")
        return {"price": self.prices[symbol], "source": "fake"}

    def place_order(self, symbol: str, qty: int, side: str) -> Mapping[str, Any]:
        order = {"id": f"o{len(self.orders) + 1}", "symbol": symbol, "qty": qty, "side": side}
        self.orders.append(order)
        delta = qty if side == "buy" else -qty
        self.positions[symbol] = self.positions.get(symbol, 0) + delta
        self.cash -= delta * self.prices.get(symbol, 0.0)
        return order

    def get_open_orders(self) -> List[Mapping[str, Any]]:
        return []


class ScriptedAdapter(BaseAdapter):
    """Adapter that replays a fixed list of replies (or raises queued errors) without HTTP."""

    def __init__(self, replies: Sequence[NormalizedResponse | Exception]) -> None:
        super().__init__(model="scripted", api_key="", provider="scripted")
        self.replies = list(replies)
        self.calls: List[List[Message]] = []

    def send(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: str | None = None,
    ) -> NormalizedResponse:
        self.calls.append(list(messages))
        if not self.replies:
            raise ProviderError(None, "script exhausted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def build_request(self, messages, tools, system_prompt=None) -> WireRequest:
        raise NotImplementedError

    def parse_response(self, data: Mapping[str, Any]) -> NormalizedResponse:
        raise NotImplementedError


class FixedClock:
    """Settable clock for the window gate."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeTimer:
    """``threading.Timer`` stand-in that records its arguments and fires only when told to."""

    def __init__(self, interval: float, function: Callable[..., None], args: Any = ()) -> None:
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function(*self.args)
