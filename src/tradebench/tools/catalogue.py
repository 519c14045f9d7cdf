"""
The trading tool catalogue.

:func:`build_trading_tools` registers the eleven tools the agent works with into a
:class:`~tradebench.tools.ToolRegistry`.  Handlers are thin: account and order operations delegate
to a :class:`~tradebench.tools.brokerage.Brokerage`, window status comes from the
:class:`~tradebench.scheduling.window_gate.WindowGate`, and notes go to the
:class:`~tradebench.memory.scratchpad.Scratchpad`.

Every tool declares a pydantic arguments model.  The bridge validates the model's arguments
against it before the handler runs, and the JSON schema advertised to the model is derived from it.

Only ``buyShares`` and ``sellShares`` are registered as mutating; the tool bridge refuses them
outside a permitted window before the handler is reached.
"""

import logging
from pathlib import Path
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    StringConstraints,
)

from tradebench.memory.scratchpad import (
    DEFAULT_RECENT,
    MAX_RECENT,
    Scratchpad,
)
from tradebench.scheduling.window_gate import WindowGate
from tradebench.tools import ToolRegistry
from tradebench.tools.brokerage import Brokerage
from tradebench.tools.metrics import metrics_from_dir
from tradebench.tools.web_search import (
    MAX_RESULTS,
    WebSearch,
)

logger = logging.getLogger(__name__)

Symbol = Annotated[
    str,
    StringConstraints(strip_whitespace=True, to_upper=True, min_length=1),
    Field(description="Ticker symbol, e.g. AAPL"),
]


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------
# unknown keys are ignored for every tool, so this also absorbs stray arguments
class NoArgs(BaseModel):
    pass


class SymbolArgs(BaseModel):
    symbol: Symbol


class OrderArgs(BaseModel):
    symbol: Symbol
    quantity: int = Field(strict=True, ge=1, description="Whole shares")
    note: Optional[str] = Field(None, description="Short rationale for the trade")


class SearchArgs(BaseModel):
    query: str
    limit: Optional[int] = Field(None, ge=1, le=MAX_RESULTS)


class NoteArgs(BaseModel):
    message: str
    tags: Optional[List[str]] = None
    author: Optional[str] = None


class NotesQuery(BaseModel):
    limit: Optional[int] = Field(None, ge=1, le=MAX_RECENT)


def build_trading_tools(
    registry: ToolRegistry,
    *,
    brokerage: Brokerage,
    gate: WindowGate,
    scratchpad: Scratchpad,
    data_dir: str | Path,
    search: WebSearch | None = None,
) -> ToolRegistry:
    """Register the trading catalogue into *registry* and return it."""

    # -- account ----------------------------------------------------------------
    def view_portfolio() -> Dict[str, Any]:
        return {"account": brokerage.get_account(), "positions": brokerage.get_positions()}

    def check_price(symbol: str) -> Dict[str, Any]:
        quote = dict(brokerage.get_latest_price(symbol))
        return {
            "symbol": symbol,
            "price": quote.get("price"),
            "source": quote.get("source"),
            "raw": quote,
        }

    def view_account_balance() -> Mapping[str, Any]:
        return brokerage.get_account()

    def view_open_orders() -> List[Mapping[str, Any]]:
        return brokerage.get_open_orders()

    # -- orders -------------------------------------------------------------------
    def place(side: str, symbol: str, quantity: int, note: str | None) -> Dict[str, Any]:
        order = brokerage.place_order(symbol, quantity, side)
        logger.info("Placed %s %d %s (note=%r)", side, quantity, symbol, note)
        return {"order": order}

    def buy_shares(symbol: str, quantity: int, note: str | None = None) -> Dict[str, Any]:
        return place("buy", symbol, quantity, note)

    def sell_shares(symbol: str, quantity: int, note: str | None = None) -> Dict[str, Any]:
        return place("sell", symbol, quantity, note)

    # -- context ------------------------------------------------------------------
    def get_window_status() -> Dict[str, Any]:
        return gate.status().model_dump(mode="json")

    def get_metrics() -> Dict[str, Any]:
        return metrics_from_dir(data_dir).model_dump()

    def web_search(query: str, limit: int | None = None) -> Dict[str, Any]:
        if search is None:
            return {"provider": None, "error": "web search is not configured", "results": []}
        return search.search(query, limit)

    # -- notes --------------------------------------------------------------------
    def add_scratchpad(
        message: str, tags: List[str] | None = None, author: str | None = None
    ) -> Dict[str, Any]:
        return scratchpad.add(message, tags=tags, author=author).model_dump(mode="json")

    def get_scratchpad(limit: int | None = None) -> List[Dict[str, Any]]:
        entries = scratchpad.recent(limit or DEFAULT_RECENT)
        return [entry.model_dump(mode="json") for entry in entries]

    trading_hours = "Allowed during trading windows or regular market hours."
    registry.register(
        "viewPortfolio",
        view_portfolio,
        description="View open positions and basic account summary",
        args_model=NoArgs,
    )
    registry.register(
        "checkPrice",
        check_price,
        description="Get latest price/quote for a symbol",
        args_model=SymbolArgs,
    )
    registry.register(
        "buyShares",
        buy_shares,
        description=f"Place a market buy order (paper trading only). {trading_hours}",
        args_model=OrderArgs,
        mutating=True,
    )
    registry.register(
        "sellShares",
        sell_shares,
        description=f"Place a market sell order (paper trading only). {trading_hours}",
        args_model=OrderArgs,
        mutating=True,
    )
    registry.register(
        "viewAccountBalance",
        view_account_balance,
        description="View account equity and cash balance",
        args_model=NoArgs,
    )
    registry.register(
        "viewOpenOrders",
        view_open_orders,
        description="List currently open/pending orders",
        args_model=NoArgs,
    )
    registry.register(
        "getWindowStatus",
        get_window_status,
        description="Get current trading window status (active window and next scheduled window).",
        args_model=NoArgs,
    )
    registry.register(
        "getMetrics",
        get_metrics,
        description=(
            "Get current performance metrics: equityReturn, benchReturn, "
            "alpha (excess return vs benchmark), maxDrawdown, sharpe."
        ),
        args_model=NoArgs,
    )
    registry.register(
        "webSearch",
        web_search,
        description="Search the web and return top links and snippets (best-effort).",
        args_model=SearchArgs,
    )
    registry.register(
        "addScratchpad",
        add_scratchpad,
        description="Leave a scratchpad note for the next window",
        args_model=NoteArgs,
    )
    registry.register(
        "getScratchpad",
        get_scratchpad,
        description="View recent scratchpad notes",
        args_model=NotesQuery,
    )
    return registry
