"""
Brokerage interface consumed by the trading tools.

The REST binding to an actual broker lives outside this package.  Anything implementing
:class:`Brokerage` can be plugged in, either directly or through the ``BROKERAGE_FACTORY`` setting
(``"package.module:callable"``).
"""

import importlib
import logging
from typing import (
    Any,
    List,
    Mapping,
    Protocol,
    runtime_checkable,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Brokerage(Protocol):
    """Account and order operations the trading tools rely on."""

    def get_account(self) -> Mapping[str, Any]:
        """Account summary (equity, cash, buying power, ...)."""

    def get_positions(self) -> List[Mapping[str, Any]]:
        """Open positions."""

    def get_latest_price(self, symbol: str) -> Mapping[str, Any]:
        """Latest quote; must include ``price`` and may include ``source``."""

    def place_order(self, symbol: str, qty: int, side: str) -> Mapping[str, Any]:
        """Submit a market order; *side* is ``"buy"`` or ``"sell"``."""

    def get_open_orders(self) -> List[Mapping[str, Any]]:
        """Currently open / pending orders."""


def load_brokerage(factory_path: str) -> Brokerage:
    """
    Instantiate a brokerage from a ``"module:callable"`` path.

    Raises
    ------
    ValueError
        If the path is malformed, cannot be imported, or the result is not a :class:`Brokerage`.
    """
    module_name, sep, attr = factory_path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Brokerage factory '{factory_path}' must look like 'module:callable'")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise ValueError(f"Cannot load brokerage factory '{factory_path}': {exc}") from exc

    brokerage = factory()
    if not isinstance(brokerage, Brokerage):
        raise ValueError(f"'{factory_path}' did not return a Brokerage implementation")
    logger.info("Loaded brokerage %s from %s", type(brokerage).__name__, factory_path)
    return brokerage
