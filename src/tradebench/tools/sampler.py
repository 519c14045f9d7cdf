"""
Periodic equity and benchmark sampling.

:class:`EquitySampler` appends the account equity to ``equity.jsonl`` and the benchmark's latest
price to ``benchmark.jsonl`` in the data directory, once at start and then every
``interval_seconds``.  These two series are what :func:`tradebench.tools.metrics.metrics_from_dir`
reads for ``getMetrics`` and ``GET /metrics``.  A failed sample is logged and skipped; the next
tick tries again.
"""

import logging
import threading
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
)

from tradebench.tools.brokerage import Brokerage
from tradebench.tools.metrics import (
    BENCHMARK_FILE,
    EQUITY_FILE,
    append_point,
)

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class EquitySampler:
    """
    Sample account equity and a benchmark price on a repeating timer.

    Parameters
    ----------
    brokerage:
        Source of ``get_account()["equity"]`` and ``get_latest_price(benchmark)["price"]``.
    data_dir:
        Directory holding the two JSON-lines series.
    benchmark: str
        Symbol sampled as the benchmark (``BENCHMARK_SYMBOL``).
    interval_seconds: float
        Delay between ticks.
    timer_factory:
        ``threading.Timer`` compatible factory; tests inject one that fires on demand.
    """

    def __init__(
        self,
        brokerage: Brokerage,
        data_dir: str | Path,
        benchmark: str = "SPY",
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.brokerage = brokerage
        self.data_dir = Path(data_dir)
        self.benchmark = benchmark
        self.interval_seconds = interval_seconds
        self._timer_factory = timer_factory
        self._timer: Any = None
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def sample(self) -> Dict[str, float]:
        """Take one sample of each series; returns the values that were recorded."""
        recorded: Dict[str, float] = {}
        try:
            equity = float(self.brokerage.get_account()["equity"])
            append_point(self.data_dir / EQUITY_FILE, equity)
            recorded["equity"] = equity
        except Exception as exc:  # noqa: BLE001
            logger.warning("Equity sample failed: %s", exc)
        try:
            price = self.brokerage.get_latest_price(self.benchmark).get("price")
            if price:
                append_point(self.data_dir / BENCHMARK_FILE, float(price))
                recorded["benchmark"] = float(price)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Benchmark sample for %s failed: %s", self.benchmark, exc)
        logger.debug("Sampled %s", recorded)
        return recorded

    def start(self) -> None:
        """Sample once now and keep sampling every ``interval_seconds`` until :meth:`stop`."""
        with self._lock:
            if self._running:
                return
            self._running = True
        logger.info(
            "Sampling equity and %s every %gs into %s",
            self.benchmark,
            self.interval_seconds,
            self.data_dir,
        )
        self._tick()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _tick(self) -> None:
        if not self.running:
            return
        self.sample()
        with self._lock:
            if not self._running:
                return
            timer = self._timer_factory(self.interval_seconds, self._tick)
            timer.daemon = True
            self._timer = timer
        timer.start()
