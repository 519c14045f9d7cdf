"""Performance metrics for the account equity series against a benchmark series."""

import json
import logging
import math
import threading
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    List,
    Sequence,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

logger = logging.getLogger(__name__)

EQUITY_FILE = "equity.jsonl"
BENCHMARK_FILE = "benchmark.jsonl"

_append_lock = threading.Lock()


class SeriesPoint(BaseModel):
    """One sample of a value series."""

    ts: str
    value: float


class PerformanceMetrics(BaseModel):
    """Reported by the ``getMetrics`` tool (field names are part of the tool contract)."""

    equityReturn: float = 0.0
    benchReturn: float = 0.0
    alpha: float = 0.0
    maxDrawdown: float = 0.0
    sharpe: float = 0.0


def read_series(path: str | Path, limit: int = 2000) -> List[SeriesPoint]:
    """Read the last *limit* samples of a JSON-lines series; unreadable lines are skipped."""
    series_file = Path(path)
    if not series_file.exists():
        return []
    points = []
    for line in series_file.read_text(encoding="utf-8").splitlines()[-limit:]:
        if not line.strip():
            continue
        try:
            points.append(SeriesPoint.model_validate(json.loads(line)))
        except (ValueError, ValidationError):
            logger.debug("Skipping unreadable series line in %s: %r", series_file, line)
    return points


def series_to_returns(series: Sequence[SeriesPoint]) -> List[float]:
    returns = []
    for prev, cur in zip(series, series[1:]):
        if prev.value > 0:
            returns.append((cur.value - prev.value) / prev.value)
    return returns


def cumulative_return(series: Sequence[SeriesPoint]) -> float:
    if len(series) < 2 or series[0].value == 0:
        return 0.0
    return (series[-1].value - series[0].value) / series[0].value


def max_drawdown(series: Sequence[SeriesPoint]) -> float:
    peak = -math.inf
    worst = 0.0
    for point in series:
        peak = max(peak, point.value)
        if peak > 0:
            worst = max(worst, (peak - point.value) / peak)
    return worst


def sharpe(series: Sequence[SeriesPoint], risk_free_rate: float = 0.0) -> float:
    """Naive per-sample Sharpe ratio (population standard deviation, no annualization)."""
    excess = [r - risk_free_rate for r in series_to_returns(series)]
    if len(excess) < 2:
        return 0.0
    mean = sum(excess) / len(excess)
    std = math.sqrt(sum((r - mean) ** 2 for r in excess) / len(excess))
    return mean / std if std else 0.0


def compute_metrics(
    equity: Sequence[SeriesPoint], benchmark: Sequence[SeriesPoint]
) -> PerformanceMetrics:
    equity_ret = cumulative_return(equity)
    bench_ret = cumulative_return(benchmark)
    return PerformanceMetrics(
        equityReturn=equity_ret,
        benchReturn=bench_ret,
        alpha=equity_ret - bench_ret,
        maxDrawdown=max_drawdown(equity),
        sharpe=sharpe(equity),
    )


def metrics_from_dir(data_dir: str | Path) -> PerformanceMetrics:
    """Compute metrics from the equity / benchmark series stored in *data_dir*."""
    base = Path(data_dir)
    return compute_metrics(read_series(base / EQUITY_FILE), read_series(base / BENCHMARK_FILE))


def append_point(path: str | Path, value: float, ts: datetime | None = None) -> SeriesPoint:
    """Append one ``{ts, value}`` sample to a JSON-lines series and return it."""
    moment = ts or datetime.now(timezone.utc)
    point = SeriesPoint(ts=moment.isoformat(), value=value)
    series_file = Path(path)
    series_file.parent.mkdir(parents=True, exist_ok=True)
    with _append_lock, series_file.open("a", encoding="utf-8") as f:
        f.write(point.model_dump_json() + "\n")
    return point
