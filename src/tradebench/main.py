"""
tradebench entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches the requested
mode: a single agent session, the control API with window timers, or a one-shot status print.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from tradebench.config import settings
from tradebench.core.schema import StopReason
from tradebench.scheduling.window_gate import WindowGate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Reduce httpx log level to WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _run_session(gate: WindowGate) -> int:
    # Lazy imports keep `--mode status` free of provider setup
    from tradebench.agent.session import (  # pylint: disable=import-outside-toplevel
        build_agent,
    )
    from tradebench.tools.brokerage import (  # pylint: disable=import-outside-toplevel
        load_brokerage,
    )

    if not settings.BROKERAGE_FACTORY:
        logger.error("BROKERAGE_FACTORY is not set; cannot run a session")
        return 1
    agent = build_agent(gate, load_brokerage(settings.BROKERAGE_FACTORY))
    try:
        result = agent.run()
    finally:
        agent.close()
    if result.error:
        logger.error("Session failed: %s", result.error)
    return 0 if result.stop_reason in (StopReason.COMPLETED, StopReason.MAX_STEPS) else 2


def _serve(gate: WindowGate) -> None:
    # pylint: disable=import-outside-toplevel
    from tradebench.agent.session import WindowRunner
    from tradebench.api.app import (
        create_app,
        run_api,
    )
    from tradebench.scheduling.window_timers import WindowScheduler
    from tradebench.tools.brokerage import load_brokerage
    from tradebench.tools.sampler import EquitySampler

    sampler = None
    if settings.BROKERAGE_FACTORY:
        brokerage = load_brokerage(settings.BROKERAGE_FACTORY)
        runner = WindowRunner(gate, brokerage)
        scheduler = WindowScheduler(gate, on_open=runner.on_open, on_close=runner.on_close)
        sampler = EquitySampler(
            brokerage,
            settings.DATA_DIR,
            benchmark=settings.BENCHMARK_SYMBOL,
            interval_seconds=settings.SAMPLE_INTERVAL_SECONDS,
        )
    else:
        logger.warning("BROKERAGE_FACTORY is not set; windows are announced but no agent runs")
        scheduler = WindowScheduler(gate)

    scheduler.reschedule()
    if sampler is not None:
        sampler.start()
    try:
        run_api(create_app(gate, scheduler), host="0.0.0.0", port=settings.API_PORT)
    finally:
        if sampler is not None:
            sampler.stop()
        scheduler.cancel_all()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for tradebench.

    This function sets up the command-line interface, initializes logging, and runs the selected
    mode.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the tradebench trading agent")
    parser.add_argument(
        "--mode",
        choices=["run", "api", "status"],
        type=str.lower,
        default="api",
        help="Run one agent session, serve the control API, or print window status "
        "(default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level

    _init_logging(settings.LOG_LEVEL)

    # Ensure the data directory exists
    data_dir = Path(settings.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)
    # Ensure the data directory is writable
    if not data_dir.is_dir() or not os.access(data_dir, os.W_OK):
        logger.error("Data directory is not writable: %s", data_dir)
        return 1

    try:
        gate = WindowGate(settings.schedule_config())
    except ValueError as exc:
        logger.error("Invalid trading-window configuration: %s", exc)
        return 1

    logger.info("Starting tradebench [%s mode]", args.mode)

    if args.mode == "status":
        print(gate.status().model_dump_json(indent=2))
        return 0
    if args.mode == "run":
        return _run_session(gate)
    _serve(gate)
    return 0


if __name__ == "__main__":
    sys.exit(main())
