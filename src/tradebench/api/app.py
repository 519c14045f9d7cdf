"""
Control API for tradebench.

Operator-facing endpoints for inspecting and steering the trading-window schedule:
- **GET /health**          - liveness check.
- **GET /window/status**   - active / next window, regular-hours flag.
- **GET /schedule**        - current schedule.
- **PUT /schedule**        - replace the schedule and re-arm window timers.
- **POST /window/adhoc**   - open an ad-hoc window now for N minutes.
- **DELETE /window/adhoc** - close the ad-hoc window.
- **GET /metrics**         - performance metrics from the stored equity / benchmark series.
- **GET /scratchpad**, **POST /scratchpad**, **DELETE /scratchpad** - agent notes.
"""

import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from fastapi import (
    FastAPI,
    HTTPException,
)
from pydantic import ValidationError

from tradebench.agent.session import SCRATCHPAD_FILE
from tradebench.api.models import (
    AdhocClosed,
    AdhocRequest,
    AdhocResponse,
    NoteRequest,
    ScheduleUpdate,
)
from tradebench.common import (
    AnsiColors,
    colored_print,
)
from tradebench.config import settings
from tradebench.memory.scratchpad import (
    DEFAULT_RECENT,
    Scratchpad,
    ScratchpadEntry,
)
from tradebench.scheduling.window_gate import (
    ScheduleConfig,
    WindowGate,
    WindowStatus,
)
from tradebench.scheduling.window_timers import WindowScheduler
from tradebench.tools.metrics import (
    PerformanceMetrics,
    metrics_from_dir,
)

logger = logging.getLogger(__name__)


def create_app(
    gate: WindowGate,
    scheduler: Optional[WindowScheduler] = None,
    data_dir: str | Path | None = None,
) -> FastAPI:
    """
    Build the control API around *gate*.

    Parameters
    ----------
    gate:
        The window gate shared with the agent's tool bridge.
    scheduler:
        Re-armed after every schedule or ad-hoc change.  Without one the API only edits the gate.
    data_dir:
        Where metrics series and the scratchpad live (default from settings).
    """
    base_dir = Path(data_dir or settings.DATA_DIR)
    scratchpad = Scratchpad(base_dir / SCRATCHPAD_FILE)

    app = FastAPI(
        title="tradebench control API",
        version="0.1.0",
        description="Trading-window schedule and agent notes",
    )

    def rearm() -> None:
        if scheduler is not None:
            scheduler.reschedule()

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.get("/health", summary="Health check")
    async def health() -> dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @app.get("/window/status", response_model=WindowStatus, summary="Current window status")
    async def window_status() -> WindowStatus:
        return gate.status()

    @app.get("/schedule", response_model=ScheduleConfig, summary="Current schedule")
    async def get_schedule() -> ScheduleConfig:
        return gate.config

    @app.put("/schedule", response_model=ScheduleConfig, summary="Replace the schedule")
    async def put_schedule(req: ScheduleUpdate) -> ScheduleConfig:
        """Validate the merged schedule, swap it into the gate and re-arm timers."""
        current = gate.config.model_dump()
        current.update(req.model_dump(exclude_none=True))
        try:
            config = ScheduleConfig.model_validate(current)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=[e["msg"] for e in exc.errors()]
            ) from exc
        gate.replace(config)
        rearm()
        return config

    @app.post("/window/adhoc", response_model=AdhocResponse, summary="Open an ad-hoc window")
    async def open_adhoc(req: AdhocRequest) -> AdhocResponse:
        duration = req.duration_minutes or gate.config.duration_minutes
        window = gate.open_adhoc(duration)
        rearm()
        return AdhocResponse(start=window.start, end=window.end, duration_minutes=duration)

    @app.delete("/window/adhoc", response_model=AdhocClosed, summary="Close the ad-hoc window")
    async def close_adhoc() -> AdhocClosed:
        closed = gate.close_adhoc()
        if closed:
            rearm()
        return AdhocClosed(closed=closed)

    @app.get("/metrics", response_model=PerformanceMetrics, summary="Performance metrics")
    async def metrics() -> PerformanceMetrics:
        return metrics_from_dir(base_dir)

    @app.get("/scratchpad", response_model=List[ScratchpadEntry], summary="Recent notes")
    async def get_notes(limit: int = DEFAULT_RECENT) -> List[ScratchpadEntry]:
        return scratchpad.recent(limit)

    @app.post("/scratchpad", response_model=ScratchpadEntry, summary="Add a note")
    async def add_note(req: NoteRequest) -> ScratchpadEntry:
        try:
            return scratchpad.add(req.message, tags=req.tags, author=req.author)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.delete("/scratchpad", summary="Clear all notes")
    async def clear_notes() -> Dict[str, Any]:
        scratchpad.clear()
        return {"ok": True}

    return app


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    app: FastAPI,
    host: str = "0.0.0.0",
    port: int = 8787,
    log_level: str | None = None,
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    app:
        Application built by :func:`create_app`.
    host, port:
        Bind address for the HTTP server.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info("Starting control API at %s:%d (log_level=%s)", host, port, log_level)
    logger.debug("API settings: %s", settings.model_dump(exclude={"LLM_API_KEY", "SEARCH_API_KEY"}))

    colored_print(f"tradebench control API is running on port {port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
