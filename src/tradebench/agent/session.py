"""
Session wiring.

:func:`build_agent` assembles everything one trading session needs from :mod:`tradebench.config`
settings, and :class:`WindowRunner` starts a session in the background whenever the window
scheduler announces an open window.
"""

import logging
import threading
from pathlib import Path
from typing import Callable

from tradebench.agent.adapters import (
    BaseAdapter,
    load_adapter,
)
from tradebench.agent.agent_loop import AgentLoop
from tradebench.agent.prompt import (
    SYSTEM_PROMPT,
    load_system_prompt,
)
from tradebench.agent.tool_bridge import ToolBridge
from tradebench.agent.transcript import Transcript
from tradebench.config import (
    Settings,
    settings as default_settings,
)
from tradebench.core.schema import SessionResult
from tradebench.memory.scratchpad import Scratchpad
from tradebench.scheduling.window_gate import (
    Window,
    WindowGate,
)
from tradebench.tools import ToolRegistry
from tradebench.tools.brokerage import Brokerage
from tradebench.tools.catalogue import build_trading_tools
from tradebench.tools.web_search import WebSearch

logger = logging.getLogger(__name__)

SCRATCHPAD_FILE = "scratchpad.jsonl"
PROMPT_FILE = "system_prompt.md"


def build_agent(
    gate: WindowGate,
    brokerage: Brokerage,
    config: Settings | None = None,
    adapter: BaseAdapter | None = None,
    transcript: Transcript | None = None,
) -> AgentLoop:
    """Build an :class:`AgentLoop` with a fresh tool registry bound to *gate* and *brokerage*."""
    config = config or default_settings
    data_dir = Path(config.DATA_DIR)

    scratchpad = Scratchpad(data_dir / SCRATCHPAD_FILE)
    scratchpad.init()
    search = WebSearch(
        provider=config.SEARCH_PROVIDER,
        api_key=config.SEARCH_API_KEY,
        base_url=config.SEARCH_BASE_URL,
    )
    registry = build_trading_tools(
        ToolRegistry(),
        brokerage=brokerage,
        gate=gate,
        scratchpad=scratchpad,
        data_dir=data_dir,
        search=search,
    )
    bridge = ToolBridge(registry, gate, timeout_seconds=config.TOOL_TIMEOUT_SECONDS)

    prompt_path = data_dir / PROMPT_FILE
    system_prompt = load_system_prompt(prompt_path) if prompt_path.exists() else SYSTEM_PROMPT

    if adapter is None:
        adapter = load_adapter(
            provider=config.LLM_PROVIDER,
            model=config.LLM_MODEL,
            api_key=config.LLM_API_KEY,
            base_url=config.LLM_BASE_URL,
            timeout=config.LLM_TIMEOUT_SECONDS,
            temperature=config.LLM_TEMPERATURE,
        )
    logger.info(
        "Agent ready: provider=%s model=%s tools=%d", adapter.provider, adapter.model, len(registry)
    )
    return AgentLoop(
        adapter,
        bridge,
        system_prompt=system_prompt,
        max_steps=config.MAX_STEPS,
        max_nudges=config.MAX_NUDGES,
        transcript=transcript,
        benchmark=config.BENCHMARK_SYMBOL,
        resources=[search],
    )


class WindowRunner:
    """
    Scheduler callbacks that run one agent session per announced window.

    Only one session runs at a time; an open announced while a session is still running is
    logged and skipped.  A close does not interrupt a running session, the gate already refuses
    trades once the window has ended.
    """

    def __init__(
        self,
        gate: WindowGate,
        brokerage: Brokerage,
        config: Settings | None = None,
        adapter_factory: Callable[[], BaseAdapter] | None = None,
    ) -> None:
        self.gate = gate
        self.brokerage = brokerage
        self.config = config or default_settings
        self.adapter_factory = adapter_factory
        self.last_result: SessionResult | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the current session (if any) to finish."""
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def on_open(self, window: Window) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                logger.warning("Session still running; skipping start for window %s", window.id)
                return
            self._thread = threading.Thread(
                target=self._run, args=(window,), name=f"session-{window.id}", daemon=True
            )
            self._thread.start()

    def on_close(self, window: Window) -> None:
        if self.running:
            logger.info("Window %s closed while a session is running", window.id)

    def _run(self, window: Window) -> None:
        logger.info("Starting agent session for window %s", window.id)
        adapter = self.adapter_factory() if self.adapter_factory is not None else None
        agent = build_agent(self.gate, self.brokerage, self.config, adapter=adapter)
        try:
            self.last_result = agent.run()
        finally:
            agent.close()
