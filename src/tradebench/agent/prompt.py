"""Prompt text used by the agent loop."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an autonomous trading agent operating a paper brokerage account.
Act only through the provided tools; never claim an action you did not perform with a tool.

Operating procedure:
1. Review the session context, your portfolio (viewPortfolio) and recent notes (getScratchpad).
2. Check prices (checkPrice) and, if useful, news (webSearch) for symbols you consider.
3. Place market orders with buyShares / sellShares only when conviction is high.  Use integer
   quantities and a short note explaining the trade.  Orders are rejected outside trading windows
   and regular market hours; check getWindowStatus when unsure.
4. Before finishing, record observations and next steps with addScratchpad.
"""

START_INSTRUCTION = (
    "Start a trading session. You may place orders during configured windows OR regular market "
    "hours. Follow the operating procedure. Use only the provided tools."
)

NUDGE_MESSAGE = (
    "Reminder: Use the provided tools only. If you intend to trade, call buyShares/sellShares now "
    "with integer quantity and a short note. If not trading, call addScratchpad with observations "
    "and next steps. Do not end with text-only."
)


def load_system_prompt(path: str | Path | None = None) -> str:
    """Read a system prompt from *path*; fall back to :data:`SYSTEM_PROMPT`."""
    if path is None:
        return SYSTEM_PROMPT
    prompt_file = Path(path)
    try:
        text = prompt_file.read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.warning("Could not read prompt file %s: %s", prompt_file, exc)
        return SYSTEM_PROMPT
    return text or SYSTEM_PROMPT
