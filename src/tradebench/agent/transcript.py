"""Session transcript: the human-readable record of what the agent did, step by step."""

import json
import logging
from typing import (
    Any,
    Callable,
    Iterable,
    List,
    Mapping,
)

from tradebench.agent.tool_bridge import ToolOutcome
from tradebench.common import (
    AnsiColors,
    colored_print,
)

logger = logging.getLogger(__name__)

Sink = Callable[[str], None]


def console_sink(line: str) -> None:
    """Default sink: colored stdout."""
    if line.startswith("###"):
        colored_print(line, AnsiColors.BLUE)
    elif line.startswith("[error]"):
        colored_print(line, AnsiColors.RED)
    elif line.startswith("call:"):
        colored_print(line, AnsiColors.GREEN)
    else:
        print(line)


class Transcript:
    """
    Collects transcript lines and forwards each one to *sink* (e.g. stdout or a log streamer).

    Blank lines are dropped.  Every line is also kept in :attr:`lines` for callers that want the
    whole record once the session ends.
    """

    def __init__(self, sink: Sink | None = console_sink) -> None:
        self._sink = sink
        self.lines: List[str] = []

    def emit(self, line: str) -> None:
        if not line or not line.strip():
            return
        self.lines.append(line)
        logger.debug("transcript: %s", line)
        if self._sink is not None:
            self._sink(line)

    # ------------------------------------------------------------------ #
    # Structured helpers
    # ------------------------------------------------------------------ #
    def context(self, lines: Iterable[str]) -> None:
        self.emit("### Window Context")
        for line in lines:
            self.emit(f"- {line}")

    def step(self, number: int) -> None:
        self.emit(f"### Step {number} — model decision")

    def tools_requested(self, names: Iterable[str]) -> None:
        joined = ", ".join(names)
        if joined:
            self.emit(f"- Tools requested: {joined}")

    def tool_call(self, name: str, arguments: Mapping[str, Any]) -> None:
        self.emit(f"call: {name} {json.dumps(arguments, default=str)}")

    def tool_outcome(self, outcome: ToolOutcome) -> None:
        if outcome.ok:
            self.emit(f"  -> ok: {outcome.payload}")
        else:
            self.emit(
                f"[error] {outcome.name} {json.dumps(outcome.arguments, default=str)}: "
                f"{outcome.error}"
            )

    def actions(self, labels: Iterable[str]) -> None:
        joined = ", ".join(labels)
        if joined:
            self.emit(f"- Actions this step: {joined}")

    def text_response(self, text: str) -> None:
        self.emit("- Text response (no tools)")
        self.emit(text)

    def nudge(self, count: int, limit: int) -> None:
        self.emit(f"- Nudge {count}/{limit}: reminding the model to act through tools")

    def error(self, message: str) -> None:
        self.emit(f"[error] {message}")

    def stopped(self, reason: str, steps: int) -> None:
        self.emit(f"### Session ended: {reason} after {steps} step(s)")
