"""Main orchestration loop for tradebench."""

from __future__ import annotations

import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from tradebench.agent.adapters import (
    BaseAdapter,
    ProviderError,
)
from tradebench.agent.prompt import (
    NUDGE_MESSAGE,
    START_INSTRUCTION,
    SYSTEM_PROMPT,
)
from tradebench.agent.tool_bridge import ToolBridge
from tradebench.agent.transcript import Transcript
from tradebench.common import format_pct
from tradebench.core.schema import (
    LoopState,
    Message,
    NormalizedResponse,
    SessionResult,
    StopReason,
    ToolCall,
    new_call_id,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 16
DEFAULT_MAX_NUDGES = 2

# tool name -> label for the "Actions this step" line; any of these ends a text-only reply
MEANINGFUL_ACTIONS: Dict[str, str] = {
    "buyShares": "trade: buy",
    "sellShares": "trade: sell",
    "addScratchpad": "note recorded",
}


# ---------------------------------------------------------------------------
# Awareness context
# ---------------------------------------------------------------------------
def _query_json(bridge: ToolBridge, name: str) -> Dict[str, Any] | None:
    if bridge.registry.get(name) is None:
        return None
    outcome = bridge.execute(name, {})
    if not outcome.ok:
        return None
    try:
        value = json.loads(outcome.payload)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def gather_awareness(bridge: ToolBridge, benchmark: str = "SPY") -> List[str]:
    """
    Best-effort session context from ``getWindowStatus`` and ``getMetrics``.

    Anything missing or unparseable is skipped.
    """
    lines: List[str] = []
    status = _query_json(bridge, "getWindowStatus")
    if status:
        current, upcoming = status.get("current"), status.get("next")
        if status.get("active") and isinstance(current, dict):
            lines.append(
                f"Active window: {current.get('id')} "
                f"({current.get('start')} to {current.get('end')})"
            )
        elif isinstance(upcoming, dict):
            lines.append(
                f"No active predefined window. "
                f"Next: {upcoming.get('id')} at {upcoming.get('start')}"
            )
        if status.get("regular_hours"):
            lines.append("Regular market hours are open")
        if status.get("now"):
            lines.append(f"Current time [{status.get('tz')}]: {status['now']}")

    metrics = _query_json(bridge, "getMetrics")
    if metrics and isinstance(metrics.get("alpha"), (int, float)):
        lines.append(
            f"Alpha vs {benchmark}: {format_pct(metrics['alpha'])} "
            f"(Eq {format_pct(metrics.get('equityReturn'))}, "
            f"{benchmark} {format_pct(metrics.get('benchReturn'))})"
        )
    return lines


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Drive one bounded tool-use session.

    Each step sends the history to the adapter.  Tool calls are executed in order through the
    bridge and paired with their results in the history; a text-only reply either ends the session
    (after a meaningful action), triggers a nudge, or ends it as exhausted.  Provider errors and
    empty replies end the session immediately.  Steps are never retried.

    *resources* are extra clients the tools hold (the web search client); :meth:`close` releases
    them together with the adapter.
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        bridge: ToolBridge,
        system_prompt: str = SYSTEM_PROMPT,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_nudges: int = DEFAULT_MAX_NUDGES,
        transcript: Transcript | None = None,
        awareness: bool = True,
        benchmark: str = "SPY",
        resources: Sequence[Any] = (),
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        if max_nudges < 0:
            raise ValueError("max_nudges must not be negative")
        self.adapter = adapter
        self.bridge = bridge
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.max_nudges = max_nudges
        self.transcript = transcript if transcript is not None else Transcript()
        self.awareness = awareness
        self.benchmark = benchmark
        self.resources = list(resources)

    def initial_messages(self) -> List[Message]:
        """System prompt, optional awareness context, then the task instruction."""
        messages = [Message.system(self.system_prompt)]
        if self.awareness:
            context = gather_awareness(self.bridge, self.benchmark)
            if context:
                self.transcript.context(context)
                messages.append(Message.user("Session context: " + " | ".join(context)))
        messages.append(Message.user(START_INSTRUCTION))
        return messages

    def close(self) -> None:
        """Close the adapter and every extra resource."""
        self.adapter.close()
        for resource in self.resources:
            resource.close()

    def run(self) -> SessionResult:
        """Run the session to its terminal state."""
        state = LoopState()
        messages = self.initial_messages()
        tools = self.bridge.definitions()
        stop_reason = StopReason.MAX_STEPS
        error: str | None = None

        while state.step <= self.max_steps:
            self.transcript.step(state.step)
            try:
                response = self.adapter.send(messages, tools, self.system_prompt)
            except ProviderError as exc:
                logger.error("Provider error at step %d: %s", state.step, exc)
                self.transcript.error(str(exc))
                stop_reason, error = StopReason.PROVIDER_ERROR, str(exc)
                break
            finally:
                state.model_calls += 1

            if response.tool_calls:
                self._run_tool_calls(response, messages, state)
                state.step += 1
                continue

            if response.text.strip():
                self.transcript.text_response(response.text)
                if state.took_meaningful_action:
                    stop_reason = StopReason.COMPLETED
                    break
                if state.nudge_count < self.max_nudges:
                    state.nudge_count += 1
                    self.transcript.nudge(state.nudge_count, self.max_nudges)
                    messages.append(Message.user(NUDGE_MESSAGE))
                    state.step += 1
                    continue
                stop_reason = StopReason.EXHAUSTED
                break

            self.transcript.emit("No content or tool calls; stopping")
            stop_reason = StopReason.EMPTY_RESPONSE
            break

        steps = min(state.step, self.max_steps)
        self.transcript.stopped(stop_reason.value, steps)
        logger.info(
            "Session ended: %s (steps=%d, model_calls=%d, meaningful_action=%s)",
            stop_reason.value,
            steps,
            state.model_calls,
            state.took_meaningful_action,
        )
        return SessionResult(
            stop_reason=stop_reason,
            steps=steps,
            model_calls=state.model_calls,
            messages=messages,
            error=error,
        )

    def _run_tool_calls(
        self, response: NormalizedResponse, messages: List[Message], state: LoopState
    ) -> None:
        calls = self._unique_ids(response.tool_calls)
        self.transcript.tools_requested(call.name for call in calls)
        logger.info("Model requested %d tool call(s): %s", len(calls), [c.name for c in calls])

        actions: List[str] = []
        for call in calls:
            self.transcript.tool_call(call.name, call.arguments)
            outcome = self.bridge.execute(call.name, call.arguments)
            self.transcript.tool_outcome(outcome)
            messages.append(Message.assistant(response.text, [call]))
            messages.append(Message.tool(call.id, outcome.payload))

            label = MEANINGFUL_ACTIONS.get(call.name)
            if label is not None:
                state.took_meaningful_action = True
                if label not in actions:
                    actions.append(label)
        self.transcript.actions(actions)

    @staticmethod
    def _unique_ids(calls: List[ToolCall]) -> List[ToolCall]:
        seen: set[str] = set()
        unique = []
        for call in calls:
            if call.id in seen:
                call = call.model_copy(update={"id": new_call_id()})
            seen.add(call.id)
            unique.append(call)
        return unique
