"""Dispatches tool calls to registered handlers, gates mutating tools, and normalizes results."""

import json
import logging
import threading
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from tradebench.core.schema import ToolDefinition
from tradebench.scheduling.window_gate import WindowGate
from tradebench.tools import (
    RegisteredTool,
    ToolRegistry,
)

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


class WindowClosed(ToolExecutionError):
    """Raised when a mutating tool is requested outside a permitted trading window."""


class ToolTimeout(ToolExecutionError):
    """Raised when a handler overruns the bridge's timeout; the call is left to finish."""


# ---------------------------------------------------------------------------
# Result normalization
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class StructuredResult:
    """A JSON-serializable value returned by a tool."""

    data: Any


@dataclass(frozen=True)
class TextResult:
    """Plain text fragments returned by a tool."""

    lines: List[str] = field(default_factory=list)


ToolResult = Union[StructuredResult, TextResult]


def _is_content_block(item: Any) -> bool:
    return isinstance(item, dict) and isinstance(item.get("type"), str)


def _blocks_to_text(blocks: List[Any]) -> TextResult:
    lines = []
    for block in blocks:
        is_text = _is_content_block(block) and block["type"] == "text"
        if is_text and isinstance(block.get("text"), str):
            lines.append(block["text"])
        else:
            lines.append(json.dumps(block, default=str))
    return TextResult([line for line in lines if line])


def to_tool_result(raw: Any) -> ToolResult:
    """
    Coerce whatever a handler returned into a :data:`ToolResult`.

    * strings and lists of strings become text
    * content-block lists (``[{"type": "text", "text": ...}, ...]``) become text, non-text blocks
      JSON-encoded
    * an envelope with ``structuredContent`` (or ``structured``) prefers the structured field,
      else falls back to its ``content`` blocks
    * pydantic models and any other value become structured data
    """
    if isinstance(raw, (StructuredResult, TextResult)):
        return raw
    if raw is None:
        return TextResult([])
    if isinstance(raw, str):
        return TextResult([raw])
    if isinstance(raw, BaseModel):
        return StructuredResult(raw.model_dump(mode="json"))
    if isinstance(raw, dict):
        for key in ("structuredContent", "structured"):
            if raw.get(key) is not None:
                return StructuredResult(raw[key])
        if isinstance(raw.get("content"), list) and set(raw) <= {"content", "isError"}:
            return _blocks_to_text(raw["content"])
        return StructuredResult(raw)
    if isinstance(raw, (list, tuple)):
        items = list(raw)
        if items and all(isinstance(item, str) for item in items):
            return TextResult(items)
        if items and all(_is_content_block(item) for item in items):
            return _blocks_to_text(items)
        return StructuredResult(items)
    return StructuredResult(raw)


def render_payload(result: ToolResult) -> str:
    """Collapse a :data:`ToolResult` into the single string handed to the model."""
    if isinstance(result, StructuredResult):
        return json.dumps(result.data, default=str)
    return "\n".join(result.lines)


def describe_validation_error(exc: ValidationError) -> str:
    """One clause per failed field, e.g. ``quantity: Input should be a valid integer``."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "arguments"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def error_payload(message: str, error_type: str | None = None) -> str:
    body: Dict[str, Any] = {"error": message}
    if error_type:
        body["type"] = error_type
    return json.dumps(body)


class ToolOutcome(BaseModel):
    """Normalized result of one tool call, success or failure."""

    name: str
    arguments: Dict[str, Any]
    payload: str
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------
class ToolBridge:
    """
    Execute named tool calls against a :class:`ToolRegistry`.

    Parameters
    ----------
    registry:
        Handlers and their definitions.
    gate:
        Consulted before every mutating tool; a closed gate yields :class:`WindowClosed` and the
        handler is never invoked.
    timeout_seconds:
        Upper bound for a single handler call.  ``None`` runs handlers inline without a bound.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        gate: WindowGate,
        timeout_seconds: float | None = None,
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.timeout_seconds = timeout_seconds

    def definitions(self) -> List[ToolDefinition]:
        """Tool catalogue advertised to the model."""
        return self.registry.definitions()

    def execute(self, name: str, arguments: Dict[str, Any] | None = None) -> ToolOutcome:
        """
        Run tool *name* with *arguments* and return a :class:`ToolOutcome`.

        Never raises for tool-level failures: unknown tools, bad arguments, closed windows,
        handler exceptions and timeouts all come back as an ``{"error": ...}`` payload.
        """
        args = dict(arguments or {})
        try:
            payload = self._invoke(name, args)
        except ToolExecutionError as exc:
            error_type = type(exc).__name__
            if isinstance(exc, WindowClosed):
                logger.warning("Denied tool '%s' args=%s: %s", name, args, exc)
            else:
                logger.warning("Tool '%s' failed: %s", name, exc)
            return ToolOutcome(
                name=name,
                arguments=args,
                payload=error_payload(str(exc), error_type),
                error=str(exc),
                error_type=error_type,
            )
        logger.debug("Tool '%s' returned: %s", name, payload)
        return ToolOutcome(name=name, arguments=args, payload=payload)

    def _invoke(self, name: str, args: Dict[str, Any]) -> str:
        tool = self.registry.get(name)
        if tool is None:
            raise ToolExecutionError(f"Tool '{name}' is not registered.")

        if tool.mutating and not self.gate.is_permitted():
            raise WindowClosed(
                f"Trading not allowed outside configured windows or market hours ('{name}')"
            )

        kwargs = self._validate(tool, args)
        try:
            logger.debug("Executing tool '%s' with args=%s", name, kwargs)
            raw = self._call(name, tool.fn, kwargs)
        except TypeError as exc:
            # Argument mismatch: surfaced as a bad-arguments payload.
            logger.exception("Argument error while executing tool '%s'", name)
            raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
        except ToolExecutionError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", name)
            raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc
        return render_payload(to_tool_result(raw))

    @staticmethod
    def _validate(tool: RegisteredTool, args: Dict[str, Any]) -> Dict[str, Any]:
        if tool.args_model is None:
            return args
        try:
            validated = tool.args_model.model_validate(args)
        except ValidationError as exc:
            raise ToolExecutionError(
                f"Invalid arguments for tool '{tool.definition.name}': "
                f"{describe_validation_error(exc)}"
            ) from exc
        return dict(validated)

    def _call(self, name: str, fn: Callable[..., Any], kwargs: Dict[str, Any]) -> Any:
        if self.timeout_seconds is None:
            return fn(**kwargs)

        outcome: Dict[str, Any] = {}

        def run() -> None:
            try:
                outcome["value"] = fn(**kwargs)
            except Exception as exc:  # noqa: BLE001
                outcome["error"] = exc

        # daemon worker; an overrunning call keeps running after the timeout is reported
        worker = threading.Thread(target=run, name=f"tool-{name}", daemon=True)
        worker.start()
        worker.join(self.timeout_seconds)
        if worker.is_alive():
            raise ToolTimeout(f"Tool '{name}' timed out after {self.timeout_seconds:g}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")
