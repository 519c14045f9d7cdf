"""
Shared plumbing for protocol adapters.

An adapter is the only place that talks to a model vendor.  It translates the unified
:class:`~tradebench.core.schema.Message` history and tool catalogue into one vendor's wire format,
posts it with ``httpx``, and normalizes the reply into a
:class:`~tradebench.core.schema.NormalizedResponse`.  Vendor-specific shapes never leave the
adapter.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Sequence,
    Tuple,
    Type,
)

import httpx

from tradebench.config import settings
from tradebench.core.schema import (
    Message,
    NormalizedResponse,
    Role,
    ToolDefinition,
)

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Transport failure, non-2xx reply, or unreadable reply from the model vendor."""

    def __init__(self, status: int | None, body: str) -> None:
        self.status = status
        self.body = body
        label = status if status is not None else "transport"
        super().__init__(f"LLM error {label}: {body}")


class MalformedToolArguments(ValueError):
    """Tool-call arguments could not be decoded into a JSON object."""


def decode_arguments(raw: Any) -> Dict[str, Any]:
    """Strictly decode tool-call arguments; raise :class:`MalformedToolArguments` on failure."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str):
        raise MalformedToolArguments(f"unsupported argument type {type(raw).__name__}")
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise MalformedToolArguments(f"invalid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise MalformedToolArguments(f"expected a JSON object, got {type(value).__name__}")
    return value


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """Best-effort argument decoding: anything malformed becomes an empty object."""
    try:
        return decode_arguments(raw)
    except MalformedToolArguments as exc:
        logger.warning("Malformed tool arguments %r: %s", raw, exc)
        return {}


def resolve_system_prompt(messages: Sequence[Message], system_prompt: str | None) -> str:
    """*system_prompt* wins; otherwise join any system-role messages in the history."""
    if system_prompt:
        return system_prompt
    return "\n\n".join(m.content for m in messages if m.role == Role.SYSTEM and m.content)


@dataclass
class WireRequest:
    """A fully-built vendor HTTP request."""

    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_ADAPTER_REGISTRY: dict[str, Type["BaseAdapter"]] = {}


def register_adapter(*names: str) -> Callable:
    """Decorator to register an adapter class under one or more provider identifiers."""

    def wrapper(cls: Type["BaseAdapter"]) -> Type["BaseAdapter"]:
        for name in names:
            _ADAPTER_REGISTRY[name.lower()] = cls
        return cls

    return wrapper


def available_providers() -> List[str]:
    return sorted(_ADAPTER_REGISTRY)


def load_adapter(
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    base_url: str | None = None,
    **kwargs: Any,
) -> "BaseAdapter":
    """
    Factory that returns an instantiated adapter.

    Unset arguments fall back to ``settings.LLM_PROVIDER`` / ``LLM_MODEL`` / ``LLM_API_KEY`` /
    ``LLM_BASE_URL``.
    """
    target = (provider or settings.LLM_PROVIDER).lower()
    cls = _ADAPTER_REGISTRY.get(target)
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")
    kwargs.setdefault("timeout", settings.LLM_TIMEOUT_SECONDS)
    kwargs.setdefault("temperature", settings.LLM_TEMPERATURE)
    return cls(
        model=model or settings.LLM_MODEL,
        api_key=api_key if api_key is not None else (settings.LLM_API_KEY or ""),
        base_url=base_url or settings.LLM_BASE_URL,
        provider=target,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseAdapter(ABC):
    """Abstract adapter: unified history + tools -> vendor request -> normalized reply."""

    DEFAULT_BASE_URLS: ClassVar[Mapping[str, str]] = {}

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str | None = None,
        provider: str | None = None,
        timeout: float = 60.0,
        temperature: float | None = 0.3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.provider = provider or next(iter(self.DEFAULT_BASE_URLS), "")
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        default_url = self.DEFAULT_BASE_URLS.get(self.provider, "")
        self.base_url = (base_url or default_url).rstrip("/")
        self._client = httpx.Client(timeout=timeout, transport=transport)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def send(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: str | None = None,
    ) -> NormalizedResponse:
        """Run one model step and return its normalized reply."""
        request = self.build_request(messages, tools, system_prompt)
        status, data = self._post(request)
        try:
            response = self.parse_response(data)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
            # a 2xx body in a shape the strategy does not understand
            logger.error("%s reply could not be parsed: %r", self.provider, exc)
            raise ProviderError(status, f"unexpected reply shape: {exc!r}") from exc
        logger.debug(
            "%s reply: text=%d chars, tool_calls=%s",
            self.provider,
            len(response.text),
            [call.name for call in response.tool_calls],
        )
        return response

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BaseAdapter":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Strategy hooks
    # ------------------------------------------------------------------ #
    @abstractmethod
    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: str | None = None,
    ) -> WireRequest:
        """Translate the unified history into a vendor request."""

    @abstractmethod
    def parse_response(self, data: Mapping[str, Any]) -> NormalizedResponse:
        """Translate a vendor reply into a :class:`NormalizedResponse`."""

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    def _post(self, request: WireRequest) -> Tuple[int, Dict[str, Any]]:
        try:
            resp = self._client.post(
                request.url,
                json=request.body,
                headers=request.headers,
                params=request.params or None,
            )
        except httpx.HTTPError as exc:
            logger.error("%s request error: %s", self.provider, exc)
            raise ProviderError(None, str(exc)) from exc

        if not resp.is_success:
            raise ProviderError(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(resp.status_code, f"invalid JSON body: {resp.text[:200]}") from exc
        if not isinstance(data, dict):
            raise ProviderError(resp.status_code, f"unexpected body: {resp.text[:200]}")
        return resp.status_code, data
