"""
Protocol adapters for tradebench.

This package is the only place that *directly* calls a model vendor.  Everything else (agent loop,
tool bridge, window gate) stays vendor-agnostic.

Three wire strategies are supported out of the box:

1. **Chat completions** - OpenAI and OpenAI-compatible vendors (mistral, deepseek, grok/xai, qwen).
2. **Content blocks** - Anthropic Messages API.
3. **Contents / parts** - Google Gemini ``generateContent``.

Additional vendors can be added by subclassing :class:`BaseAdapter` and registering via
:func:`register_adapter`.
"""

from tradebench.agent.adapters.base import (
    BaseAdapter,
    MalformedToolArguments,
    ProviderError,
    WireRequest,
    available_providers,
    decode_arguments,
    load_adapter,
    parse_arguments,
    register_adapter,
)
from tradebench.agent.adapters.anthropic_messages import ContentBlockAdapter
from tradebench.agent.adapters.gemini_contents import (
    ContentsAdapter,
    sanitize_schema,
)
from tradebench.agent.adapters.openai_chat import ChatCompletionsAdapter

__all__ = [
    "BaseAdapter",
    "ChatCompletionsAdapter",
    "ContentBlockAdapter",
    "ContentsAdapter",
    "MalformedToolArguments",
    "ProviderError",
    "WireRequest",
    "available_providers",
    "decode_arguments",
    "load_adapter",
    "parse_arguments",
    "register_adapter",
    "sanitize_schema",
]
