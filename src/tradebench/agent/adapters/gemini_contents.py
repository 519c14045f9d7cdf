"""Contents/parts adapter (Google Gemini ``generateContent``)."""

import logging
from typing import (
    Any,
    ClassVar,
    Dict,
    List,
    Mapping,
    Sequence,
)
from urllib.parse import quote

from tradebench.agent.adapters.base import (
    BaseAdapter,
    WireRequest,
    register_adapter,
    resolve_system_prompt,
)
from tradebench.core.schema import (
    Message,
    NormalizedResponse,
    Role,
    ToolCall,
    ToolDefinition,
    new_call_id,
)

logger = logging.getLogger(__name__)

UNSUPPORTED_SCHEMA_KEYS = frozenset({"$schema", "additionalProperties", "unevaluatedProperties"})
UNKNOWN_TOOL = "unknown_tool"


def sanitize_schema(schema: Any) -> Any:
    """Recursively drop JSON schema keys the vendor rejects."""
    if isinstance(schema, list):
        return [sanitize_schema(item) for item in schema]
    if isinstance(schema, dict):
        return {
            key: sanitize_schema(value)
            for key, value in schema.items()
            if key not in UNSUPPORTED_SCHEMA_KEYS
        }
    return schema


@register_adapter("gemini")
class ContentsAdapter(BaseAdapter):
    """
    Assistant turns use role ``model``; tool calls are ``functionCall`` parts and results are
    ``functionResponse`` parts keyed by function *name*.

    The vendor does not echo call ids, so the adapter keeps an id -> name map for the lifetime of
    the session (one adapter instance per session).
    """

    DEFAULT_BASE_URLS: ClassVar[Mapping[str, str]] = {
        "gemini": "https://generativelanguage.googleapis.com/v1beta",
    }

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._call_names: Dict[str, str] = {}

    def tool_name_for(self, call_id: str | None) -> str:
        """Function name recorded for *call_id*."""
        if call_id is None:
            return UNKNOWN_TOOL
        return self._call_names.get(call_id, UNKNOWN_TOOL)

    def _to_contents(self, messages: Sequence[Message]) -> List[Dict[str, Any]]:
        contents: List[Dict[str, Any]] = []
        for message in messages:
            if message.role == Role.SYSTEM:
                continue
            if message.role == Role.USER:
                contents.append({"role": "user", "parts": [{"text": message.content}]})
            elif message.role == Role.ASSISTANT:
                parts: List[Dict[str, Any]] = []
                if message.content.strip():
                    parts.append({"text": message.content})
                for call in message.tool_calls:
                    self._call_names[call.id] = call.name
                    parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
                if parts:
                    contents.append({"role": "model", "parts": parts})
            elif message.role == Role.TOOL:
                name = self.tool_name_for(message.tool_call_id)
                if name == UNKNOWN_TOOL:
                    logger.warning("No function name for tool_call_id=%s", message.tool_call_id)
                response_part = {
                    "functionResponse": {"name": name, "response": {"content": message.content}}
                }
                contents.append({"role": "user", "parts": [response_part]})
        return contents

    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: str | None = None,
    ) -> WireRequest:
        body: Dict[str, Any] = {"contents": self._to_contents(messages)}
        system = resolve_system_prompt(messages, system_prompt)
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        if tools:
            body["tools"] = [
                {
                    "functionDeclarations": [
                        {
                            "name": t.name,
                            "description": t.description,
                            "parameters": sanitize_schema(
                                t.parameters or {"type": "object", "properties": {}}
                            ),
                        }
                        for t in tools
                    ]
                }
            ]
        if self.temperature is not None:
            body["generationConfig"] = {"temperature": self.temperature}

        return WireRequest(
            url=f"{self.base_url}/models/{quote(self.model, safe='')}:generateContent",
            body=body,
            headers={"content-type": "application/json"},
            params={"key": self.api_key},
        )

    def parse_response(self, data: Mapping[str, Any]) -> NormalizedResponse:
        candidates = data.get("candidates") or [{}]
        content = (candidates[0] or {}).get("content") or {}

        texts: List[str] = []
        calls: List[ToolCall] = []
        for part in content.get("parts") or []:
            if not isinstance(part, dict):
                continue
            if isinstance(part.get("text"), str):
                texts.append(part["text"])
            function_call = part.get("functionCall") or {}
            if function_call.get("name"):
                args = function_call.get("args")
                call = ToolCall(
                    id=function_call.get("id") or new_call_id(),
                    name=function_call["name"],
                    arguments=args if isinstance(args, dict) else {},
                )
                self._call_names[call.id] = call.name
                calls.append(call)
        return NormalizedResponse(text="\n".join(texts), tool_calls=calls)
