"""Chat-completions adapter (OpenAI and the OpenAI-compatible vendors)."""

import json
import logging
import re
from typing import (
    Any,
    ClassVar,
    Dict,
    List,
    Mapping,
    Sequence,
)

from tradebench.agent.adapters.base import (
    BaseAdapter,
    WireRequest,
    parse_arguments,
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

_FIXED_TEMPERATURE_MODELS = re.compile(r"^gpt-5", re.IGNORECASE)


@register_adapter("openai", "openai-compatible", "mistral", "deepseek", "grok", "xai", "qwen")
class ChatCompletionsAdapter(BaseAdapter):
    """Flat message array + ``tools`` array; arguments travel as JSON-encoded strings."""

    DEFAULT_BASE_URLS: ClassVar[Mapping[str, str]] = {
        "openai": "https://api.openai.com/v1",
        "openai-compatible": "https://api.openai.com/v1",
        "mistral": "https://api.mistral.ai/v1",
        "deepseek": "https://api.deepseek.com/v1",
        "grok": "https://api.x.ai/v1",
        "xai": "https://api.x.ai/v1",
        "qwen": "https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
    }

    @staticmethod
    def _tool_to_wire(tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters or {"type": "object", "properties": {}},
            },
        }

    @staticmethod
    def _message_to_wire(message: Message) -> Dict[str, Any]:
        if message.role == Role.TOOL:
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content,
            }
        if message.role == Role.ASSISTANT and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments),
                        },
                    }
                    for call in message.tool_calls
                ],
            }
        return {"role": message.role.value, "content": message.content}

    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: str | None = None,
    ) -> WireRequest:
        wire_messages: List[Dict[str, Any]] = []
        system = resolve_system_prompt(messages, system_prompt)
        if system:
            wire_messages.append({"role": "system", "content": system})
        wire_messages.extend(self._message_to_wire(m) for m in messages if m.role != Role.SYSTEM)

        body: Dict[str, Any] = {"model": self.model, "messages": wire_messages, "stream": False}
        if tools:
            body["tools"] = [self._tool_to_wire(t) for t in tools]
            body["tool_choice"] = "auto"
        # gpt-5 models only accept the default temperature
        fixed = self.provider == "openai" and _FIXED_TEMPERATURE_MODELS.match(self.model)
        if self.temperature is not None and not fixed:
            body["temperature"] = self.temperature

        return WireRequest(
            url=f"{self.base_url}/chat/completions",
            body=body,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

    @staticmethod
    def _content_text(content: Any) -> str:
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            # some compatible servers return content parts
            return "\n".join(
                part.get("text", "")
                for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            )
        return ""

    def parse_response(self, data: Mapping[str, Any]) -> NormalizedResponse:
        choices = data.get("choices") or [{}]
        message = (choices[0] or {}).get("message") or {}

        calls = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function") or {}
            name = function.get("name")
            if not name:
                logger.warning("Dropping tool call without a name: %s", raw)
                continue
            calls.append(
                ToolCall(
                    id=raw.get("id") or new_call_id(),
                    name=name,
                    arguments=parse_arguments(function.get("arguments")),
                )
            )
        return NormalizedResponse(text=self._content_text(message.get("content")), tool_calls=calls)
