"""Content-block adapter (Anthropic Messages API)."""

import logging
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

ANTHROPIC_VERSION = "2023-06-01"


@register_adapter("anthropic")
class ContentBlockAdapter(BaseAdapter):
    """
    System prompt hoisted into ``system``; turns are arrays of ``text`` / ``tool_use`` /
    ``tool_result`` blocks.  A tool message becomes a user turn carrying a ``tool_result`` block.
    """

    DEFAULT_BASE_URLS: ClassVar[Mapping[str, str]] = {
        "anthropic": "https://api.anthropic.com",
    }

    def __init__(self, *args: Any, max_tokens: int = 4096, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.max_tokens = max_tokens

    @staticmethod
    def _append_turn(turns: List[Dict[str, Any]], role: str, blocks: List[Dict[str, Any]]) -> None:
        # consecutive same-role turns are merged into one
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"].extend(blocks)
        else:
            turns.append({"role": role, "content": blocks})

    def _to_turns(self, messages: Sequence[Message]) -> List[Dict[str, Any]]:
        turns: List[Dict[str, Any]] = []
        for message in messages:
            if message.role == Role.SYSTEM:
                continue
            if message.role == Role.USER:
                self._append_turn(turns, "user", [{"type": "text", "text": message.content}])
            elif message.role == Role.ASSISTANT:
                blocks: List[Dict[str, Any]] = []
                if message.content.strip():
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": call.arguments,
                        }
                    )
                if blocks:
                    self._append_turn(turns, "assistant", blocks)
            elif message.role == Role.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                self._append_turn(turns, "user", [block])
        return turns

    def build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: str | None = None,
    ) -> WireRequest:
        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": self._to_turns(messages),
        }
        system = resolve_system_prompt(messages, system_prompt)
        if system:
            body["system"] = system
        if tools:
            body["tools"] = [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.parameters or {"type": "object"},
                }
                for t in tools
            ]
        if self.temperature is not None:
            body["temperature"] = self.temperature

        return WireRequest(
            url=f"{self.base_url}/v1/messages",
            body=body,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )

    def parse_response(self, data: Mapping[str, Any]) -> NormalizedResponse:
        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in data.get("content") or []:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text" and block.get("text"):
                texts.append(block["text"])
            elif block.get("type") == "tool_use" and block.get("name"):
                arguments = block.get("input")
                calls.append(
                    ToolCall(
                        id=block.get("id") or new_call_id(),
                        name=block["name"],
                        arguments=arguments if isinstance(arguments, dict) else {},
                    )
                )
        if data.get("stop_reason") == "max_tokens":
            logger.warning("Anthropic reply truncated at max_tokens=%d", self.max_tokens)
        return NormalizedResponse(text="\n".join(texts), tool_calls=calls)
