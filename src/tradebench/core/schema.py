"""
Schema definitions for model <-> agent loop <-> tool messages.

These data models serve as the contract between the protocol adapters, the agent loop, and the
tool bridge.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.  Vendor wire formats never appear here; adapters translate to and from these types.
"""

import uuid
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


def new_call_id() -> str:
    """Synthesize a tool-call id for vendors that do not supply one."""
    return f"call_{uuid.uuid4().hex[:24]}"


class Role(str, Enum):
    """Conversation roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(default_factory=new_call_id, description="Call id, unique within a turn")
    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Tool keyword arguments")


class Message(BaseModel):
    """One entry of the unified conversation history."""

    role: Role
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)  # assistant only
    tool_call_id: Optional[str] = None  # tool only

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: List[ToolCall] | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)


class ToolDefinition(BaseModel):
    """Tool metadata advertised to the model."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the keyword arguments",
    )
    mutating: bool = Field(False, description="Gated by the trading-window check")


class NormalizedResponse(BaseModel):
    """Vendor-neutral model reply."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)


class LoopState(BaseModel):
    """Per-session bookkeeping of the agent loop."""

    step: int = 1
    took_meaningful_action: bool = False
    nudge_count: int = 0
    model_calls: int = 0


class StopReason(str, Enum):
    """Why a session ended."""

    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    EMPTY_RESPONSE = "empty_response"
    PROVIDER_ERROR = "provider_error"
    MAX_STEPS = "max_steps"


class SessionResult(BaseModel):
    """Outcome of one agent session."""

    stop_reason: StopReason
    steps: int
    model_calls: int
    messages: List[Message] = Field(default_factory=list)
    error: Optional[str] = None
