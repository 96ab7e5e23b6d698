"""Conversation message models shared by the prompt builder, tools, handlers and the run loop."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import from_json, to_json


class MessageRole(str, Enum):
    """Author of a conversation message."""

    system = "system"
    user = "user"
    assistant = "assistant"
    tool = "tool"


def new_call_id() -> str:
    """Generate an identifier for a tool call created on our side."""
    return f"call_{uuid.uuid4().hex[:12]}"


def serialize_value(value: Any) -> str:
    """Serialize a value for the model: strings pass through, everything else becomes JSON."""
    if isinstance(value, str):
        return value
    return to_json(value, fallback=str).decode("utf-8")


class ToolCall(BaseModel):
    """A tool invocation requested by the model (or synthesized for shots).

    Attributes:
        id: Call identifier, echoed back by the matching tool-result message
        name: Name of the tool to invoke
        arguments: JSON text or already-decoded mapping of arguments
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_call_id, description="Call identifier")
    name: str = Field(..., description="Tool name")
    arguments: Union[str, Dict[str, Any]] = Field(default="{}", description="Call arguments")

    def arguments_as_dict(self) -> Dict[str, Any]:
        """Decode the arguments into a mapping.

        Raises:
            ValueError: If the arguments are not a JSON object
        """
        if isinstance(self.arguments, dict):
            return dict(self.arguments)
        if not self.arguments.strip():
            return {}
        decoded = from_json(self.arguments)
        if not isinstance(decoded, dict):
            raise ValueError(f"Tool arguments must be a JSON object, got {type(decoded).__name__}")
        return decoded

    def arguments_as_json(self) -> str:
        """Return the arguments as JSON text."""
        if isinstance(self.arguments, str):
            return self.arguments or "{}"
        return to_json(self.arguments).decode("utf-8")


class Message(BaseModel):
    """One entry of the conversation history."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole = Field(..., description="Message author")
    content: Optional[str] = Field(None, description="Text content")
    tool_calls: List[ToolCall] = Field(default_factory=list, description="Tool calls made by the assistant")
    tool_call_id: Optional[str] = Field(None, description="Call answered by a tool message")
    name: Optional[str] = Field(None, description="Tool name for tool messages")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.system, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.user, content=content)

    @classmethod
    def assistant(cls, content: Optional[str] = None, tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=MessageRole.assistant, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool_result(cls, call: ToolCall, content: str) -> "Message":
        return cls(role=MessageRole.tool, content=content, tool_call_id=call.id, name=call.name)
