from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant", "tool"]


class ChatMessage(BaseModel):
    role: Role
    content: str = ""

    def to_openai(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class LLMResponse(BaseModel):
    """Result of a single chat completion request.

    ``success`` is False whenever the request failed; ``error`` then carries
    the provider's message verbatim.
    """

    success: bool
    content: str | None = None
    error: str | None = None
    usage: dict[str, Any] | None = None

    @classmethod
    def failure(cls, error: str) -> "LLMResponse":
        return cls(success=False, error=error)


class ToolResult(BaseModel):
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    text: str
    content: list[dict[str, Any]] = Field(default_factory=list)
    structured_content: dict[str, Any] | None = None
    builtin: bool = False
