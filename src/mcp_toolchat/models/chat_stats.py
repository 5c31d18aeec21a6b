"""Usage statistics for a single chat turn."""

from typing import Any

from pydantic import BaseModel, Field, computed_field


class TokenUsageStats(BaseModel):
    """Token usage accumulated across all LLM calls of a turn."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_tokens(self) -> int:
        """Total tokens (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens

    def add(self, usage: dict[str, Any] | None) -> None:
        if not usage:
            return
        self.prompt_tokens += int(usage.get("prompt_tokens") or 0)
        self.completion_tokens += int(usage.get("completion_tokens") or 0)


class ChatStats(BaseModel):
    """Combined statistics from one pass through the pipeline."""

    tokens: TokenUsageStats = Field(default_factory=TokenUsageStats)
    llm_calls: int = Field(default=0, ge=0, description="Number of LLM calls made")
    tool_calls: int = Field(default=0, ge=0, description="Number of tool calls made")
    tool_name: str | None = None
