from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from mcp_toolchat.models.catalog import ToolInputSchema


class DecisionReply(BaseModel):
    """Shape of the JSON object the LLM returns when asked to pick a tool.

    Older prompts asked for ``needsTools``; both spellings are accepted.
    """

    model_config = ConfigDict(extra="ignore")

    needs_tool: bool = Field(
        default=False,
        validation_alias=AliasChoices("needsTool", "needsTools", "needs_tool"),
    )
    tool_name: str | None = Field(
        default=None, validation_alias=AliasChoices("toolName", "tool_name")
    )
    reasoning: str | None = None


class ToolDecision(BaseModel):
    needs_tool: bool
    tool_name: str | None = None
    parameters: dict[str, Any] | None = None
    reasoning: str | None = None
    input_schema: ToolInputSchema | None = None

    @classmethod
    def no_tool(cls, reasoning: str) -> "ToolDecision":
        return cls(needs_tool=False, reasoning=reasoning)
