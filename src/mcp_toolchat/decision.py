"""Ask the LLM whether a user message needs a tool, and which one."""

from collections.abc import Sequence

from pydantic import ValidationError

from mcp_toolchat.errors import DecisionParseError
from mcp_toolchat.json_extract import extract_json_object
from mcp_toolchat.llm import LLMClient
from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.catalog import ToolDescriptor
from mcp_toolchat.models.decision import DecisionReply, ToolDecision
from mcp_toolchat.models.messages import ChatMessage
from mcp_toolchat.prompts import DECISION_SYSTEM, DECISION_USER, PromptRenderer

logger = get_logger("decision")

NO_TOOLS = "no tools available"
MALFORMED = "malformed response"


def parse_decision(content: str | None) -> DecisionReply:
    data = extract_json_object(content)
    if data is None:
        raise DecisionParseError("No JSON object in decision reply")
    try:
        return DecisionReply.model_validate(data)
    except ValidationError as e:
        raise DecisionParseError(f"Invalid decision object: {e}") from e


class DecisionEngine:
    def __init__(self, prompts: PromptRenderer | None = None):
        self.prompts = prompts or PromptRenderer()

    async def decide(
        self,
        utterance: str,
        catalog: Sequence[ToolDescriptor],
        llm: LLMClient,
    ) -> ToolDecision:
        if not catalog:
            return ToolDecision.no_tool(NO_TOOLS)

        messages = [
            ChatMessage(role="system", content=self.prompts.render(DECISION_SYSTEM)),
            ChatMessage(
                role="user",
                content=self.prompts.render(DECISION_USER, tools=catalog, utterance=utterance),
            ),
        ]
        response = await llm.chat_completion(messages)
        if not response.success:
            return ToolDecision.no_tool(f"decision request failed: {response.error}")

        try:
            reply = parse_decision(response.content)
        except DecisionParseError as e:
            logger.warning(f"Could not parse decision: {e}")
            return ToolDecision.no_tool(MALFORMED)

        if not reply.needs_tool:
            return ToolDecision.no_tool(reply.reasoning or "no tool needed")

        tool = next((t for t in catalog if t.name == reply.tool_name), None)
        if tool is None:
            logger.info(f"Model picked unknown tool '{reply.tool_name}'")
            return ToolDecision.no_tool(
                f"tool '{reply.tool_name}' is not in the list of available tools"
            )

        return ToolDecision(
            needs_tool=True,
            tool_name=tool.name,
            reasoning=reply.reasoning,
            input_schema=tool.input_schema,
        )
