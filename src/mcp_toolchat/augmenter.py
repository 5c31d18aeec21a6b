from collections.abc import AsyncIterator, Sequence

from mcp_toolchat.errors import FinalizeError
from mcp_toolchat.llm import LLMClient
from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.messages import ChatMessage, LLMResponse
from mcp_toolchat.prompts import AUGMENT_SYSTEM, PromptRenderer

logger = get_logger("augmenter")


def user_turns(messages: Sequence[ChatMessage]) -> list[ChatMessage]:
    return [message for message in messages if message.role == "user"]


class ConversationAugmenter:
    def __init__(self, prompts: PromptRenderer | None = None):
        self.prompts = prompts or PromptRenderer()

    def build_messages(
        self, tool_result_text: str, recent_user_turns: Sequence[ChatMessage]
    ) -> list[ChatMessage]:
        system = ChatMessage(
            role="system",
            content=self.prompts.render(AUGMENT_SYSTEM, tool_result=tool_result_text),
        )
        return [system, *user_turns(recent_user_turns)]

    async def finalize(
        self,
        tool_result_text: str,
        recent_user_turns: Sequence[ChatMessage],
        llm: LLMClient,
    ) -> LLMResponse:
        messages = self.build_messages(tool_result_text, recent_user_turns)
        logger.debug(f"Final call with {len(messages)} messages")
        response = await llm.chat_completion(messages)
        if not response.success:
            raise FinalizeError(response.error or "Final completion failed")
        return response

    def finalize_stream(
        self,
        tool_result_text: str,
        recent_user_turns: Sequence[ChatMessage],
        llm: LLMClient,
    ) -> AsyncIterator[str]:
        messages = self.build_messages(tool_result_text, recent_user_turns)
        return llm.stream_chat_completion(messages)
