"""Turn a user request into arguments for the chosen tool."""

import json
from typing import Any

from mcp_toolchat.errors import SynthesisError
from mcp_toolchat.json_extract import extract_json_object
from mcp_toolchat.llm import LLMClient
from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.catalog import ToolInputSchema
from mcp_toolchat.models.messages import ChatMessage
from mcp_toolchat.prompts import SYNTHESIS_SYSTEM, SYNTHESIS_USER, PromptRenderer

logger = get_logger("synthesizer")


def missing_required(schema: ToolInputSchema, parameters: dict[str, Any]) -> list[str]:
    return [key for key in schema.required_keys() if key not in parameters]


class ParameterSynthesizer:
    def __init__(self, prompts: PromptRenderer | None = None):
        self.prompts = prompts or PromptRenderer()

    async def synthesize(
        self,
        utterance: str,
        input_schema: ToolInputSchema,
        llm: LLMClient,
    ) -> dict[str, Any]:
        """Ask the LLM for an argument object matching ``input_schema``.

        Only the presence of required keys is checked. Optional keys and
        their defaults are left to the model.

        Raises:
            SynthesisError: If the request fails, the reply has no JSON
                object, or a required key is missing.
        """
        schema_text = json.dumps(input_schema.as_dict(), indent=2, ensure_ascii=False)
        messages = [
            ChatMessage(role="system", content=self.prompts.render(SYNTHESIS_SYSTEM)),
            ChatMessage(
                role="user",
                content=self.prompts.render(SYNTHESIS_USER, schema=schema_text, utterance=utterance),
            ),
        ]
        response = await llm.chat_completion(messages)
        if not response.success:
            raise SynthesisError(f"Parameter generation failed: {response.error}")

        parameters = extract_json_object(response.content)
        if parameters is None:
            raise SynthesisError("Parameter reply contained no JSON object")

        missing = missing_required(input_schema, parameters)
        if missing:
            raise SynthesisError(
                f"Missing required parameter(s): {', '.join(missing)}", missing=missing
            )

        logger.debug(f"Synthesized parameters: {parameters}")
        return parameters
