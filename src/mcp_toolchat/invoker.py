"""Run a single tool call and turn the reply into a :class:`ToolResult`."""

import asyncio
import json
from typing import Any

from mcp_toolchat.builtin_tools import BuiltinTool
from mcp_toolchat.catalog import CatalogStore
from mcp_toolchat.errors import InvocationError
from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.messages import ToolResult
from mcp_toolchat.session_manager import SessionManager
from mcp_toolchat.utils import format_tool_result

logger = get_logger("invoker")


def _content_to_text(item: Any) -> str:
    text = getattr(item, "text", None)
    if isinstance(text, str):
        return text

    item_type = getattr(item, "type", type(item).__name__)
    mime_type = getattr(item, "mimeType", None) or getattr(item, "mime_type", None)
    if mime_type:
        return f"[{item_type}: {mime_type}]"
    return f"[{item_type}]"


def _content_to_dict(item: Any) -> dict[str, Any]:
    if hasattr(item, "model_dump"):
        return item.model_dump(mode="json", exclude_none=True)
    return {"type": getattr(item, "type", "unknown"), "text": _content_to_text(item)}


def _structured(result: Any) -> dict[str, Any] | None:
    for attr in ("structured_content", "structuredContent"):
        value = getattr(result, attr, None)
        if isinstance(value, dict) and value:
            return value
    return None


def _is_error(result: Any) -> bool:
    return bool(getattr(result, "is_error", False) or getattr(result, "isError", False))


def serialize_raw(result: Any) -> str:
    if hasattr(result, "model_dump"):
        try:
            return json.dumps(result.model_dump(mode="json"), ensure_ascii=False)
        except (TypeError, ValueError):
            pass
    return repr(result)


class ToolInvoker:
    def __init__(
        self,
        sessions: SessionManager,
        catalog: CatalogStore,
        call_timeout: float | None = None,
        builtin_tools: dict[str, BuiltinTool] | None = None,
        result_format: str = "result",
    ):
        self.sessions = sessions
        self.catalog = catalog
        self.call_timeout = call_timeout
        self.builtin_tools = builtin_tools or {}
        self.result_format = result_format

    async def invoke(
        self, tool_name: str, parameters: dict[str, Any], server_url: str
    ) -> ToolResult:
        """Call ``tool_name`` on the server at ``server_url``.

        The session is held for the whole call so a concurrent connect cannot
        swap it out mid-request.

        Raises:
            InvocationError: On transport failure, timeout, an error result or
                a result carrying no content at all.
        """
        logger.info(f"Calling tool {tool_name} on {server_url}")
        logger.debug(f"Tool arguments: {parameters}")

        async with self.sessions.session(server_url) as session:
            try:
                result = await asyncio.wait_for(
                    session.client.call_tool(tool_name, parameters),
                    timeout=self.call_timeout,
                )
            except asyncio.TimeoutError as e:
                raise InvocationError(
                    tool_name, f"Tool '{tool_name}' timed out after {self.call_timeout}s"
                ) from e
            except Exception as e:
                logger.error(f"Error calling tool {tool_name}: {e}")
                raise InvocationError(tool_name, f"Tool '{tool_name}' failed: {e}") from e
            self.catalog.touch(session.server_id)

        logger.debug(f"Tool call result: {result}")
        return self._to_result(tool_name, parameters, result)

    async def invoke_builtin(self, tool_name: str, parameters: dict[str, Any]) -> ToolResult:
        tool = self.builtin_tools.get(tool_name)
        if tool is None:
            raise InvocationError(tool_name, f"Unknown built-in tool: {tool_name}")

        try:
            text = await tool.execute(parameters)
        except Exception as e:
            raise InvocationError(tool_name, f"Tool '{tool_name}' failed: {e}") from e

        return ToolResult(
            tool_name=tool_name,
            arguments=parameters,
            text=format_tool_result(tool_name, parameters, text, self.result_format),
            content=[{"type": "text", "text": text}],
            builtin=True,
        )

    def _to_result(self, tool_name: str, parameters: dict[str, Any], result: Any) -> ToolResult:
        raw = serialize_raw(result)
        content = list(getattr(result, "content", None) or [])
        structured = _structured(result)

        if _is_error(result):
            detail = "; ".join(_content_to_text(item) for item in content) or "error result"
            raise InvocationError(tool_name, f"Tool '{tool_name}' returned an error: {detail}", raw)
        if not content and structured is None:
            raise InvocationError(tool_name, f"Tool '{tool_name}' returned no content", raw)

        if structured is not None:
            text = json.dumps(structured, ensure_ascii=False)
        else:
            text = "\n".join(_content_to_text(item) for item in content)

        return ToolResult(
            tool_name=tool_name,
            arguments=parameters,
            text=format_tool_result(tool_name, parameters, text, self.result_format),
            content=[_content_to_dict(item) for item in content],
            structured_content=structured,
        )
