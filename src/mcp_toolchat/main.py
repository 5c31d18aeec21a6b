import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mcp_toolchat.errors import ConnectError, DiscoveryError, InvocationError, ToolChatError
from mcp_toolchat.logging import configure_logging, get_logger
from mcp_toolchat.models.config import ChatConfig, Config
from mcp_toolchat.models.messages import ChatMessage
from mcp_toolchat.tool_chat import ToolChat
from mcp_toolchat.utils import load_config

# Load environment variables
load_dotenv()

# Configure logging
configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger("main")

DEFAULT_CONFIG_PATH = "toolchat_config.json"


def load_server_config() -> Config:
    """Load the config named by ``TOOLCHAT_CONFIG``, falling back to defaults."""
    path = os.getenv("TOOLCHAT_CONFIG", DEFAULT_CONFIG_PATH)
    try:
        return load_config(path)
    except FileNotFoundError:
        logger.warning(f"No config file at {path}, using defaults")
        return Config()


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(RequestModel):
    messages: list[ChatMessage] = Field(title="Conversation so far, oldest first")
    config: ChatConfig = Field(default_factory=ChatConfig, title="Per-request LLM and MCP settings")
    include_stats: bool = Field(default=False, title="Include usage statistics in response")


class ConnectRequest(RequestModel):
    server_url: str | None = Field(default=None, title="URL of the MCP server")


class ToolCallRequest(RequestModel):
    tool_name: str = Field(title="Name of the tool to call")
    parameters: dict[str, Any] = Field(default_factory=dict, title="Tool arguments")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the pipeline on startup; close its sessions on shutdown."""
    tool_chat: ToolChat | None = getattr(app.state, "tool_chat", None)
    if tool_chat is None:
        tool_chat = ToolChat.from_config(load_server_config())
        app.state.tool_chat = tool_chat

    async with tool_chat:
        logger.info("Application started")
        yield
        logger.info("Application shut down")


def get_tool_chat(request: Request) -> ToolChat:
    tool_chat = getattr(request.app.state, "tool_chat", None)
    if tool_chat is None:
        raise HTTPException(status_code=503, detail="Tool pipeline is not initialised")
    return tool_chat


def _failure(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


async def chat(req: ChatRequest, tool_chat: ToolChat = Depends(get_tool_chat)) -> Any:
    try:
        response, stats = await tool_chat.chat(req.messages, req.config)
    except Exception as e:
        logger.error(f"Unexpected error in /chat: {e}")
        return _failure(500, "Internal server error")

    result: dict[str, Any] = {
        "success": response.success,
        "content": response.content,
        "error": response.error,
        "usage": response.usage,
    }
    if req.include_stats:
        result["stats"] = stats.model_dump(mode="json")

    if not response.success:
        return JSONResponse(status_code=502, content=result)
    return result


async def chat_stream(req: ChatRequest, tool_chat: ToolChat = Depends(get_tool_chat)) -> StreamingResponse:
    async def body() -> AsyncIterator[str]:
        try:
            async for chunk in tool_chat.chat_stream(req.messages, req.config):
                yield chunk
        except Exception as e:
            logger.error(f"Streaming reply failed: {e}")
            yield f"\n\nError: {e}"

    return StreamingResponse(body(), media_type="text/plain")


async def connect(req: ConnectRequest, tool_chat: ToolChat = Depends(get_tool_chat)) -> Any:
    server_url = (req.server_url or "").strip()
    if not server_url:
        return _failure(400, "serverUrl is required", connected=False)

    try:
        server = await tool_chat.connect(server_url)
    except (ConnectError, DiscoveryError) as e:
        return _failure(502, str(e), connected=False)

    return {
        "success": True,
        "connected": True,
        "serverId": server.id,
        "tools": [tool.to_json() for tool in server.tools],
        "message": f"Connected to {server.name} with {len(server.tools)} tools",
    }


async def connection(tool_chat: ToolChat = Depends(get_tool_chat)) -> dict[str, Any]:
    url = tool_chat.sessions.current_url()
    server = tool_chat.catalog.get_server_by_url(url) if url else None
    connected = server is not None and server.connected and tool_chat.sessions.is_live()
    return {
        "success": True,
        "connected": connected,
        "serverUrl": url if connected else None,
        "serverId": server.id if connected and server else None,
        "tools": [tool.to_json() for tool in server.tools] if connected and server else [],
    }


async def disconnect(tool_chat: ToolChat = Depends(get_tool_chat)) -> dict[str, Any]:
    count = await tool_chat.disconnect_all()
    return {"success": True, "disconnected": count}


async def status(tool_chat: ToolChat = Depends(get_tool_chat)) -> dict[str, Any]:
    return {"success": True, **tool_chat.status()}


async def reset(tool_chat: ToolChat = Depends(get_tool_chat)) -> dict[str, Any]:
    await tool_chat.reset()
    return {"success": True, "message": "Catalog reset"}


async def call_tool(req: ToolCallRequest, tool_chat: ToolChat = Depends(get_tool_chat)) -> Any:
    try:
        result = await tool_chat.call_tool(req.tool_name, req.parameters)
    except InvocationError as e:
        return {"success": False, "toolName": req.tool_name, "error": str(e), "raw": e.raw}
    except ToolChatError as e:
        return {"success": False, "toolName": req.tool_name, "error": str(e)}

    return {
        "success": True,
        "toolName": result.tool_name,
        "result": result.text,
        "content": result.content,
        "structuredContent": result.structured_content,
        "builtin": result.builtin,
    }


async def list_tools(tool_chat: ToolChat = Depends(get_tool_chat)) -> dict[str, Any]:
    return {"success": True, "tools": tool_chat.list_tools()}


def create_app(tool_chat: ToolChat | None = None) -> FastAPI:
    """Create the API application.

    Args:
        tool_chat: Pipeline to serve. When omitted one is built from the
            config file at startup.
    """
    app = FastAPI(title="mcp-toolchat", lifespan=lifespan)
    app.state.tool_chat = tool_chat

    app.add_api_route("/chat", chat, methods=["POST"])
    app.add_api_route("/chat/stream", chat_stream, methods=["POST"])
    app.add_api_route("/connect", connect, methods=["POST"])
    app.add_api_route("/connect", connection, methods=["GET"])
    app.add_api_route("/connect", disconnect, methods=["DELETE"])
    app.add_api_route("/status", status, methods=["GET"])
    app.add_api_route("/status", reset, methods=["DELETE"])
    app.add_api_route("/tools", call_tool, methods=["POST"])
    app.add_api_route("/tools", list_tools, methods=["GET"])
    return app


app = create_app()
