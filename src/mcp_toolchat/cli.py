import asyncio
import gc
import json
import os
import warnings
from typing import Any

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from mcp_toolchat.errors import ToolChatError
from mcp_toolchat.models.config import ChatConfig, Config
from mcp_toolchat.models.messages import ChatMessage
from mcp_toolchat.tool_chat import ToolChat
from mcp_toolchat.utils import load_config

app = typer.Typer()
console = Console()

DEFAULT_CONFIG_PATH = "toolchat_config.json"


def _config_path() -> str:
    return os.getenv("TOOLCHAT_CONFIG", DEFAULT_CONFIG_PATH)


def _load(config_path: str | None) -> Config:
    path = config_path or _config_path()
    try:
        return load_config(path)
    except FileNotFoundError:
        return Config()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e


def _server_url(config: Config, server: str | None) -> str:
    url = server or config.default_server_url
    if not url:
        console.print("[red]No server given and no default_server_url configured[/red]")
        raise typer.Exit(code=1)
    return url


def run_async_with_cleanup(coro: Any) -> Any:
    """Run a coroutine, hiding the "Event loop is closed" noise from transports
    that finish closing after the loop has gone."""
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message="Event loop is closed")
        try:
            return asyncio.run(coro)
        finally:
            gc.collect()


@app.command()
def serve(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """
    Start the mcp-toolchat API server.
    """
    uvicorn.run("mcp_toolchat.main:app", host=host, port=port, reload=reload)


@app.command()
def config(config_path: str | None = typer.Option(None, "--config", "-c")) -> None:
    """
    Show the effective configuration.
    """
    cfg = _load(config_path)
    table = Table("Setting", "Value")

    table.add_row("llm.provider", cfg.llm.provider)
    table.add_row("llm.base_url", cfg.llm.resolved_base_url())
    table.add_row("llm.model", cfg.llm.model)
    table.add_row("llm.temperature", str(cfg.llm.temperature))
    table.add_row("llm.max_tokens", str(cfg.llm.max_tokens))
    table.add_row("session.connect_timeout", f"{cfg.session.connect_timeout}s")
    table.add_row("session.call_timeout", f"{cfg.session.call_timeout}s")
    table.add_row("session.max_connection_age", f"{cfg.session.max_connection_age}s")
    table.add_row("default_server_url", cfg.default_server_url or "")
    table.add_row("tool_result_format", cfg.tool_result_format)

    console.print(table)


@app.command()
def tools(
    server: str | None = typer.Argument(None, help="MCP server URL"),
    config_path: str | None = typer.Option(None, "--config", "-c"),
) -> None:
    """
    List the tools exposed by an MCP server.
    """
    cfg = _load(config_path)
    url = _server_url(cfg, server)

    async def _list() -> Any:
        async with ToolChat.from_config(cfg) as tool_chat:
            return await tool_chat.connect(url)

    try:
        tool_server = run_async_with_cleanup(_list())
    except ToolChatError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    table = Table("Name", "Description", "Required")
    for tool in tool_server.tools:
        table.add_row(tool.name, tool.description, ", ".join(tool.input_schema.required_keys()))
    console.print(table)


@app.command()
def call(
    tool_name: str,
    arguments: str = typer.Argument("{}", help="Tool arguments as a JSON object"),
    server: str | None = typer.Option(None, "--server", "-s"),
    config_path: str | None = typer.Option(None, "--config", "-c"),
) -> None:
    """
    Call a tool directly with JSON arguments.
    """
    cfg = _load(config_path)
    url = _server_url(cfg, server)
    try:
        parameters = json.loads(arguments)
    except json.JSONDecodeError as e:
        console.print(f"[red]Arguments are not valid JSON: {e}[/red]")
        raise typer.Exit(code=1) from e

    async def _call() -> Any:
        async with ToolChat.from_config(cfg) as tool_chat:
            await tool_chat.connect(url)
            return await tool_chat.call_tool(tool_name, parameters)

    try:
        result = run_async_with_cleanup(_call())
    except ToolChatError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(result.text)


@app.command()
def ask(
    prompt: str,
    server: str | None = typer.Option(None, "--server", "-s"),
    no_tools: bool = typer.Option(False, "--no-tools", help="Answer without MCP tools"),
    config_path: str | None = typer.Option(None, "--config", "-c"),
) -> None:
    """
    Ask a single question, letting the model pick a tool if one helps.
    """
    cfg = _load(config_path)
    chat_config = ChatConfig(mcp_enabled=not no_tools, mcp_server=server)

    async def _ask() -> Any:
        async with ToolChat.from_config(cfg) as tool_chat:
            return await tool_chat.chat([ChatMessage(role="user", content=prompt)], chat_config)

    response, stats = run_async_with_cleanup(_ask())
    if not response.success:
        console.print(f"[red]{response.error}[/red]")
        raise typer.Exit(code=1)

    console.print(response.content)
    if stats.tool_name:
        console.print(f"[dim]Used tool: {stats.tool_name}[/dim]")


if __name__ == "__main__":
    app()
