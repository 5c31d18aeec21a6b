import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from mcp_toolchat.models.config import Config


def load_config(path: str | Path) -> Config:
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            raw_data = json.load(f)

        return Config(**raw_data)
    except ValidationError as ve:
        raise ValueError(f"Invalid config:\n{ve}") from ve
    except json.JSONDecodeError as je:
        raise ValueError(f"Could not parse config JSON:\n{je}") from je


def format_tool_result(
    tool_name: str,
    arguments: dict[str, Any],
    result: str,
    style: str = "result",
) -> str:
    """
    Format a tool result for the final LLM call.

    Args:
        tool_name: Name of the tool that was called
        arguments: Arguments the tool was called with
        result: Text result of the call
        style: One of 'result', 'function_result' or 'function_args_result'

    Returns:
        The formatted string
    """
    if style == "result":
        return result

    if style == "function_result":
        return f"{tool_name} → {result}"

    if style == "function_args_result":
        formatted_args = ", ".join(f"{k}={repr(v)}" for k, v in arguments.items())
        return f"{tool_name}({formatted_args}) → {result}"

    raise ValueError(f"Unsupported style: {style}")
