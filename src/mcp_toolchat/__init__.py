from . import models
from .catalog import CatalogStore
from .session_manager import SessionManager
from .tool_chat import ToolChat
from .utils import format_tool_result, load_config

__all__ = [
    "CatalogStore",
    "SessionManager",
    "ToolChat",
    "format_tool_result",
    "load_config",
    "models",
]
