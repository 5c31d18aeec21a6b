from .catalog import (
    CatalogStats,
    ConnectionRecord,
    ServerStatus,
    ToolDescriptor,
    ToolInputSchema,
    ToolServer,
)
from .chat_stats import ChatStats, TokenUsageStats
from .config import ChatConfig, Config, LLMSettings, SessionSettings
from .decision import ToolDecision
from .messages import ChatMessage, LLMResponse, ToolResult

__all__ = [
    "CatalogStats",
    "ConnectionRecord",
    "ServerStatus",
    "ToolDescriptor",
    "ToolInputSchema",
    "ToolServer",
    "ChatStats",
    "TokenUsageStats",
    "ChatConfig",
    "Config",
    "LLMSettings",
    "SessionSettings",
    "ToolDecision",
    "ChatMessage",
    "LLMResponse",
    "ToolResult",
]
