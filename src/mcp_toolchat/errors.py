"""Error taxonomy for the tool orchestration pipeline.

Everything raised between the decision stage and tool invocation is caught
by :class:`~mcp_toolchat.tool_chat.ToolChat` and turned into a fallback to the
plain LLM reply. ``ConnectError`` is also surfaced directly by the
``/connect`` endpoint, and ``FinalizeError`` always reaches the caller.
"""


class ToolChatError(Exception):
    """Base class for all pipeline errors."""


class ConnectError(ToolChatError):
    """Raised when the MCP handshake fails or times out."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class DiscoveryError(ToolChatError):
    """Raised when listing tools on a connected server fails."""


class DecisionParseError(ToolChatError):
    """Raised when the decision reply holds no valid decision object."""


class SynthesisError(ToolChatError):
    """Raised when tool arguments cannot be produced for a schema."""

    def __init__(self, message: str, missing: list[str] | None = None):
        self.missing = missing or []
        super().__init__(message)


class InvocationError(ToolChatError):
    """Raised when a tool call fails or returns nothing usable."""

    def __init__(self, tool_name: str, message: str, raw: str | None = None):
        self.tool_name = tool_name
        self.raw = raw
        super().__init__(message)


class FinalizeError(ToolChatError):
    """Raised when the closing LLM call of an augmented turn fails."""
