"""The per-turn tool pipeline.

A turn either goes straight to the LLM with the caller's messages, or runs
decide -> synthesize -> invoke -> finalize against the configured MCP server.
Anything that goes wrong before the final LLM call drops the turn back to
the plain path with the original messages; the user is never told a tool
was attempted.
"""

from collections.abc import AsyncIterator, Sequence
from typing import Any

from openai import OpenAIError

from mcp_toolchat.augmenter import ConversationAugmenter
from mcp_toolchat.builtin_tools import BuiltinTool, default_builtin_tools
from mcp_toolchat.catalog import CatalogStore
from mcp_toolchat.decision import DecisionEngine
from mcp_toolchat.errors import DiscoveryError, InvocationError, ToolChatError
from mcp_toolchat.invoker import ToolInvoker
from mcp_toolchat.llm import LLMClient, LLMClientFactory
from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.catalog import ToolDescriptor, ToolServer
from mcp_toolchat.models.chat_stats import ChatStats
from mcp_toolchat.models.config import ChatConfig, Config
from mcp_toolchat.models.messages import ChatMessage, LLMResponse, ToolResult
from mcp_toolchat.prompts import PromptRenderer
from mcp_toolchat.session_manager import ClientFactory, SessionManager, create_mcp_client
from mcp_toolchat.synthesizer import ParameterSynthesizer
from mcp_toolchat.tool_discovery import ToolDiscovery

logger = get_logger("tool_chat")


def last_user_message(messages: Sequence[ChatMessage]) -> str | None:
    for message in reversed(messages):
        if message.role == "user" and message.content.strip():
            return message.content
    return None


class ToolChat:
    def __init__(
        self,
        config: Config,
        catalog: CatalogStore,
        sessions: SessionManager,
        discovery: ToolDiscovery,
        decision: DecisionEngine,
        synthesizer: ParameterSynthesizer,
        invoker: ToolInvoker,
        augmenter: ConversationAugmenter,
        llm_factory: LLMClientFactory,
    ):
        self.config = config
        self.catalog = catalog
        self.sessions = sessions
        self.discovery = discovery
        self.decision = decision
        self.synthesizer = synthesizer
        self.invoker = invoker
        self.augmenter = augmenter
        self.llm_factory = llm_factory

    @classmethod
    def from_config(
        cls,
        config: Config,
        client_factory: ClientFactory = create_mcp_client,
        llm_factory: LLMClientFactory | None = None,
        builtin_tools: dict[str, BuiltinTool] | None = None,
    ) -> "ToolChat":
        """Wire up a pipeline with one catalog and one session manager."""
        catalog = CatalogStore()
        sessions = SessionManager(catalog, config.session, client_factory)
        prompts = PromptRenderer(config.prompt_templates_dir)
        if builtin_tools is None:
            builtin_tools = default_builtin_tools()

        return cls(
            config=config,
            catalog=catalog,
            sessions=sessions,
            discovery=ToolDiscovery(catalog, config.session.call_timeout),
            decision=DecisionEngine(prompts),
            synthesizer=ParameterSynthesizer(prompts),
            invoker=ToolInvoker(
                sessions,
                catalog,
                call_timeout=config.session.call_timeout,
                builtin_tools=builtin_tools,
                result_format=config.tool_result_format,
            ),
            augmenter=ConversationAugmenter(prompts),
            llm_factory=llm_factory or LLMClientFactory(),
        )

    async def __aenter__(self) -> "ToolChat":
        self.sessions.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.sessions.close()
        await self.llm_factory.close()

    def llm_for(self, chat_config: ChatConfig, stats: ChatStats | None = None) -> LLMClient:
        return self.llm_factory.get(chat_config.llm_settings(self.config.llm), stats)

    # Chat

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        chat_config: ChatConfig | None = None,
    ) -> tuple[LLMResponse, ChatStats]:
        """Answer one user turn.

        Returns the final LLM response and the usage for the turn. Only a
        failure of the final LLM call is reported in the response; tool path
        failures are logged and the turn is answered without tools.
        """
        chat_config = chat_config or ChatConfig()
        stats = ChatStats()
        messages = list(messages)
        if not messages:
            return LLMResponse.failure("No messages provided"), stats

        try:
            llm = self.llm_for(chat_config, stats)
        except OpenAIError as e:
            logger.error(f"Could not create LLM client: {e}")
            return LLMResponse.failure(str(e)), stats
        tool_text = await self._run_tool_path(messages, chat_config, llm, stats)

        if tool_text is None:
            logger.info("Answering without tools")
            return await llm.chat_completion(messages), stats

        try:
            response = await self.augmenter.finalize(tool_text, messages, llm)
        except ToolChatError as e:
            logger.error(f"Final completion failed: {e}")
            return LLMResponse.failure(str(e)), stats
        return response, stats

    async def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        chat_config: ChatConfig | None = None,
    ) -> AsyncIterator[str]:
        """Same pipeline as :meth:`chat`, streaming the final reply."""
        chat_config = chat_config or ChatConfig()
        stats = ChatStats()
        messages = list(messages)
        if not messages:
            return

        llm = self.llm_for(chat_config, stats)
        tool_text = await self._run_tool_path(messages, chat_config, llm, stats)

        if tool_text is None:
            chunks = llm.stream_chat_completion(messages)
        else:
            chunks = self.augmenter.finalize_stream(tool_text, messages, llm)

        async for chunk in chunks:
            yield chunk

    async def _run_tool_path(
        self,
        messages: list[ChatMessage],
        chat_config: ChatConfig,
        llm: LLMClient,
        stats: ChatStats,
    ) -> str | None:
        """Run the tool stages and return the formatted tool result.

        Returns None whenever the turn should be answered without a tool.
        """
        if not chat_config.mcp_enabled:
            return None
        server_url = chat_config.server_url(self.config.default_server_url)
        if not server_url:
            logger.debug("Tools enabled but no MCP server configured")
            return None
        utterance = last_user_message(messages)
        if utterance is None:
            return None

        try:
            tools = await self._discovered_tools(server_url)
            decision = await self.decision.decide(utterance, tools, llm)
            if not decision.needs_tool or decision.tool_name is None or decision.input_schema is None:
                logger.info(f"No tool needed: {decision.reasoning}")
                return None

            logger.info(f"Decided on tool {decision.tool_name}: {decision.reasoning}")
            parameters = await self.synthesizer.synthesize(utterance, decision.input_schema, llm)
            result = await self.invoker.invoke(decision.tool_name, parameters, server_url)
        except ToolChatError as e:
            logger.warning(f"Tool path failed, answering without tools: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error in tool path, answering without tools: {e}")
            return None

        stats.tool_calls += 1
        stats.tool_name = result.tool_name
        return result.text

    async def _discovered_tools(self, url: str) -> list[ToolDescriptor]:
        async with self.sessions.session(url) as session:
            if session.discovered_at is None:
                await self.discovery.discover(session)
            server = self.catalog.get_server(session.server_id)
        return list(server.tools) if server else []

    # Server management

    async def connect(self, url: str) -> ToolServer:
        """Connect to ``url`` and make sure its tools are in the catalog.

        Reconnecting to the live server returns the cached catalog without
        listing tools again. A failed discovery closes the new session and
        leaves the server in the ``error`` state.

        Raises:
            ConnectError: If the handshake fails or times out.
            DiscoveryError: If the server's tools cannot be listed.
        """
        async with self.sessions.session(url) as session:
            if session.discovered_at is None:
                try:
                    await self.discovery.discover(session)
                except DiscoveryError as e:
                    await self.sessions.discard(session, str(e))
                    raise
            server_id = session.server_id

        server = self.catalog.get_server(server_id)
        if server is None:
            raise DiscoveryError(f"Server {url} disappeared from the catalog")
        return server

    async def disconnect_all(self) -> int:
        count = 1 if await self.sessions.disconnect() else 0
        for server in self.catalog.connected_servers():
            self.catalog.mark_disconnected(server.id)
            count += 1
        logger.info(f"Disconnected {count} servers")
        return count

    async def reset(self) -> None:
        await self.disconnect_all()
        self.catalog.reset()

    def status(self) -> dict[str, Any]:
        connected = self.catalog.connected_servers()
        return {
            "stats": self.catalog.stats().to_json(),
            "servers": {
                "all": [server.to_json() for server in self.catalog.all_servers()],
                "connected": [server.to_json() for server in connected],
            },
            "connections": {
                "active": [record.to_json() for record in self.catalog.active_connections()],
                "history": [record.to_json() for record in self.catalog.connection_history()],
            },
            "tools": [
                {**tool.to_json(), "serverId": server.id, "serverName": server.name}
                for server in connected
                for tool in server.tools
            ],
        }

    # Tools

    def list_tools(self) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = [
            {**tool.descriptor.to_json(), "builtin": True}
            for tool in self.invoker.builtin_tools.values()
        ]
        for server, tool in self.catalog.all_tools():
            if server.connected:
                tools.append(
                    {**tool.to_json(), "builtin": False, "serverId": server.id, "serverName": server.name}
                )
        return tools

    async def call_tool(self, tool_name: str, parameters: dict[str, Any]) -> ToolResult:
        """Invoke a tool directly, skipping the decision stage.

        A connected server is required. Built-in tools answer names the
        server does not provide.

        Raises:
            InvocationError: If nothing is connected, the tool is unknown or
                the call fails.
        """
        url = self.sessions.current_url()
        server = self.catalog.get_server_by_url(url) if url else None
        if server is None or not server.connected:
            raise InvocationError(tool_name, "No MCP server is connected")

        if server.get_tool(tool_name) is None:
            if tool_name in self.invoker.builtin_tools:
                return await self.invoker.invoke_builtin(tool_name, parameters)
            raise InvocationError(tool_name, f"Tool '{tool_name}' is not available on {server.name}")

        return await self.invoker.invoke(tool_name, parameters, server.url)

