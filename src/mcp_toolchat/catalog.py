"""In-memory catalog of tool servers, their tools and connection history.

The store is plain synchronous state. It never calls out to the network, so
callers on the event loop can mutate it without holding a lock.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.catalog import (
    CatalogStats,
    ConnectionRecord,
    ServerStatus,
    ToolDescriptor,
    ToolServer,
)

logger = get_logger("catalog")

EXPIRED_REASON = "timed out"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def server_name_from_url(url: str) -> str:
    parsed = urlparse(url)
    return parsed.netloc or url


class CatalogStore:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._servers: dict[str, ToolServer] = {}
        self._ids_by_url: dict[str, str] = {}
        self._active: dict[str, ConnectionRecord] = {}
        self._history: list[ConnectionRecord] = []

    # Servers

    def get_server(self, server_id: str) -> ToolServer | None:
        return self._servers.get(server_id)

    def get_server_by_url(self, url: str) -> ToolServer | None:
        server_id = self._ids_by_url.get(url)
        return self._servers.get(server_id) if server_id else None

    def all_servers(self) -> list[ToolServer]:
        return list(self._servers.values())

    def connected_servers(self) -> list[ToolServer]:
        return [server for server in self._servers.values() if server.connected]

    def mark_connected(self, url: str, name: str | None = None) -> ToolServer:
        """Record a successful handshake with ``url``.

        Creates the server record on first contact and opens a new active
        connection record, replacing any earlier active one for that server.
        """
        now = self._clock()
        server = self.get_server_by_url(url)
        if server is None:
            server = ToolServer(url=url, name=name or server_name_from_url(url))
            self._servers[server.id] = server
            self._ids_by_url[url] = server.id
            logger.info(f"Registered tool server {server.name} ({url})")
        elif name:
            server.name = name

        server.connected = True
        server.status = ServerStatus.CONNECTED
        server.connected_at = now
        server.last_ping = now
        server.error_message = None

        self.add_connection(server.id, url)
        return server

    def mark_disconnected(
        self,
        server_id: str,
        error_message: str | None = None,
        status: ServerStatus = ServerStatus.DISCONNECTED,
    ) -> bool:
        server = self._servers.get(server_id)
        if server is None:
            return False

        server.connected = False
        server.status = status
        server.error_message = error_message
        server.last_ping = self._clock()
        self.remove_connection(server_id)
        logger.debug(f"Server {server.name} -> {status.value}")
        return True

    def replace_tools(self, server_id: str, tools: Sequence[ToolDescriptor]) -> ToolServer:
        server = self._servers.get(server_id)
        if server is None:
            raise KeyError(f"Unknown server: {server_id}")

        # Replaced wholesale, never merged
        server.tools = list(tools)
        server.last_ping = self._clock()
        logger.info(f"Catalog for {server.name} now has {len(server.tools)} tools")
        return server

    def remove_server(self, server_id: str) -> bool:
        server = self._servers.pop(server_id, None)
        if server is None:
            return False
        self._ids_by_url.pop(server.url, None)
        self.remove_connection(server_id)
        return True

    def all_tools(self) -> list[tuple[ToolServer, ToolDescriptor]]:
        return [(server, tool) for server in self._servers.values() for tool in server.tools]

    def find_tool(self, name: str) -> tuple[ToolServer, ToolDescriptor] | None:
        """First connected server exposing a tool called ``name``."""
        for server in self.connected_servers():
            tool = server.get_tool(name)
            if tool is not None:
                return server, tool
        return None

    # Connections

    def add_connection(self, server_id: str, url: str) -> ConnectionRecord:
        self.remove_connection(server_id)
        now = self._clock()
        record = ConnectionRecord(
            server_id=server_id,
            server_url=url,
            is_active=True,
            created_at=now,
            last_activity=now,
        )
        self._active[server_id] = record
        self._history.append(record)
        return record

    def remove_connection(self, server_id: str) -> bool:
        record = self._active.pop(server_id, None)
        if record is None:
            return False
        record.is_active = False
        return True

    def touch(self, server_id: str) -> None:
        now = self._clock()
        record = self._active.get(server_id)
        if record is not None:
            record.last_activity = now
        server = self._servers.get(server_id)
        if server is not None:
            server.last_ping = now

    def get_active_connection(self, server_id: str) -> ConnectionRecord | None:
        return self._active.get(server_id)

    def active_connections(self) -> list[ConnectionRecord]:
        return list(self._active.values())

    def connection_history(self) -> list[ConnectionRecord]:
        return list(self._history)

    def expire_connections(self, max_age: timedelta) -> list[str]:
        """Deactivate connections idle for longer than ``max_age``.

        Returns the ids of the servers whose connection expired. Their records
        switch to ``disconnected`` with the reason ``"timed out"``.
        """
        now = self._clock()
        expired = [
            server_id
            for server_id, record in self._active.items()
            if now - record.last_activity > max_age
        ]
        for server_id in expired:
            self.mark_disconnected(server_id, EXPIRED_REASON)

        if expired:
            logger.info(f"Expired {len(expired)} idle connections")
        return expired

    # Bookkeeping

    def stats(self) -> CatalogStats:
        return CatalogStats(
            total_servers=len(self._servers),
            connected_servers=len(self.connected_servers()),
            active_connections=len(self._active),
            total_tools=sum(len(server.tools) for server in self._servers.values()),
        )

    def reset(self) -> None:
        self._servers.clear()
        self._ids_by_url.clear()
        self._active.clear()
        self._history.clear()
        logger.info("Catalog reset")
