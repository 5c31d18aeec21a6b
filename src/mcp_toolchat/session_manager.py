"""Lifecycle of the MCP session used by the chat pipeline.

A :class:`SessionManager` owns at most one live session. Connecting to the
URL that is already live returns the existing session; connecting anywhere
else tears the current one down first. Handshakes are bounded by
``connect_timeout`` and a failed handshake never leaves a half-open client
behind or marks the server as connected.

A background task periodically expires connection records that have been
idle for longer than ``max_connection_age``.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from fastmcp import Client

from mcp_toolchat.catalog import CatalogStore, utcnow
from mcp_toolchat.errors import ConnectError
from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.catalog import ServerStatus
from mcp_toolchat.models.config import SessionSettings

logger = get_logger("session_manager")

ClientFactory = Callable[[str], Any]


def create_mcp_client(url: str) -> Client:
    """Build a fastmcp client; the transport is inferred from the URL."""
    return Client(url)


@dataclass(slots=True)
class Session:
    server_id: str
    url: str
    client: Any
    stack: AsyncExitStack = field(repr=False)
    connected_at: datetime = field(default_factory=utcnow)
    discovered_at: datetime | None = None

    def is_live(self) -> bool:
        is_connected = getattr(self.client, "is_connected", None)
        if callable(is_connected):
            return bool(is_connected())
        return True


class SessionManager:
    def __init__(
        self,
        catalog: CatalogStore,
        settings: SessionSettings | None = None,
        client_factory: ClientFactory = create_mcp_client,
    ):
        self.catalog = catalog
        self.settings = settings or SessionSettings()
        self._client_factory = client_factory
        self._session: Session | None = None
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "SessionManager":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Observers

    def is_live(self) -> bool:
        return self._session is not None and self._session.is_live()

    def current_url(self) -> str | None:
        return self._session.url if self._session else None

    @property
    def current(self) -> Session | None:
        return self._session

    # Connect / disconnect

    async def connect(self, url: str) -> Session:
        async with self._lock:
            return await self._connect_locked(url)

    @asynccontextmanager
    async def session(self, url: str) -> AsyncIterator[Session]:
        """Connect (or reuse) and hold the session for the duration of the block.

        No other connect or disconnect can run until the block exits, so the
        yielded session cannot be replaced underneath the caller.
        """
        async with self._lock:
            session = await self._connect_locked(url)
            yield session

    async def disconnect(
        self,
        error_message: str | None = None,
        status: ServerStatus = ServerStatus.DISCONNECTED,
    ) -> bool:
        """Close the current session. Returns False when there was none."""
        async with self._lock:
            return await self._teardown_locked(error_message, status)

    async def discard(self, session: Session, error_message: str) -> bool:
        """Close a session that failed while held and mark its server as errored.

        Call from inside :meth:`session`. Does nothing when ``session`` is no
        longer the current one.
        """
        if self._session is not session:
            return False
        return await self._teardown_locked(error_message, ServerStatus.ERROR)

    async def _connect_locked(self, url: str) -> Session:
        current = self._session
        if current is not None and current.url == url:
            expired = self.catalog.get_active_connection(current.server_id) is None
            if current.is_live() and not expired:
                self.catalog.touch(current.server_id)
                return current
            logger.info(f"Session for {url} is stale, reconnecting")

        if current is not None:
            await self._teardown_locked()

        timeout = self.settings.connect_timeout
        logger.info(f"Connecting to MCP server {url}")
        stack = AsyncExitStack()
        try:
            client = self._client_factory(url)
            await asyncio.wait_for(stack.enter_async_context(client), timeout=timeout)
        except asyncio.TimeoutError as e:
            await _close_quietly(stack, url)
            logger.error(f"Connection to {url} timed out after {timeout}s")
            raise ConnectError(url, f"Connection timed out after {timeout}s") from e
        except Exception as e:
            await _close_quietly(stack, url)
            logger.error(f"Failed to connect to {url}: {e}")
            raise ConnectError(url, f"Connection failed: {e}") from e

        server = self.catalog.mark_connected(url)
        self._session = Session(server_id=server.id, url=url, client=client, stack=stack)
        logger.info(f"Connected to MCP server {url}")
        return self._session

    async def _teardown_locked(
        self,
        error_message: str | None = None,
        status: ServerStatus = ServerStatus.DISCONNECTED,
    ) -> bool:
        session, self._session = self._session, None
        if session is None:
            return False

        self.catalog.mark_disconnected(session.server_id, error_message, status)
        await _close_quietly(session.stack, session.url)
        logger.info(f"Disconnected from MCP server {session.url}")
        return True

    # Expiry sweep

    async def sweep_expired(self) -> list[str]:
        """Expire idle connection records once.

        When the current session belongs to an expired server and nobody is
        using it, the session is detached and its transport closed. A session
        that is held by a caller is left alone; its record is already marked
        inactive and the next connect will notice.
        """
        max_age = timedelta(seconds=self.settings.max_connection_age)
        expired = self.catalog.expire_connections(max_age)

        session = self._session
        if session is not None and session.server_id in expired and not self._lock.locked():
            self._session = None
            await _close_quietly(session.stack, session.url)
            logger.info(f"Closed idle session for {session.url}")

        return expired

    async def _sweep_loop(self) -> None:
        interval = self.settings.sweep_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_expired()
            except Exception as e:
                logger.warning(f"Expiry sweep failed: {e}")

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())
            logger.debug(f"Expiry sweep every {self.settings.sweep_interval}s")

    async def stop(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None:
            return
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        await self.stop()
        await self.disconnect()


async def _close_quietly(stack: AsyncExitStack, url: str) -> None:
    try:
        await stack.aclose()
    except Exception as e:
        logger.warning(f"Error closing session for {url}: {e}")
