"""Tests for the in-memory catalog store."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from mcp_toolchat.catalog import EXPIRED_REASON, CatalogStore, server_name_from_url
from mcp_toolchat.models.catalog import ServerStatus, ToolDescriptor, ToolInputSchema


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return CatalogStore(clock=clock)


def descriptor(name, required=None):
    return ToolDescriptor(name=name, input_schema=ToolInputSchema(required=required or []))


class TestServers:
    """Tests for server registration and status."""

    def test_mark_connected_registers_once_per_url(self, store):
        first = store.mark_connected("http://tools.local/mcp")
        second = store.mark_connected("http://tools.local/mcp")

        assert first.id == second.id
        assert len(store.all_servers()) == 1
        assert first.name == "tools.local"
        assert first.connected is True
        assert first.status == ServerStatus.CONNECTED

    def test_mark_disconnected(self, store):
        server = store.mark_connected("http://a/mcp")

        assert store.mark_disconnected(server.id, "boom", ServerStatus.ERROR) is True

        assert server.connected is False
        assert server.status == ServerStatus.ERROR
        assert server.error_message == "boom"
        assert store.get_active_connection(server.id) is None

    def test_mark_disconnected_unknown_server(self, store):
        assert store.mark_disconnected("missing") is False

    def test_reconnect_clears_error(self, store):
        server = store.mark_connected("http://a/mcp")
        store.mark_disconnected(server.id, "boom", ServerStatus.ERROR)

        store.mark_connected("http://a/mcp")

        assert server.error_message is None
        assert server.status == ServerStatus.CONNECTED

    def test_remove_server(self, store):
        server = store.mark_connected("http://a/mcp")

        assert store.remove_server(server.id) is True
        assert store.get_server_by_url("http://a/mcp") is None
        assert store.active_connections() == []

    def test_server_name_from_url(self):
        assert server_name_from_url("http://localhost:8080/mcp") == "localhost:8080"
        assert server_name_from_url("not a url") == "not a url"


class TestTools:
    """Tests for tool catalog updates."""

    def test_replace_tools_is_wholesale(self, store):
        server = store.mark_connected("http://a/mcp")
        store.replace_tools(server.id, [descriptor("weather"), descriptor("calc")])

        store.replace_tools(server.id, [descriptor("forecast")])

        assert [tool.name for tool in server.tools] == ["forecast"]

    def test_replace_tools_unknown_server(self, store):
        with pytest.raises(KeyError):
            store.replace_tools("missing", [])

    def test_find_tool_only_on_connected_servers(self, store):
        server = store.mark_connected("http://a/mcp")
        store.replace_tools(server.id, [descriptor("weather")])

        found = store.find_tool("weather")
        assert found is not None
        assert found[0].id == server.id

        store.mark_disconnected(server.id)
        assert store.find_tool("weather") is None

    def test_descriptors_are_immutable(self):
        tool = descriptor("weather")
        with pytest.raises(ValidationError):
            tool.name = "other"


class TestConnections:
    """Tests for connection records and expiry."""

    def test_one_active_connection_per_server(self, store):
        server = store.mark_connected("http://a/mcp")
        store.mark_connected("http://a/mcp")

        assert len(store.active_connections()) == 1
        history = store.connection_history()
        assert len(history) == 2
        assert history[0].is_active is False
        assert history[1].is_active is True
        assert history[1].server_id == server.id

    def test_touch_updates_last_activity(self, store, clock):
        server = store.mark_connected("http://a/mcp")
        clock.advance(60)

        store.touch(server.id)

        assert store.get_active_connection(server.id).last_activity == clock.now
        assert server.last_ping == clock.now

    def test_expire_connections(self, store, clock):
        """Test that idle records expire and their server is marked disconnected."""
        stale = store.mark_connected("http://stale/mcp")
        clock.advance(100)
        fresh = store.mark_connected("http://fresh/mcp")
        clock.advance(50)

        expired = store.expire_connections(timedelta(seconds=120))

        assert expired == [stale.id]
        assert stale.connected is False
        assert stale.status == ServerStatus.DISCONNECTED
        assert stale.error_message == EXPIRED_REASON
        assert fresh.connected is True
        assert [record.server_id for record in store.active_connections()] == [fresh.id]

    def test_expire_nothing(self, store):
        store.mark_connected("http://a/mcp")
        assert store.expire_connections(timedelta(seconds=60)) == []


class TestStatsAndReset:
    """Tests for aggregate counts and reset."""

    def test_stats(self, store):
        a = store.mark_connected("http://a/mcp")
        b = store.mark_connected("http://b/mcp")
        store.replace_tools(a.id, [descriptor("weather"), descriptor("calc")])
        store.replace_tools(b.id, [descriptor("search")])
        store.mark_disconnected(b.id)

        stats = store.stats()

        assert stats.total_servers == 2
        assert stats.connected_servers == 1
        assert stats.active_connections == 1
        assert stats.total_tools == 3
        assert stats.to_json() == {
            "totalServers": 2,
            "connectedServers": 1,
            "activeConnections": 1,
            "totalTools": 3,
        }

    def test_reset(self, store):
        store.mark_connected("http://a/mcp")

        store.reset()

        assert store.all_servers() == []
        assert store.connection_history() == []
        assert store.stats().total_servers == 0
