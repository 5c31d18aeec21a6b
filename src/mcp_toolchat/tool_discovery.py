"""Enumerate the tools of a connected MCP server into the catalog."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import mcp

from mcp_toolchat.catalog import CatalogStore, utcnow
from mcp_toolchat.errors import DiscoveryError
from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.catalog import ToolDescriptor, ToolInputSchema
from mcp_toolchat.session_manager import Session

logger = get_logger("tool_discovery")


def descriptor_from_mcp(mcp_tool: mcp.Tool) -> ToolDescriptor:
    """
    Convert an MCP Tool to a catalog descriptor.

    Args:
        mcp_tool: Tool object returned by ``list_tools``

    Returns:
        ToolDescriptor with the input schema validated into ToolInputSchema

    Raises:
        ValueError: If the tool has no name
    """
    if not mcp_tool.name:
        raise ValueError("MCP tool is missing a name")

    input_schema = getattr(mcp_tool, "inputSchema", None)
    if not isinstance(input_schema, dict):
        input_schema = {}

    output_schema = getattr(mcp_tool, "outputSchema", None)
    if not isinstance(output_schema, dict):
        output_schema = None

    return ToolDescriptor(
        name=mcp_tool.name,
        description=mcp_tool.description or "",
        input_schema=ToolInputSchema.model_validate(input_schema),
        output_schema=output_schema,
    )


def descriptors_from_mcp(mcp_tools: Sequence[Any]) -> list[ToolDescriptor]:
    """
    Convert a ``list_tools`` result, keeping one descriptor per name.

    When a server lists the same name twice the later entry wins; its
    position is that of the first occurrence.
    """
    by_name: dict[str, ToolDescriptor] = {}
    for mcp_tool in mcp_tools:
        try:
            descriptor = descriptor_from_mcp(mcp_tool)
        except ValueError as e:
            logger.warning(f"Skipping invalid MCP tool: {e}")
            continue

        if descriptor.name in by_name:
            logger.warning(f"Server listed tool '{descriptor.name}' more than once; using the later entry")
        by_name[descriptor.name] = descriptor

    return list(by_name.values())


class ToolDiscovery:
    def __init__(self, catalog: CatalogStore, call_timeout: float | None = None):
        self.catalog = catalog
        self.call_timeout = call_timeout

    async def discover(self, session: Session) -> list[ToolDescriptor]:
        """List the server's tools once and replace its catalog entry.

        An empty list is a valid answer. Transport failures raise
        :class:`DiscoveryError` and leave the previous catalog untouched.
        """
        logger.debug(f"Listing tools on {session.url}")
        try:
            mcp_tools = await asyncio.wait_for(
                session.client.list_tools(), timeout=self.call_timeout
            )
        except asyncio.TimeoutError as e:
            raise DiscoveryError(
                f"Listing tools on {session.url} timed out after {self.call_timeout}s"
            ) from e
        except Exception as e:
            logger.error(f"Tool discovery failed for {session.url}: {e}")
            raise DiscoveryError(f"Listing tools on {session.url} failed: {e}") from e

        tools = descriptors_from_mcp(mcp_tools or [])
        self.catalog.replace_tools(session.server_id, tools)
        self.catalog.touch(session.server_id)
        session.discovered_at = utcnow()

        if tools:
            logger.info(f"Discovered {len(tools)} tools on {session.url}")
        else:
            logger.info(f"Server {session.url} exposes no tools")
        return tools
