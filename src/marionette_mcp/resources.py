"""MCP Resources for the app connection."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP

    from .vm import VmServiceConnector


def register_resources(server: FastMCP, connector: VmServiceConnector) -> None:
    """Register MCP resources."""

    @server.resource("marionette://connection")
    async def get_connection() -> str:
        """
        Current connection to the app.
        Includes: state, uri, isolateId, services
        """
        return json.dumps(
            {
                "state": connector.state.value,
                "uri": connector.uri,
                "isolateId": connector.isolate_id,
                "services": connector.registered_services,
            },
            indent=2,
        )

    @server.resource("marionette://extensions")
    async def get_extensions() -> str:
        """
        App-specific extensions registered by the connected app.
        Each entry includes: name, description (if any)
        """
        if not connector.is_connected:
            return json.dumps([])
        response = await connector.list_custom_extensions()
        return json.dumps(response.get("extensions") or [], indent=2)
