"""MCP Server for driving a running app through marionette extensions."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from mcp.server.fastmcp import Context, FastMCP, Image
from pydantic import AnyUrl

from .resources import register_resources
from .vm import VmServiceConnector

logger = logging.getLogger(__name__)

# Global connector (single client mode)
_connector: VmServiceConnector | None = None


def get_connector() -> VmServiceConnector:
    """Get or create the connector.

    Note: Single client mode - only one app connection at a time.
    """
    global _connector
    if _connector is None:
        _connector = VmServiceConnector()
    return _connector


def build_matcher(
    key: str | None = None,
    text: str | None = None,
    type: str | None = None,
    x: float | None = None,
    y: float | None = None,
) -> dict[str, Any]:
    """Collect the given criteria into a flat matcher map.

    Raises:
        ValueError: If no criteria were given
    """
    matcher: dict[str, Any] = {}
    if x is not None and y is not None:
        matcher["x"] = x
        matcher["y"] = y
    if key is not None:
        matcher["key"] = key
    if text is not None:
        matcher["text"] = text
    if type is not None:
        matcher["type"] = type
    if not matcher:
        raise ValueError("Provide key, text, type, or both x and y to identify the element")
    return matcher


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def format_element(element: dict[str, Any]) -> str:
    """One-line description of an interactive element."""
    parts = []
    if element.get("type") is not None:
        parts.append(f"Type: {element['type']}")
    if element.get("key") is not None:
        parts.append(f'Key: "{element["key"]}"')
    if element.get("text"):
        parts.append(f'Text: "{element["text"]}"')

    for name, value in element.items():
        if name in ("type", "key", "text") or value is None:
            continue
        parts.append(f"{name}: {format_value(value)}")

    return ", ".join(parts)


def format_elements(elements: list[dict[str, Any]]) -> str:
    lines = [f"Found {len(elements)} interactive element(s):", ""]
    lines.extend(format_element(element) for element in elements)
    return "\n".join(lines)


def format_logs(logs: list[str]) -> str:
    count = len(logs)
    if count == 0:
        return "No logs collected"
    lines = [f"Collected {count} log entr{'y' if count == 1 else 'ies'}:", ""]
    lines.extend(logs)
    return "\n".join(lines)


def create_server() -> FastMCP:
    """Create and configure the MCP server."""
    mcp = FastMCP("marionette-mcp")
    connector = get_connector()

    async def notify_connection_changed(ctx: Context) -> None:
        """Notify client that marionette://connection has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl("marionette://connection"))
        except Exception:
            pass  # Notification failure shouldn't break the tool

    # ============== Connection Tools ==============

    @mcp.tool()
    async def connect(ctx: Context, uri: str) -> dict:
        """
        Connect to a running app via its VM service URI.

        This must be called before any other tool. The URI is typically
        ws://127.0.0.1:PORT/ws and is printed in the app's console when it
        runs in debug mode. Connecting again replaces the current connection.

        Args:
            uri: VM service WebSocket URI (e.g. ws://127.0.0.1:8181/ws)
        """
        logger.info(f"Connecting to app at {uri}")
        try:
            await connector.connect(uri)
            await notify_connection_changed(ctx)
            return {
                "success": True,
                "data": {
                    "message": f"Successfully connected to app at {uri}",
                    "isolateId": connector.isolate_id,
                },
            }
        except Exception as e:
            logger.error(f"Failed to connect to app: {e}")
            return {"success": False, "error": f"Failed to connect to app: {e}"}

    @mcp.tool()
    async def disconnect(ctx: Context) -> dict:
        """
        Disconnect from the currently connected app.

        After disconnecting, call connect again to use any other tool.
        """
        logger.info("Disconnecting from app")
        try:
            await connector.disconnect()
            await notify_connection_changed(ctx)
            return {"success": True, "data": {"message": "Successfully disconnected from app"}}
        except Exception as e:
            logger.error(f"Error during disconnect: {e}")
            return {"success": False, "error": f"Error during disconnect: {e}"}

    # ============== Inspection Tools ==============

    @mcp.tool()
    async def get_interactive_elements() -> dict:
        """
        List the interactive elements currently visible in the app.

        Each element includes its type, text (if any), key (if any), bounds,
        visibility and other identifying properties. Use the key or text of an
        element to target it with tap, enter_text or scroll_to.
        """
        try:
            response = await connector.get_interactive_elements()
            elements = response.get("elements") or []
            return {
                "success": True,
                "data": {
                    "count": len(elements),
                    "elements": elements,
                    "summary": format_elements(elements),
                },
            }
        except Exception as e:
            logger.warning(f"Failed to get interactive elements: {e}")
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_logs() -> dict:
        """
        Get the application logs collected since the app started or was last
        hot reloaded.

        The app must have log collection configured.
        """
        try:
            response = await connector.get_logs()
            logs = response.get("logs") or []
            return {
                "success": True,
                "data": {
                    "count": response.get("count", len(logs)),
                    "logs": logs,
                    "summary": format_logs(logs),
                },
            }
        except Exception as e:
            logger.warning(f"Failed to get logs: {e}")
            return {"success": False, "error": str(e)}

    @mcp.tool(structured_output=False)
    async def take_screenshots() -> list:
        """
        Take a screenshot of every view of the app.

        Returns PNG images of the app's current visual state.
        """
        try:
            response = await connector.take_screenshots()
            screenshots = response.get("screenshots") or []
            if not screenshots:
                return ["No screenshots captured"]
            return [Image(data=base64.b64decode(screenshot), format="png") for screenshot in screenshots]
        except Exception as e:
            logger.warning(f"Failed to take screenshots: {e}")
            return [json.dumps({"success": False, "error": str(e)})]

    # ============== Interaction Tools ==============

    @mcp.tool()
    async def tap(
        key: str | None = None,
        text: str | None = None,
        type: str | None = None,
        x: float | None = None,
        y: float | None = None,
    ) -> dict:
        """
        Tap an element, or a screen position.

        Identify the element by exactly one of key, text or type, or pass x
        and y to tap those logical coordinates directly. If several are given,
        coordinates win, then key, then text, then type.

        Args:
            key: Key of the element (see get_interactive_elements)
            text: Visible text of the element
            type: Element type name, e.g. ElevatedButton
            x: Horizontal position in logical pixels
            y: Vertical position in logical pixels
        """
        try:
            matcher = build_matcher(key, text, type, x, y)
            logger.info(f"Tapping element with matcher: {matcher}")
            response = await connector.tap_element(matcher)
            return {
                "success": True,
                "data": {"message": response.get("message") or "Successfully tapped element"},
            }
        except Exception as e:
            logger.warning(f"Failed to tap element: {e}")
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def enter_text(
        input: str,
        key: str | None = None,
        text: str | None = None,
        type: str | None = None,
        x: float | None = None,
        y: float | None = None,
    ) -> dict:
        """
        Replace the text of a text field.

        Identify the field by key, text or type (or x and y of a point on
        it). The matched element may also be an ancestor of the field.

        Args:
            input: The text to enter
            key: Key of the text field
            text: Text currently shown by the field
            type: Element type name, e.g. TextField
            x: Horizontal position in logical pixels
            y: Vertical position in logical pixels
        """
        try:
            matcher = build_matcher(key, text, type, x, y)
            logger.info(f"Entering text into element with matcher: {matcher}")
            response = await connector.enter_text(matcher, input)
            return {
                "success": True,
                "data": {"message": response.get("message") or "Successfully entered text"},
            }
        except Exception as e:
            logger.warning(f"Failed to enter text: {e}")
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def scroll_to(
        key: str | None = None,
        text: str | None = None,
        type: str | None = None,
    ) -> dict:
        """
        Scroll until an element becomes visible.

        Use this to reach elements that are currently off screen before
        tapping them.

        Args:
            key: Key of the element
            text: Visible text of the element
            type: Element type name
        """
        try:
            matcher = build_matcher(key, text, type)
            logger.info(f"Scrolling to element with matcher: {matcher}")
            response = await connector.scroll_to_element(matcher)
            return {
                "success": True,
                "data": {"message": response.get("message") or "Successfully scrolled to element"},
            }
        except Exception as e:
            logger.warning(f"Failed to scroll to element: {e}")
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def hot_reload() -> dict:
        """
        Hot reload the app's sources.

        Uses the reload service registered by the development tooling when
        there is one, otherwise asks the VM to reload directly. The app's
        collected logs are cleared.
        """
        try:
            result = await connector.hot_reload()
            return {"success": result.success, "data": result.to_dict()}
        except Exception as e:
            logger.warning(f"Failed to hot reload: {e}")
            return {"success": False, "error": str(e)}

    # ============== Custom Extensions ==============

    @mcp.tool()
    async def list_custom_extensions() -> dict:
        """
        List the app-specific extensions registered by the app.

        Each entry has a name and, when provided, a description. Invoke them
        with call_custom_extension.
        """
        try:
            response = await connector.list_custom_extensions()
            return {"success": True, "data": {"extensions": response.get("extensions") or []}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def call_custom_extension(
        extension: str,
        args: dict[str, Any] | None = None,
    ) -> dict:
        """
        Call an app-specific extension.

        Args:
            extension: Extension name as listed by list_custom_extensions,
                without the ext.flutter. prefix
            args: Arguments; non-string values are sent JSON-encoded
        """
        try:
            response = await connector.call_custom_extension(extension, args)
            data = {
                k: v for k, v in response.items() if k not in ("type", "method", "status")
            }
            return {"success": True, "data": data}
        except Exception as e:
            logger.warning(f"Failed to call extension {extension}: {e}")
            return {"success": False, "error": str(e)}

    register_resources(mcp, connector)

    return mcp
