"""MCP server that lets AI agents drive a running app's UI through its VM service."""

__version__ = "0.1.0"
