"""Configuration, logging, request authentication, analytics and database query service for an MCP server."""

__version__ = "0.1.0"

__all__ = ["analytics", "auth", "config", "database", "logger"]