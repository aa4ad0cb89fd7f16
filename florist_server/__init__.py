"""Florist One flower shop MCP server and storefront API proxy."""

__version__ = "0.1.0"
