"""Command-line interface for the Florist MCP Server."""

import argparse
import asyncio
import os


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Florist MCP Server - Browse and order flowers from Florist One"
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="Server mode: stdio (MCP server for clients) or http (proxy that signs requests to Florist One)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Proxy listen host (http mode only, default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "8080")),
        help="Proxy listen port (http mode only, default: $PORT or 8080)",
    )

    args = parser.parse_args()

    if args.mode == "stdio":
        # Run MCP server via stdio
        from .server import main as server_main

        asyncio.run(server_main())
    elif args.mode == "http":
        # Run the credential-adding proxy the stdio server talks to
        from .http_server import run_http_server

        print(f"Starting Florist One proxy on {args.host}:{args.port}")
        print(f"Point FLORIST_STOREFRONT_API at http://{args.host}:{args.port}/api")
        run_http_server(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
