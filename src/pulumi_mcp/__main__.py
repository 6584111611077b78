"""
Pulumi MCP Server command line.

Examples:
  pulumi-mcp-server stdio
  pulumi-mcp-server sse --port 3000
  pulumi-mcp-server http --port 3000
"""

import argparse
import sys
from typing import Optional, Sequence

from .constants import DEFAULT_PORT, SERVER_NAME, SERVER_VERSION
from .errors import ConfigurationError
from .logger import setup_logging


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="Pulumi MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {SERVER_VERSION}")
    subparsers = parser.add_subparsers(dest="transport")

    subparsers.add_parser("stdio", help="Run over stdin/stdout (default)")
    for name, help_text in (
        ("sse", "Run as an SSE server"),
        ("http", "Run as a Streamable HTTP server with session management"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--port",
            type=int,
            default=DEFAULT_PORT,
            help=f"Port to listen on (default: {DEFAULT_PORT})",
        )

    args = parser.parse_args(argv)
    if args.transport is None:
        args.transport = "stdio"
    if not hasattr(args, "port"):
        args.port = DEFAULT_PORT
    return args


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point"""
    args = parse_args(argv)
    setup_logging()

    from .transport import run_server

    try:
        run_server(transport=args.transport, port=args.port)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
