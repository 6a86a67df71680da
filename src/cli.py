"""Command-line entry point for the alerts BFF.

Usage:
    uv run python -m src.cli serve
    uv run python -m src.cli serve --port 3001 --log-level debug
    uv run python -m src.cli send-samples --url http://localhost:3001 --delay 0
"""

import argparse
import asyncio
import logging
import os
import sys

import uvicorn

from scripts.send_test_alerts import send_all


def _serve(args: argparse.Namespace) -> None:
    print(f"Dashboard BFF server running on http://localhost:{args.port}")
    print(f"WebSocket endpoint: ws://localhost:{args.port}/ws")
    print(f"Webhook endpoint: http://localhost:{args.port}/ingest/webhook")
    uvicorn.run("src.api.main:app", host=args.host, port=args.port, log_level=args.log_level)


def _send_samples(args: argparse.Namespace) -> None:
    if not asyncio.run(send_all(args.url, args.delay)):
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Alerts dashboard BFF")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level for application and server logs",
    )
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the HTTP/websocket server (default)")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=3001, help="Listen port (default: 3001)")
    serve.set_defaults(handler=_serve)

    samples = commands.add_parser("send-samples", help="Post the sample alert sequence to a running server")
    samples.add_argument(
        "--url",
        default=os.environ.get("BFF_URL", "http://localhost:3001"),
        help="BFF base URL (default: $BFF_URL or http://localhost:3001)",
    )
    samples.add_argument("--delay", type=float, default=1.0, help="Seconds between events (default: 1)")
    samples.set_defaults(handler=_send_samples)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse args and dispatch to the chosen command."""
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else argv
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args([*argv, "serve"])

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.handler(args)


if __name__ == "__main__":
    main()
