"""
Command-line entry point.

`llm-compare serve` runs the HTTP API; `llm-compare ask` streams one
comparison from a running server to the terminal.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import socket
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TextIO

import uvicorn
from fastapi import FastAPI

from llm_compare import __version__
from llm_compare.client import DEFAULT_SERVER_URL, CompareClient, ResponseAccumulator
from llm_compare.core.app.application_factory import build_app
from llm_compare.core.common.exceptions import LLMCompareError
from llm_compare.core.common.logging_utils import (
    configure_logging,
    discover_credentials,
    install_redaction_filter,
)
from llm_compare.core.config.app_config import AppConfig, LogLevel, load_config
from llm_compare.core.domain.backend_type import BackendType


def is_port_in_use(host: str, port: int) -> bool:
    """Check if a port is in use on a given host."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


def _parse_api_key_arg(value: str) -> tuple[BackendType, str]:
    """Parse a BACKEND=KEY pair."""
    name, sep, key = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"Expected BACKEND=KEY, got {value!r}")
    try:
        backend = BackendType(name.strip().lower())
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Unknown backend {name!r}; choose from {', '.join(BackendType.values())}"
        ) from None
    return backend, key.strip()


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-compare",
        description="Compare streamed answers from several LLM backends",
    )
    parser.add_argument("--version", action="version", version=__version__)
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the comparison API server")
    serve.add_argument("--host", default=None, help="Host to bind")
    serve.add_argument("--port", type=int, default=None, help="Port to bind")
    serve.add_argument(
        "--config",
        dest="config_file",
        metavar="FILE",
        default=None,
        help="YAML configuration file",
    )
    serve.add_argument(
        "--log-level",
        dest="log_level",
        choices=[level.value for level in LogLevel],
        default=None,
        help="Logging level",
    )
    serve.add_argument(
        "--log",
        dest="log_file",
        metavar="FILE",
        default=None,
        help="Also write logs to FILE",
    )

    ask = subparsers.add_parser("ask", help="Stream a comparison from a running server")
    ask.add_argument("prompt", help="Prompt sent to every backend")
    ask.add_argument(
        "-p",
        "--provider",
        dest="providers",
        action="append",
        choices=BackendType.values(),
        default=None,
        help="Backend to query; repeat for several (default: all)",
    )
    ask.add_argument("--url", default=DEFAULT_SERVER_URL, help="Server base URL")
    ask.add_argument(
        "--keys-file",
        dest="keys_file",
        metavar="FILE",
        default=None,
        help="JSON object mapping backend to API key, sent as overrides",
    )
    ask.add_argument(
        "--api-key",
        dest="api_keys",
        metavar="BACKEND=KEY",
        action="append",
        type=_parse_api_key_arg,
        default=[],
        help="Override the server's credential for one backend",
    )
    return parser


def parse_cli_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_cli_parser().parse_args(argv)


def apply_cli_args(args: argparse.Namespace) -> AppConfig:
    """Load configuration and apply `serve` arguments on top of it."""
    cfg = load_config(args.config_file)
    if args.host:
        cfg.host = args.host
    if args.port is not None:
        cfg.port = args.port
    if args.log_level:
        cfg.logging.level = LogLevel(args.log_level)
    if args.log_file:
        cfg.logging.log_file = args.log_file
    return cfg


def _configure_logging(cfg: AppConfig) -> None:
    configure_logging(
        level=getattr(logging, cfg.logging.level.value),
        log_file=cfg.logging.log_file,
    )
    install_redaction_filter(discover_credentials(cfg))


def _load_keys_file(path: str) -> dict[BackendType, str]:
    try:
        data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise LLMCompareError(f"Could not read keys file {path}: {e}") from e
    if not isinstance(data, dict):
        raise LLMCompareError(f"Keys file {path} must contain a JSON object")
    return {
        BackendType(name): key
        for name, key in data.items()
        if name in BackendType.values() and isinstance(key, str)
    }


async def run_ask(args: argparse.Namespace, out: TextIO) -> int:
    """Stream one comparison to `out`; return the process exit status."""
    providers = [BackendType(p) for p in (args.providers or BackendType.values())]
    overrides: dict[BackendType, str] = {}
    if args.keys_file:
        overrides.update(_load_keys_file(args.keys_file))
    overrides.update(dict(args.api_keys))

    accumulator = ResponseAccumulator(providers)
    async with CompareClient(args.url) as client:
        async for event in client.stream(args.prompt, providers, overrides):
            accumulator.apply(event)
            if event.chunk:
                out.write(f"[{event.provider.value}] {event.chunk}\n")
                out.flush()

    out.write("\n")
    responses = accumulator.responses
    for backend, response in responses.items():
        if response.error is not None:
            out.write(f"{backend.display_name}: failed: {response.error}\n")
        elif response.is_streaming:
            out.write(f"{backend.display_name}: incomplete\n")
        else:
            out.write(f"{backend.display_name}: {len(response.content)} characters\n")

    if responses and all(r.failed for r in responses.values()):
        return 1
    return 0


def serve(
    args: argparse.Namespace, build_app_fn: Callable[[AppConfig], FastAPI] | None = None
) -> None:
    cfg = apply_cli_args(args)
    _configure_logging(cfg)

    app = build_app_fn(cfg) if build_app_fn else build_app(cfg)

    if is_port_in_use(cfg.host, cfg.port):
        error_msg = f"Port {cfg.port} is already in use."
        logging.error(error_msg)
        sys.stderr.write(f"\nERROR: {error_msg}\n")
        sys.exit(1)

    logging.info("Starting uvicorn on %s:%s", cfg.host, cfg.port)
    uvicorn.run(app, host=cfg.host, port=cfg.port)


def main(
    argv: Sequence[str] | None = None,
    build_app_fn: Callable[[AppConfig], FastAPI] | None = None,
) -> None:
    args = parse_cli_args(argv)

    try:
        if args.command == "serve":
            serve(args, build_app_fn)
            return
        sys.exit(asyncio.run(run_ask(args, sys.stdout)))
    except LLMCompareError as e:
        sys.stderr.write(f"ERROR: {e.message}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
