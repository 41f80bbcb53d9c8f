"""Command line entry point for statusbridge."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import contextlib
import signal
import sys

from statusbridge import __version__
from statusbridge.auth.session_login import acquire_session_token
from statusbridge.config import AppConfig, load_config, load_runtime_env, render_config_template
from statusbridge.errors import EX_OK, EX_SOFTWARE, AppError
from statusbridge.integrations.registry import build_source_adapter, build_status_client
from statusbridge.integrations.revolt_client import DEFAULT_API_URL
from statusbridge.logging import configure_logging, get_logger
from statusbridge.logging_events import log_event
from statusbridge.workers.status_sync_worker import StatusSyncWorker

logger = get_logger(__name__)

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statusbridge",
        description="Mirror your now-playing track into your Revolt status.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (DEBUG, INFO, WARNING, ERROR)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser("start", help="Start syncing the status")
    start.add_argument("-c", "--config", default=None, help="Path to the YAML configuration file")

    config = commands.add_parser("config", help="Configuration helpers")
    config_commands = config.add_subparsers(dest="config_command", required=True)
    config_commands.add_parser("generate", help="Print an example configuration file")

    revolt = commands.add_parser("revolt", help="Revolt account helpers")
    revolt_commands = revolt.add_subparsers(dest="revolt_command", required=True)
    token = revolt_commands.add_parser(
        "get-session-token", help="Log in to Revolt to obtain a new session token"
    )
    token.add_argument("--api-url", default=DEFAULT_API_URL, help="Revolt API base URL")
    return parser


async def run_service(config: AppConfig) -> int:
    """Run the supervisor loop until it is stopped or fails permanently."""

    source = build_source_adapter(config)
    sync_client = build_status_client(config)
    worker = StatusSyncWorker(
        source=source,
        sync_client=sync_client,
        status_config=config.revolt.status,
    )

    loop = asyncio.get_running_loop()

    def _signal_stop() -> None:
        logger.info("Stop signal received. Finishing the current tick...")
        worker.request_stop()

    installed: list[signal.Signals] = []
    for sig in _STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, _signal_stop)
        except (NotImplementedError, RuntimeError):
            # Not supported by every event loop (e.g. on Windows).
            continue
        installed.append(sig)

    try:
        await worker.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        with contextlib.suppress(Exception):
            await source.aclose()
        with contextlib.suppress(Exception):
            await sync_client.aclose()
    return EX_OK


def _start(args: argparse.Namespace) -> int:
    runtime_env = load_runtime_env(config_path=args.config)
    config = load_config(runtime_env)
    configure_logging(args.log_level or config.logging.level, config.logging.file)
    log_event(logger, "service.start", enabled_sources=",".join(config.enabled_sources()))
    return asyncio.run(run_service(config))


def _get_session_token(args: argparse.Namespace) -> int:
    asyncio.run(acquire_session_token(api_url=args.api_url))
    return EX_OK


def cli(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or "INFO")

    try:
        if args.command == "config":
            sys.stdout.write(render_config_template())
            return EX_OK
        if args.command == "revolt":
            return _get_session_token(args)
        return _start(args)
    except AppError as exc:
        logger.error("%s", exc.message)
        log_event(logger, "service.failed", code=exc.code.value, exit_code=exc.exit_code)
        return exc.exit_code
    except KeyboardInterrupt:
        return EX_OK
    except Exception:  # pragma: no cover - last resort for unexpected failures
        logger.exception("Unknown catastrophic error")
        return EX_SOFTWARE


def main() -> None:
    raise SystemExit(cli())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
