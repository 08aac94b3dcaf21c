"""chatsync — main application entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def _configure_logging(level_name: str, *, to_stderr: bool) -> Path:
    """Route logs to a rotating file (and stderr outside the TUI)."""
    log_dir = Path.home() / ".chatsync" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "chatsync.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    if to_stderr:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(logging.WARNING)
        root.addHandler(stream_handler)
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatsync",
        description="chatsync — resumable chat with a remote conversational agent",
    )
    parser.add_argument(
        "--headless", action="store_true",
        help="Plain console instead of the terminal UI",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (server, timing, retry, storage, logging)",
    )
    parser.add_argument(
        "--base-url", metavar="URL",
        help="Chatbot backend base URL (default: from config)",
    )
    parser.add_argument(
        "--session", metavar="ID",
        help="Session id; state is kept per session",
    )
    parser.add_argument(
        "--treatment-group", metavar="NAME",
        help="Experiment arm forwarded with every request",
    )
    parser.add_argument(
        "--state-dir", metavar="DIR",
        help="Directory for session state files",
    )
    parser.add_argument(
        "--memory", action="store_true",
        help="Keep session state in memory only",
    )
    parser.add_argument(
        "--new", action="store_true",
        help="Forget the stored session and start a fresh conversation",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    from chatsync.engine.config import SyncConfig
    from chatsync.engine.yaml_config import load_yaml_config
    from chatsync.shared.services.state_store import open_state_store

    config = SyncConfig.from_env()
    if args.config:
        config = load_yaml_config(args.config, config)
    if args.base_url:
        config.base_url = args.base_url
    if args.session:
        config.session_id = args.session
    if args.treatment_group:
        config.treatment_group = args.treatment_group
    if args.state_dir:
        config.state_dir = args.state_dir
    if args.memory:
        config.state_dir = None

    level = "DEBUG" if args.verbose else os.getenv("CHATSYNC_LOG_LEVEL", config.log_level)
    log_file = _configure_logging(level, to_stderr=args.headless)
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting chatsync session=%s base_url=%s headless=%s log=%s",
        config.session_id, config.base_url, args.headless, log_file,
    )

    if args.new:
        open_state_store(config.state_dir, config.session_id).end_session()

    if args.headless:
        from chatsync.engine.cli import run_headless

        try:
            asyncio.run(run_headless(config))
        except KeyboardInterrupt:
            print("\nInterrupted.")
        return

    from chatsync.tui.app import ChatbotApp

    ChatbotApp(config).run()


if __name__ == "__main__":
    main()
