"""YAML configuration loader.

Overlays a YAML file onto a ``SyncConfig`` (usually the one built from
environment variables). Keys missing from the file keep their current
value.

Example YAML:
    server:
      base_url: https://survey.example.com
      request_timeout_seconds: 30
      treatment_group: B
      user_id: user1

    timing:
      typing_delay_seconds: 0.75
      initial_typing_delay_seconds: 0.25
      initial_message_delay_seconds: 0.8

    retry:
      delay_seconds: 2
      max_attempts: null      # unbounded

    storage:
      state_dir: ~/.chatsync/sessions   # empty string keeps state in memory
      session_id: participant-42

    logging:
      level: DEBUG
"""
from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from .config import SyncConfig

logger = logging.getLogger(__name__)


def _section(raw: dict, name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        logger.warning("Ignoring YAML section %r: expected a mapping", name)
        return {}
    return value


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def apply_yaml_config(raw: dict, base: SyncConfig | None = None) -> SyncConfig:
    """Return a copy of *base* with the parsed YAML sections applied."""
    config = base if base is not None else SyncConfig()
    server = _section(raw, "server")
    timing = _section(raw, "timing")
    retry = _section(raw, "retry")
    storage = _section(raw, "storage")
    logging_raw = _section(raw, "logging")

    state_dir = storage.get("state_dir", config.state_dir)
    if isinstance(state_dir, str):
        state_dir = str(Path(state_dir).expanduser()) if state_dir else None

    return replace(
        config,
        base_url=str(server.get("base_url", config.base_url)),
        request_timeout_seconds=float(server.get(
            "request_timeout_seconds", config.request_timeout_seconds
        )),
        treatment_group=server.get("treatment_group", config.treatment_group),
        user_id=str(server.get("user_id", config.user_id)),
        typing_delay_seconds=float(timing.get(
            "typing_delay_seconds", config.typing_delay_seconds
        )),
        initial_typing_delay_seconds=float(timing.get(
            "initial_typing_delay_seconds",
            config.initial_typing_delay_seconds,
        )),
        initial_message_delay_seconds=float(timing.get(
            "initial_message_delay_seconds",
            config.initial_message_delay_seconds,
        )),
        retry_delay_seconds=float(retry.get(
            "delay_seconds", config.retry_delay_seconds
        )),
        retry_max_attempts=(
            _optional_int(retry["max_attempts"]) if "max_attempts" in retry
            else config.retry_max_attempts
        ),
        state_dir=state_dir,
        session_id=str(storage.get("session_id", config.session_id)),
        log_level=str(logging_raw.get("level", config.log_level)).upper(),
    )


def load_yaml_config(path: str | Path, base: SyncConfig | None = None) -> SyncConfig:
    """Load and parse a YAML config file onto *base*."""
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists()
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute()
        )
        raise
    except yaml.YAMLError as exc:
        logger.error(
            "load_yaml_config: YAML parse error in %s: %s",
            path, exc
        )
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level of the config must be a mapping")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s — sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )
    return apply_yaml_config(raw, base)
