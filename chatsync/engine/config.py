"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CHATSYNC_* env vars.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .retry import RetryPolicy

logger = logging.getLogger(__name__)


# Optional async callback for lifecycle observation.
# Signature: async def callback(event: dict[str, Any]) -> None
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]


async def fire_event(
    callback: EventCallback | None,
    event: dict[str, Any],
) -> None:
    """Fire an event callback if set, logging and dropping its errors."""
    if callback is None:
        return
    try:
        await callback(event)
    except Exception:
        # Never let observer errors break a flow
        logger.debug("Event callback failed for %s", event.get("event"), exc_info=True)


def _default_state_dir() -> str:
    return str(Path.home() / ".chatsync" / "sessions")


@dataclass
class SyncConfig:
    """Synchronization engine configuration."""

    # Chatbot backend
    base_url: str = "http://localhost:3000"
    request_timeout_seconds: float = 30.0
    treatment_group: str | None = None
    # ``from.id`` the backend stamps on echoed user activities.
    user_id: str = "user1"

    # Retry loops
    retry_delay_seconds: float = 2.0
    retry_max_attempts: int | None = None

    # Typing indicator and welcome-message pacing
    typing_delay_seconds: float = 0.75
    initial_typing_delay_seconds: float = 0.25
    initial_message_delay_seconds: float = 0.8

    # Persistence. ``state_dir`` of None keeps state in memory only.
    state_dir: str | None = field(default_factory=_default_state_dir)
    session_id: str = "default"

    # Logging
    log_level: str = "INFO"

    event_callback: EventCallback | None = field(default=None, repr=False)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            delay_seconds=self.retry_delay_seconds,
            max_attempts=self.retry_max_attempts,
        )

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load configuration from CHATSYNC_* environment variables."""
        sync_vars = {
            k: v for k, v in os.environ.items() if k.startswith("CHATSYNC_")
        }
        if sync_vars:
            logger.info(
                "SyncConfig.from_env: CHATSYNC_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(sync_vars.items())),
            )
        else:
            logger.debug("SyncConfig.from_env: no CHATSYNC_* env vars set, using defaults")

        max_attempts = os.getenv("CHATSYNC_RETRY_MAX_ATTEMPTS", "").strip()
        state_dir = os.getenv("CHATSYNC_STATE_DIR")
        config = cls(
            base_url=os.getenv("CHATSYNC_BASE_URL", cls.base_url),
            request_timeout_seconds=float(os.getenv(
                "CHATSYNC_REQUEST_TIMEOUT", str(cls.request_timeout_seconds)
            )),
            treatment_group=os.getenv("CHATSYNC_TREATMENT_GROUP") or None,
            user_id=os.getenv("CHATSYNC_USER_ID", cls.user_id),
            retry_delay_seconds=float(os.getenv(
                "CHATSYNC_RETRY_DELAY", str(cls.retry_delay_seconds)
            )),
            retry_max_attempts=int(max_attempts) if max_attempts else None,
            typing_delay_seconds=float(os.getenv(
                "CHATSYNC_TYPING_DELAY", str(cls.typing_delay_seconds)
            )),
            initial_typing_delay_seconds=float(os.getenv(
                "CHATSYNC_INITIAL_TYPING_DELAY",
                str(cls.initial_typing_delay_seconds),
            )),
            initial_message_delay_seconds=float(os.getenv(
                "CHATSYNC_INITIAL_MESSAGE_DELAY",
                str(cls.initial_message_delay_seconds),
            )),
            state_dir=(
                None if state_dir == ""
                else state_dir or _default_state_dir()
            ),
            session_id=os.getenv("CHATSYNC_SESSION_ID", cls.session_id),
            log_level=os.getenv("CHATSYNC_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "SyncConfig.from_env: base_url=%s session=%s state_dir=%s log_level=%s",
            config.base_url, config.session_id,
            config.state_dir or "<memory>", config.log_level,
        )
        return config
