"""Session-scoped state store: conversation snapshot and operation flags.

Storage layout (one key/value namespace per session):
    conversation      serialized ConversationSnapshot (JSON)
    startInProgress   flow state: "idle" | "in_flight"
    pollInProgress    flow state
    sendInProgress    flow state
    terminalReached   "true" | "false"
    interfaceOpenedOnce "true" | "false"
    clientSideMsgId   last pending outbound correlation id
    treatmentGroup    experiment arm forwarded with every request

The file backend keeps the namespace in ``<state_dir>/<session_id>.json``.
The snapshot is replaced wholesale on every save (last writer wins); sends
and polls never overlap, so there is a single writer at any time.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Protocol

from chatsync.engine.models import ConversationSnapshot, Flag, FlowState
from chatsync.shared.services.durable_write import atomic_write_json, remove_durably

logger = logging.getLogger(__name__)

KEY_CONVERSATION = "conversation"
KEY_CLIENT_MSG_ID = "clientSideMsgId"
KEY_TREATMENT_GROUP = "treatmentGroup"


class KeyValueBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryBackend:
    """Process-local backend; gone when the process exits."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def items(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileBackend:
    """Write-through backend persisted as one JSON object per session."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._data: dict[str, str] = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Discarding unreadable session state %s: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Discarding session state %s: not a JSON object", self._path)
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def _flush(self) -> None:
        atomic_write_json(self._path, self._data)

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._data.clear()
        remove_durably(self._path)


class StateStore:
    """Typed access to the session namespace. Synchronous, no network."""

    def __init__(self, backend: KeyValueBackend | None = None) -> None:
        self._backend: KeyValueBackend = backend if backend is not None else MemoryBackend()

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    # ── Snapshot ──

    def has_snapshot(self) -> bool:
        return self._backend.get(KEY_CONVERSATION) is not None

    def load(self) -> ConversationSnapshot:
        """Return the persisted snapshot, or a fresh empty one."""
        raw = self._backend.get(KEY_CONVERSATION)
        if raw is None:
            return ConversationSnapshot()
        try:
            return ConversationSnapshot.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Persisted conversation is corrupt, starting empty: %s", exc)
            return ConversationSnapshot()

    def save(self, snapshot: ConversationSnapshot) -> None:
        self._backend.set(KEY_CONVERSATION, json.dumps(snapshot.to_dict()))

    # ── Flags ──

    def get_flow_state(self, flag: Flag) -> FlowState:
        raw = self._backend.get(flag.value)
        try:
            return FlowState(raw) if raw is not None else FlowState.IDLE
        except ValueError:
            logger.warning("Unknown state %r for %s, treating as idle", raw, flag.value)
            return FlowState.IDLE

    def set_flow_state(self, flag: Flag, state: FlowState) -> None:
        if not flag.is_flow:
            raise ValueError(f"{flag.value} is not a flow flag")
        self._backend.set(flag.value, state.value)

    def compare_and_set_flow(
        self, flag: Flag, expected: FlowState, new: FlowState,
    ) -> bool:
        """Move *flag* from *expected* to *new*; False if it was elsewhere."""
        if self.get_flow_state(flag) is not expected:
            return False
        self.set_flow_state(flag, new)
        return True

    def get_flag(self, name: Flag | str) -> bool:
        flag = Flag(name)
        if flag.is_flow:
            return self.get_flow_state(flag) is FlowState.IN_FLIGHT
        return self._backend.get(flag.value) == "true"

    def set_flag(self, name: Flag | str, value: bool) -> None:
        flag = Flag(name)
        if flag.is_flow:
            self.set_flow_state(
                flag, FlowState.IN_FLIGHT if value else FlowState.IDLE,
            )
        else:
            self._backend.set(flag.value, "true" if value else "false")

    # ── Scalars ──

    def get_pending_client_msg_id(self) -> str | None:
        return self._backend.get(KEY_CLIENT_MSG_ID)

    def set_pending_client_msg_id(self, client_side_msg_id: str) -> None:
        self._backend.set(KEY_CLIENT_MSG_ID, client_side_msg_id)

    def get_treatment_group(self) -> str | None:
        return self._backend.get(KEY_TREATMENT_GROUP)

    def set_treatment_group(self, treatment_group: str) -> None:
        self._backend.set(KEY_TREATMENT_GROUP, treatment_group)

    def end_session(self) -> None:
        """Forget everything stored for this session."""
        self._backend.clear()
        logger.info("Session state cleared")


def _safe_session_name(session_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", session_id) or "default"


def open_state_store(state_dir: str | Path | None, session_id: str) -> StateStore:
    """Open the store for *session_id*; ``state_dir=None`` keeps it in memory."""
    if state_dir is None:
        logger.debug("Using in-memory session state for %s", session_id)
        return StateStore(MemoryBackend())
    path = Path(state_dir).expanduser() / f"{_safe_session_name(session_id)}.json"
    logger.info("Session state file: %s", path)
    return StateStore(JsonFileBackend(path))
