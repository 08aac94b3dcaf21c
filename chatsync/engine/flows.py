"""Per-flow state machines persisted in the state store.

Each network flow (start, poll, send) moves ``IDLE -> IN_FLIGHT -> IDLE``.
The transition into ``IN_FLIGHT`` is a compare-and-set on the store with no
await point between the check and the write, which makes it atomic on the
event loop. The persisted discriminant doubles as the "left mid-flight"
marker the resumption coordinator reads after a restart.
"""
from __future__ import annotations

import logging

from chatsync.engine.models import Flag, FlowState
from chatsync.shared.services.state_store import StateStore

logger = logging.getLogger(__name__)


class FlowGuard:
    """Re-entrancy guard for one flow."""

    def __init__(self, store: StateStore, flag: Flag) -> None:
        if not flag.is_flow:
            raise ValueError(f"{flag.value} is not a flow flag")
        self._store = store
        self._flag = flag

    @property
    def flag(self) -> Flag:
        return self._flag

    @property
    def state(self) -> FlowState:
        return self._store.get_flow_state(self._flag)

    @property
    def in_flight(self) -> bool:
        return self.state is FlowState.IN_FLIGHT

    def try_enter(self) -> bool:
        """Claim the flow. False means another run already holds it."""
        entered = self._store.compare_and_set_flow(
            self._flag, FlowState.IDLE, FlowState.IN_FLIGHT,
        )
        if not entered:
            logger.debug("%s already in flight; skipping", self._flag.value)
        return entered

    def hold(self) -> None:
        """Force the flow in flight (used while a buffered batch is pending)."""
        self._store.set_flow_state(self._flag, FlowState.IN_FLIGHT)

    def leave(self) -> None:
        self._store.set_flow_state(self._flag, FlowState.IDLE)

    def __repr__(self) -> str:
        return f"FlowGuard({self._flag.value}={self.state.value})"
