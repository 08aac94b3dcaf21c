"""HTTP client for the chatbot backend.

Three JSON-over-POST endpoints, relative to ``SyncConfig.base_url``:

    /startconversation  {treatmentGroup}                     -> {conversationId}
    /getactivities      {conversationId, watermark, treatmentGroup}
                                                             -> {activities, watermark}
    /sendmessage        {conversationId, text, treatmentGroup, clientSideMsgId}
                                                             -> {id} | {status: "in_progress"}

Every failure is raised as a ``ChatSyncError`` subclass. Failures that
happen once the connection is up (server hung up or reset, response body
broke, read or total timeout expired) are raised as
``AmbiguousDeliveryError`` so the sender can avoid transmitting the same
message twice.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from .errors import (
    AmbiguousDeliveryError,
    MalformedResponseError,
    ResponseStatusError,
    TransportError,
)
from .models import Activity, PollResult, SendResult

logger = logging.getLogger(__name__)

START_PATH = "/startconversation"
POLL_PATH = "/getactivities"
SEND_PATH = "/sendmessage"


class ChatbotTransport(Protocol):
    """What the flows need from the network."""

    async def start(self, treatment_group: str | None) -> str: ...

    async def poll(
        self,
        conversation_id: str | None,
        watermark: str | None,
        treatment_group: str | None,
    ) -> PollResult: ...

    async def send(
        self,
        conversation_id: str | None,
        text: str,
        treatment_group: str | None,
        client_side_msg_id: str,
    ) -> SendResult: ...


def parse_poll_response(data: Any) -> PollResult:
    if not isinstance(data, dict):
        raise MalformedResponseError(POLL_PATH, f"expected object, got {type(data).__name__}")
    raw_activities = data.get("activities")
    activities: list[Activity] | None = None
    if raw_activities is not None:
        if not isinstance(raw_activities, list):
            raise MalformedResponseError(POLL_PATH, "'activities' is not a list")
        try:
            activities = [Activity.from_dict(a) for a in raw_activities]
        except (KeyError, TypeError, AttributeError) as exc:
            raise MalformedResponseError(POLL_PATH, f"bad activity: {exc}") from exc
    watermark = data.get("watermark")
    return PollResult(
        activities=activities,
        watermark=str(watermark) if watermark not in (None, "") else None,
    )


def parse_send_response(data: Any) -> SendResult:
    if not isinstance(data, dict):
        raise MalformedResponseError(SEND_PATH, f"expected object, got {type(data).__name__}")
    if data.get("id"):
        return SendResult(activity_id=str(data["id"]))
    if data.get("status") == "in_progress":
        return SendResult(in_progress=True)
    raise MalformedResponseError(SEND_PATH, f"unknown server response: {json.dumps(data)}")


class HttpChatbotTransport:
    """aiohttp implementation of ``ChatbotTransport``.

    The underlying ``ClientSession`` is created lazily on the running loop
    and must be released with ``close()``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _post_json(self, path: str, payload: dict[str, Any]) -> Any:
        session = self._get_session()
        try:
            async with session.post(self._url(path), json=payload) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise ResponseStatusError(path, resp.status)
                raw = await resp.text()
        except (aiohttp.ClientConnectorError, aiohttp.ConnectionTimeoutError) as exc:
            # Never reached the server; safe to retry.
            raise TransportError(path, f"{type(exc).__name__}: {exc}") from exc
        except (
            aiohttp.ServerDisconnectedError,
            aiohttp.ClientPayloadError,
            aiohttp.ServerTimeoutError,
            aiohttp.ClientOSError,
            asyncio.TimeoutError,
        ) as exc:
            # Connected, so the request may already be on the wire; the
            # outcome is unknown.
            raise AmbiguousDeliveryError(path, f"{type(exc).__name__}: {exc}") from exc
        except aiohttp.ClientResponseError as exc:
            raise ResponseStatusError(path, exc.status) from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise TransportError(path, f"{type(exc).__name__}: {exc}") from exc

        if not raw:
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(path, f"invalid JSON: {exc}") from exc

    async def start(self, treatment_group: str | None) -> str:
        data = await self._post_json(START_PATH, {"treatmentGroup": treatment_group})
        conversation_id = data.get("conversationId") if isinstance(data, dict) else None
        if not conversation_id:
            raise MalformedResponseError(START_PATH, "missing 'conversationId'")
        return str(conversation_id)

    async def poll(
        self,
        conversation_id: str | None,
        watermark: str | None,
        treatment_group: str | None,
    ) -> PollResult:
        data = await self._post_json(POLL_PATH, {
            "conversationId": conversation_id,
            "watermark": watermark,
            "treatmentGroup": treatment_group,
        })
        return parse_poll_response(data)

    async def send(
        self,
        conversation_id: str | None,
        text: str,
        treatment_group: str | None,
        client_side_msg_id: str,
    ) -> SendResult:
        data = await self._post_json(SEND_PATH, {
            "conversationId": conversation_id,
            "text": text,
            "treatmentGroup": treatment_group,
            "clientSideMsgId": client_side_msg_id,
        })
        return parse_send_response(data)
