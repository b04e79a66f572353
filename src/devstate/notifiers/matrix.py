"""Matrix chat notifier (client-server API over aiohttp)."""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any
from urllib.parse import quote

import aiohttp

from devstate._constants import CHAT_MAX_RETRIES, CHAT_RETRY_DELAY_S
from devstate.config import MatrixSettings
from devstate.exceptions import NotifierError

_logger = logging.getLogger(__name__)


class MatrixNotifier:
    """Posts ``m.notice`` messages to a Matrix room.

    A failed send is retried after ``retry_delay`` seconds, at most
    ``max_retries`` times, reusing the same transaction id so the homeserver
    deduplicates a retry of a request that did get through.
    """

    name = "matrix"

    def __init__(
        self,
        settings: MatrixSettings,
        *,
        session: aiohttp.ClientSession | None = None,
        retry_delay: float = CHAT_RETRY_DELAY_S,
        max_retries: int = CHAT_MAX_RETRIES,
    ) -> None:
        self._settings = settings
        self._external_session = session is not None
        self._http_session = session
        self._retry_delay = retry_delay
        self._max_retries = max_retries

    def message_url(self, txn_id: str) -> str:
        room = quote(self._settings.room_id or "", safe="")
        return f"{self._settings.base_url}/_matrix/client/v3/rooms/{room}/send/m.room.message/{quote(txn_id, safe='')}"

    async def send(self, subject: str, body: str) -> None:
        # Chat carries the body only; the subject is for mail.
        txn_id = f"devstate-{secrets.token_hex(8)}"
        attempt = 0
        while True:
            try:
                await self._send_once(txn_id, body)
                return
            except NotifierError as exc:
                if attempt >= self._max_retries:
                    raise
                attempt += 1
                _logger.error("%s (retry %d/%d in %.0fs)", exc, attempt, self._max_retries, self._retry_delay)
                await asyncio.sleep(self._retry_delay)

    async def aclose(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout),
            )
        return self._http_session

    async def _send_once(self, txn_id: str, body: str) -> None:
        session = self._require_session()
        url = self.message_url(txn_id)
        payload: dict[str, Any] = {"msgtype": "m.notice", "body": body}
        headers = {"Authorization": f"Bearer {self._settings.access_token}"}

        _logger.debug("PUT %s", url)

        try:
            async with session.put(url, json=payload, headers=headers) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise NotifierError(
                        f"Matrix send failed: HTTP {resp.status}: {text[:200]}",
                        channel=self.name,
                    )
        except NotifierError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise NotifierError(f"Matrix send failed: {exc}", channel=self.name) from exc
