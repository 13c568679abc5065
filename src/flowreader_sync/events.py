"""Reconnecting event-stream client for the FlowReader websocket."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import Enum
from typing import Any

from websockets.asyncio.client import connect as ws_connect

from .client import SESSION_COOKIE
from .notifications import MalformedNotification, Notification, parse_notification

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[Notification], None]
ConnectFactory = Callable[[str, dict[str, str]], Any]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_WILL_RETRY = "closed_will_retry"
    CLOSED_PERMANENT = "closed_permanent"


def _default_connect(url: str, headers: dict[str, str]) -> Any:
    return ws_connect(url, additional_headers=headers)


class EventStreamClient:
    """Keeps one websocket open and hands decoded notifications to a handler.

    Any close, clean or not, schedules exactly one reconnect after a fixed
    delay, forever. Notifications sent while disconnected are lost, so the
    handler must treat each one as a hint to resynchronize.
    """

    def __init__(
        self,
        url: str,
        reconnect_delay: float = 5.0,
        session_token: Callable[[], str | None] | None = None,
        connect: ConnectFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._session_token = session_token
        self._connect = connect or _default_connect
        self._sleep = sleep or asyncio.sleep
        self._handler: NotificationHandler | None = None
        self._task: asyncio.Task | None = None
        self._stopping = False
        self.state = ConnectionState.CLOSED_PERMANENT
        self.attempts = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, handler: NotificationHandler) -> None:
        """Open the stream on the running event loop.

        Raises:
            RuntimeError: If the stream is already running
        """
        if self.running:
            raise RuntimeError("Event stream already started")
        self._handler = handler
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name="flowreader-events")

    async def stop(self) -> None:
        """Close the connection and cancel any scheduled reconnect."""
        if not self.running:
            return
        self._stopping = True
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._set_state(ConnectionState.CLOSED_PERMANENT)

    def _headers(self) -> dict[str, str]:
        token = self._session_token() if self._session_token else None
        return {"Cookie": f"{SESSION_COOKIE}={token}"} if token else {}

    async def _run(self) -> None:
        while not self._stopping:
            self._set_state(ConnectionState.CONNECTING)
            self.attempts += 1
            try:
                async with self._connect(self.url, self._headers()) as websocket:
                    self._set_state(ConnectionState.OPEN)
                    async for raw in websocket:
                        self._dispatch(raw)
                logger.info("Event stream closed by server")
            except Exception as e:
                logger.warning("Event stream error: %s", e)

            if self._stopping:
                break
            self._set_state(ConnectionState.CLOSED_WILL_RETRY)
            logger.info("Event stream closed, retrying in %.1fs", self.reconnect_delay)
            await self._sleep(self.reconnect_delay)
        self._set_state(ConnectionState.CLOSED_PERMANENT)

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            notification = parse_notification(raw)
        except MalformedNotification as e:
            logger.warning("Dropping malformed event: %s", e)
            return

        logger.debug("Event received: %s", notification)
        try:
            self._handler(notification)
        except Exception:
            logger.exception("Notification handler failed for %s", notification)

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug("Event stream %s -> %s", self.state.value, state.value)
            self.state = state
            if state == ConnectionState.OPEN:
                logger.info("Event stream connected to %s", self.url)
