"""Server-to-client push channel that only signals "something changed"."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import WebSocketException

from dashsync.common.constants import DEFAULT_PUSH_RECONNECT_SECONDS
from dashsync.common.logging import get_logger, log_event

MessageHandler = Callable[[Any], Any]


class PushChannel:
    """Keeps one websocket open, reconnecting after a fixed delay.

    Messages are handed to ``on_message`` untouched; interpreting them is the
    coordinator's job.
    """

    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        *,
        reconnect_seconds: float = DEFAULT_PUSH_RECONNECT_SECONDS,
        connect: Callable[..., Any] = websockets.connect,
        logger: logging.Logger | None = None,
    ) -> None:
        self.url = url
        self.on_message = on_message
        self.reconnect_seconds = reconnect_seconds
        self.connect = connect
        self.logger = logger or get_logger("push")
        self.connections = 0
        self._closing = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._closing = False
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def run(self) -> None:
        while not self._closing:
            try:
                async with self.connect(self.url) as ws:
                    self.connections += 1
                    log_event(self.logger, "push channel connected", component="push", event="PUSH_CONNECT", status="ok")
                    async for raw in ws:
                        self._deliver(raw)
                close_reason = "closed by server"
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                close_reason = f"connection lost: {exc}"

            if self._closing:
                break
            log_event(
                self.logger,
                f"push channel {close_reason}; reconnecting in {self.reconnect_seconds}s",
                level=logging.WARNING,
                component="push",
                event="PUSH_RECONNECT",
                status="retry",
            )
            await asyncio.sleep(self.reconnect_seconds)

    def _deliver(self, raw: Any) -> None:
        try:
            self.on_message(raw)
        except Exception as exc:
            log_event(
                self.logger,
                f"push message handler failed: {exc}",
                level=logging.ERROR,
                component="push",
                event="PUSH_HANDLER_ERROR",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )

    async def close(self) -> None:
        self._closing = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        log_event(self.logger, "push channel closed", component="push", event="PUSH_CLOSE", status="ok")
