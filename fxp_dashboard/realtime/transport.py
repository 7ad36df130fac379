"""Push-channel transports.

A transport opens one connection and reports its life through a listener.
``WebSocketTransport`` is the live implementation on top of the
``websockets`` asyncio client.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed

from ..console import log

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


class ChannelListener(ABC):
    """Receives connection callbacks, always on the event loop."""

    @abstractmethod
    def on_open(self) -> None:
        pass

    @abstractmethod
    def on_message(self, text: str) -> None:
        pass

    @abstractmethod
    def on_error(self, exc: BaseException) -> None:
        pass

    @abstractmethod
    def on_close(self, code: int, reason: str) -> None:
        pass


class Connection(ABC):
    """One live (or opening) push connection."""

    @abstractmethod
    def send(self, text: str) -> None:
        pass

    @abstractmethod
    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        pass


class Transport(ABC):
    """Factory for push connections."""

    @abstractmethod
    def connect(self, url: str, listener: ChannelListener) -> Connection:
        """Start opening a connection. Outcome arrives through ``listener``."""


class WebSocketConnection(Connection):
    """A websocket connection driven by an asyncio task."""

    def __init__(self, url: str, listener: ChannelListener, loop: asyncio.AbstractEventLoop, open_timeout: float):
        self.url = url
        self._listener = listener
        self._loop = loop
        self._open_timeout = open_timeout
        self._ws = None
        self._closing_before_open = False
        self._pending: Set[asyncio.Task] = set()
        self._task = loop.create_task(self._run())
        self._task.add_done_callback(self._on_run_done)

    async def _run(self) -> None:
        code, reason = ABNORMAL_CLOSURE, ""
        try:
            async with websockets.connect(self.url, open_timeout=self._open_timeout) as ws:
                self._ws = ws
                self._listener.on_open()
                async for message in ws:
                    if isinstance(message, bytes):
                        message = message.decode("utf-8", errors="replace")
                    self._listener.on_message(message)
                code = ws.close_code or ABNORMAL_CLOSURE
                reason = ws.close_reason or ""
        except ConnectionClosed as exc:
            if exc.rcvd is not None:
                code, reason = exc.rcvd.code, exc.rcvd.reason
        except Exception as exc:
            self._listener.on_error(exc)
            reason = str(exc)
        finally:
            self._ws = None
        self._listener.on_close(code, reason)

    def _on_run_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never enters _run
        if task.cancelled() and self._closing_before_open:
            self._listener.on_close(NORMAL_CLOSURE, "Closed before open")

    def _track(self, coro, action: str) -> None:
        task = self._loop.create_task(coro)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                log(f"[transport] WARNING: {action} failed: {exc}")
                self._listener.on_error(exc)

        task.add_done_callback(_done)

    def send(self, text: str) -> None:
        if self._ws is None:
            raise RuntimeError("WebSocket is not open")
        self._track(self._ws.send(text), "send")

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._ws is None:
            self._closing_before_open = True
            self._task.cancel()
            return
        self._track(self._ws.close(code, reason), "close")


class WebSocketTransport(Transport):
    """Opens text-framed JSON websocket connections on an asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, open_timeout: float = 10.0):
        self.loop = loop or asyncio.get_running_loop()
        self.open_timeout = open_timeout

    def connect(self, url: str, listener: ChannelListener) -> WebSocketConnection:
        log(f"[transport] Connecting to {url}")
        return WebSocketConnection(url, listener, self.loop, self.open_timeout)
