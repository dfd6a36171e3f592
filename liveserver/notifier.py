from __future__ import annotations

import asyncio
from typing import Protocol

from aiohttp import web
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    PatternMatchingEventHandler,
)
from watchdog.observers import Observer

from .logging_conf import get_logger

__all__ = [
    "RELOAD_MESSAGE",
    "WATCHABLE_EVENTS",
    "DEFAULT_WATCH_EVENTS",
    "DEFAULT_IGNORE_PATTERNS",
    "ReloadSink",
    "WebSocketSink",
    "ClientRegistry",
    "ChangeNotifier",
    "start_watching",
    "stop_watching",
]

logger = get_logger(__name__)

RELOAD_MESSAGE = "reload"

WATCHABLE_EVENTS = frozenset(
    {EVENT_TYPE_MODIFIED, EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
)
# Only content changes reload by default; creations, deletions and renames are opt-in.
DEFAULT_WATCH_EVENTS = frozenset({EVENT_TYPE_MODIFIED})
# Editor swap and backup files.
DEFAULT_IGNORE_PATTERNS = ("*.swp", "*.swx", "*~", ".#*", "*.tmp")


class ReloadSink(Protocol):
    async def send_reload(self) -> None: ...


class WebSocketSink:
    """A live-reload client connected over an aiohttp websocket."""

    def __init__(self, ws: web.WebSocketResponse, peer: str | None = None):
        self.ws = ws
        self.peer = peer

    async def send_reload(self) -> None:
        if self.ws.closed:
            raise ConnectionResetError("websocket already closed")
        await self.ws.send_str(RELOAD_MESSAGE)

    def __repr__(self) -> str:
        return f"<WebSocketSink peer={self.peer!r}>"


# -------- Client registry --------
class ClientRegistry:
    """Connected reload sinks.

    Everything runs on the server's event loop; the watcher thread only ever
    schedules broadcast() there. Broadcasts work on a snapshot, so clients may
    connect or drop while one is in flight.
    """

    def __init__(self) -> None:
        self._clients: set[ReloadSink] = set()

    def add(self, sink: ReloadSink) -> None:
        self._clients.add(sink)
        logger.debug("reload client connected (%d open)", len(self._clients))

    def discard(self, sink: ReloadSink) -> None:
        self._clients.discard(sink)
        logger.debug("reload client gone (%d open)", len(self._clients))

    def snapshot(self) -> list[ReloadSink]:
        return list(self._clients)

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, sink: object) -> bool:
        return sink in self._clients

    async def broadcast(self) -> int:
        """Send "reload" to every client; return how many sends succeeded.

        A client that fails is dropped and never stops delivery to the rest.
        """
        clients = self.snapshot()
        if not clients:
            return 0
        results = await asyncio.gather(
            *(self._deliver(sink) for sink in clients), return_exceptions=True
        )
        delivered = sum(1 for r in results if r is True)
        logger.info("reload sent to %d/%d client(s)", delivered, len(clients))
        return delivered

    async def _deliver(self, sink: ReloadSink) -> bool:
        try:
            await sink.send_reload()
        except Exception as exc:
            logger.debug("dropping reload client %r: %s", sink, exc)
            self.discard(sink)
            return False
        return True


# -------- File watcher --------
class ChangeNotifier(PatternMatchingEventHandler):
    """watchdog handler that broadcasts a reload for each qualifying event.

    Runs on the observer thread and hands work to ``loop``; nothing is
    debounced, so a burst of N events gives up to N broadcasts.
    """

    def __init__(
        self,
        registry: ClientRegistry,
        loop: asyncio.AbstractEventLoop,
        *,
        events: frozenset[str] = DEFAULT_WATCH_EVENTS,
        ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS,
    ):
        super().__init__(ignore_patterns=list(ignore_patterns), ignore_directories=True)
        unknown = set(events) - WATCHABLE_EVENTS
        if unknown:
            raise ValueError(f"unsupported watch events: {', '.join(sorted(unknown))}")
        self.registry = registry
        self.loop = loop
        self.events = frozenset(events)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in self.events:
            return
        logger.debug("%s: %s", event.event_type, event.src_path)
        coro = self.registry.broadcast()
        try:
            asyncio.run_coroutine_threadsafe(coro, self.loop)
        except RuntimeError:
            # loop already closed during shutdown
            coro.close()
            logger.debug("event loop closed, skipping reload for %s", event.src_path)


def start_watching(root: str, notifier: ChangeNotifier) -> Observer:
    observer = Observer()
    observer.schedule(notifier, root, recursive=True)
    observer.start()
    logger.info("watching %s for %s", root, ", ".join(sorted(notifier.events)))
    return observer


def stop_watching(observer: Observer, timeout: float = 5.0) -> None:
    observer.stop()
    observer.join(timeout)
