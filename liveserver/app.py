from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from aiohttp import WSCloseCode, WSMsgType, hdrs, web
from watchdog.observers import Observer

from .config import ServerConfig
from .inject import build_reload_snippet
from .logging_conf import get_logger
from .notifier import ChangeNotifier, ClientRegistry, WebSocketSink, start_watching, stop_watching
from .paths import resolve_request_path
from .static import serve_file

__all__ = [
    "CONFIG_KEY",
    "REGISTRY_KEY",
    "SNIPPET_KEY",
    "OBSERVER_KEY",
    "create_app",
]

logger = get_logger(__name__)

CONFIG_KEY = web.AppKey("config", ServerConfig)
REGISTRY_KEY = web.AppKey("registry", ClientRegistry)
SNIPPET_KEY = web.AppKey("snippet", bytes)
OBSERVER_KEY = web.AppKey("observer", Observer)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


# -------- WebSocket --------
async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    registry = request.app[REGISTRY_KEY]
    sink = WebSocketSink(ws, peer=request.remote)
    registry.add(sink)
    try:
        # Clients never talk; just wait for the socket to go away.
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.debug("reload socket error from %s: %s", request.remote, ws.exception())
                break
    finally:
        registry.discard(sink)
    return ws


# -------- HTTP handler --------
async def file_handler(request: web.Request) -> web.StreamResponse:
    if request.method != hdrs.METH_GET:
        raise web.HTTPMethodNotAllowed(request.method, [hdrs.METH_GET])

    target = request.raw_path
    if not target or not target.startswith("/"):
        raise web.HTTPBadRequest()

    config = request.app[CONFIG_KEY]
    path = resolve_request_path(config.root, target)
    if path is None:
        logger.info("forbidden: %s", target)
        raise web.HTTPForbidden()

    return await serve_file(
        request,
        path,
        root=config.root,
        snippet=request.app[SNIPPET_KEY],
        chunk_size=config.chunk_size,
        follow_symlinks=config.follow_symlinks,
    )


@web.middleware
async def request_logger(request: web.Request, handler: Handler) -> web.StreamResponse:
    start = time.perf_counter()
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        logger.debug("%s %s -> %d", request.method, request.raw_path, exc.status)
        raise
    except Exception:
        logger.exception("error handling %s %s", request.method, request.raw_path)
        raise
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.debug(
        "%s %s -> %d (%.1f ms)", request.method, request.raw_path, response.status, elapsed_ms
    )
    return response


# -------- Lifecycle --------
async def _start_watcher(app: web.Application) -> None:
    config = app[CONFIG_KEY]
    if not config.watch:
        return
    notifier = ChangeNotifier(
        app[REGISTRY_KEY],
        asyncio.get_running_loop(),
        events=config.watch_events,
        ignore_patterns=config.ignore_patterns,
    )
    app[OBSERVER_KEY] = start_watching(config.root, notifier)


async def _close_clients(app: web.Application) -> None:
    for sink in app[REGISTRY_KEY].snapshot():
        if isinstance(sink, WebSocketSink):
            await sink.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")


async def _stop_watcher(app: web.Application) -> None:
    observer = app.get(OBSERVER_KEY)
    if observer is not None:
        await asyncio.get_running_loop().run_in_executor(None, stop_watching, observer)


def create_app(config: ServerConfig) -> web.Application:
    app = web.Application(middlewares=[request_logger])
    app[CONFIG_KEY] = config
    app[REGISTRY_KEY] = ClientRegistry()
    app[SNIPPET_KEY] = build_reload_snippet(config.ws_path)

    app.router.add_get(config.ws_path, websocket_handler, allow_head=False)
    app.router.add_route("*", "/{tail:.*}", file_handler)

    app.on_startup.append(_start_watcher)
    app.on_shutdown.append(_close_clients)
    app.on_cleanup.append(_stop_watcher)
    return app
