from __future__ import annotations

import asyncio
import os
import stat
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import BinaryIO

from aiohttp import hdrs, web

from .inject import RELOAD_SNIPPET, inject_reload_snippet
from .logging_conf import get_logger
from .paths import is_inside

__all__ = [
    "MIME_TYPES",
    "DEFAULT_CONTENT_TYPE",
    "content_type_for",
    "is_html",
    "serve_file",
]

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

MIME_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".htm": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".mjs": "application/javascript; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".map": "application/json; charset=utf-8",
    ".txt": "text/plain; charset=utf-8",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".wasm": "application/wasm",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}


def content_type_for(path: str) -> str:
    _, ext = os.path.splitext(path)
    return MIME_TYPES.get(ext.lower(), DEFAULT_CONTENT_TYPE)


def is_html(content_type: str) -> bool:
    return content_type.split(";", 1)[0].strip() == "text/html"


def _real_paths(root: str, path: str) -> tuple[str, str]:
    return os.path.realpath(root), os.path.realpath(path)


async def _read_chunks(fobj: BinaryIO, first: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    loop = asyncio.get_running_loop()
    chunk = first
    while chunk:
        yield chunk
        chunk = await loop.run_in_executor(None, fobj.read, chunk_size)


def _abort(request: web.BaseRequest) -> None:
    # Headers are out already; all that's left is to drop the connection.
    transport = request.transport
    if transport is not None:
        transport.close()


async def serve_file(
    request: web.BaseRequest,
    path: str,
    *,
    root: str | None = None,
    snippet: bytes = RELOAD_SNIPPET,
    chunk_size: int = 64 * 1024,
    follow_symlinks: bool = True,
) -> web.StreamResponse:
    """Stream the file at ``path`` (already confined to the served root).

    HTML goes through :func:`inject_reload_snippet`, everything else is sent as is.
    Problems found before the headers go out become HTTP errors; a read
    failure after that closes the connection.
    """
    loop = asyncio.get_running_loop()

    try:
        st = await loop.run_in_executor(None, os.stat, path)
    except OSError as exc:
        # missing, ENAMETOOLONG, ELOOP, EACCES on a parent: nothing servable there
        logger.debug("cannot stat %s: %s", path, exc)
        raise web.HTTPNotFound()

    if not stat.S_ISREG(st.st_mode):
        raise web.HTTPNotFound()

    if not follow_symlinks and root is not None:
        real_root, real_path = await loop.run_in_executor(None, _real_paths, root, path)
        if not is_inside(real_root, real_path):
            logger.warning("refusing %s: symlink leads outside %s", path, root)
            raise web.HTTPForbidden()

    try:
        fobj: BinaryIO = await loop.run_in_executor(None, open, path, "rb")
    except FileNotFoundError:
        raise web.HTTPNotFound()
    except OSError as exc:
        logger.warning("cannot open %s: %s", path, exc)
        raise web.HTTPInternalServerError()

    try:
        try:
            first = await loop.run_in_executor(None, fobj.read, chunk_size)
        except OSError as exc:
            logger.warning("cannot read %s: %s", path, exc)
            raise web.HTTPInternalServerError()

        content_type = content_type_for(path)
        chunks = _read_chunks(fobj, first, chunk_size)
        body = inject_reload_snippet(chunks, snippet) if is_html(content_type) else chunks

        # No Content-Length: watched files may change while they're being sent.
        response = web.StreamResponse(headers={hdrs.CONTENT_TYPE: content_type})
        try:
            await response.prepare(request)
            async with aclosing(chunks), aclosing(body):
                async for out in body:
                    await response.write(out)
            await response.write_eof()
        except ConnectionError:
            logger.debug("client went away while sending %s", path)
        except OSError as exc:
            logger.warning("read failed mid-stream for %s: %s", path, exc)
            _abort(request)
        return response
    finally:
        fobj.close()
