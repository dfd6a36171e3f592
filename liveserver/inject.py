"""Streaming insertion of the live-reload client into HTML documents.

The snippet goes right before the first ``</body>``, or at the very end when a
document has none. Matching is done on raw bytes, so whatever the document's
(ASCII-compatible) encoding is, every byte it contains is passed through
unchanged and in order.
"""
from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator

__all__ = [
    "BODY_CLOSE",
    "HIGH_WATER_MARK",
    "RELOAD_SNIPPET",
    "build_reload_snippet",
    "HtmlInjector",
    "inject_reload_snippet",
]

BODY_CLOSE = b"</body>"
HIGH_WATER_MARK = 64 * 1024

_RELOAD_JS = """
<script>
(function () {
  if (window.__LIVE_SERVER__) return;
  window.__LIVE_SERVER__ = true;
  var url = (location.protocol === 'https:' ? 'wss://' : 'ws://') + location.host + %(ws_path)s;
  function connect(reconnecting) {
    var ws = new WebSocket(url);
    ws.onopen = function () {
      if (reconnecting) location.reload();
    };
    ws.onmessage = function (event) {
      if (event.data === 'reload') location.reload();
    };
    ws.onclose = function () {
      setTimeout(function () { connect(true); }, 1000);
    };
  }
  connect(false);
})();
</script>
"""


def build_reload_snippet(ws_path: str = "/__ws") -> bytes:
    """Render the client script for a server whose reload socket lives at ``ws_path``."""
    return (_RELOAD_JS % {"ws_path": json.dumps(ws_path)}).encode("utf-8")


RELOAD_SNIPPET = build_reload_snippet()


class HtmlInjector:
    """Incremental transform that inserts ``snippet`` exactly once.

    feed() takes chunks in order and returns whatever can be emitted so far;
    close() returns the rest. Concatenating every return value gives the input
    with the snippet (plus a newline) inserted before the first ``</body>``,
    or with the bare snippet appended when the marker never shows up.

    Bytes are held back only while the marker hasn't been seen, and never more
    than ``high_water`` plus one chunk of them.
    """

    def __init__(self, snippet: bytes = RELOAD_SNIPPET, high_water: int = HIGH_WATER_MARK):
        if high_water < len(BODY_CLOSE):
            raise ValueError(f"high_water must be at least {len(BODY_CLOSE)} bytes")
        self.snippet = snippet
        self.high_water = high_water
        self.injected = False
        self.closed = False
        self._buffer = bytearray()
        # Offset in _buffer up to which no marker can start.
        self._scanned = 0

    def feed(self, chunk: bytes) -> bytes:
        if self.closed:
            raise RuntimeError("feed() called after close()")
        if self.injected:
            return bytes(chunk)

        self._buffer += chunk
        index = self._find_marker()
        if index >= 0:
            out = self._buffer[:index] + self.snippet + b"\n" + self._buffer[index:]
            self._reset_buffer()
            self.injected = True
            return bytes(out)

        if len(self._buffer) > self.high_water:
            # Keep a tail long enough to complete a marker split across chunks.
            cut = len(self._buffer) - len(BODY_CLOSE)
            out = bytes(self._buffer[:cut])
            del self._buffer[:cut]
            self._scanned = max(0, self._scanned - cut)
            return out

        return b""

    def close(self) -> bytes:
        if self.closed:
            return b""
        self.closed = True
        out = bytes(self._buffer)
        self._reset_buffer()
        if not self.injected:
            self.injected = True
            out += self.snippet
        return out

    def _find_marker(self) -> int:
        start = max(0, self._scanned - len(BODY_CLOSE) + 1)
        # bytes.lower() only touches ASCII letters, so offsets are preserved.
        index = bytes(self._buffer[start:]).lower().find(BODY_CLOSE)
        self._scanned = len(self._buffer)
        return index + start if index >= 0 else -1

    def _reset_buffer(self) -> None:
        self._buffer.clear()
        self._scanned = 0


async def inject_reload_snippet(
    chunks: AsyncIterable[bytes],
    snippet: bytes = RELOAD_SNIPPET,
    high_water: int = HIGH_WATER_MARK,
) -> AsyncIterator[bytes]:
    """Async-generator form of :class:`HtmlInjector`; empty pieces are skipped."""
    injector = HtmlInjector(snippet, high_water)
    async for chunk in chunks:
        out = injector.feed(chunk)
        if out:
            yield out
    tail = injector.close()
    if tail:
        yield tail
