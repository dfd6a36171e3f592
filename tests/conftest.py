from __future__ import annotations

import pytest

from liveserver.app import create_app
from liveserver.config import ServerConfig

INDEX_HTML = b"<html><body>Hi</body></html>"
DOCS_HTML = b"<html><body>Docs</body></html>"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 64


@pytest.fixture
def served_root(tmp_path):
    (tmp_path / "index.html").write_bytes(INDEX_HTML)
    (tmp_path / "logo.png").write_bytes(PNG_BYTES)
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "index.html").write_bytes(DOCS_HTML)
    return tmp_path


@pytest.fixture
def make_client(aiohttp_client, served_root):
    """Build a test client for an app serving ``served_root``; watching is off unless asked."""

    async def factory(**overrides):
        overrides.setdefault("watch", False)
        config = ServerConfig(root=str(served_root), **overrides)
        return await aiohttp_client(create_app(config))

    return factory
