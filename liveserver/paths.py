"""Map request targets onto files inside the served root.

Everything here is lexical: no file is stat'ed or opened.
"""
from __future__ import annotations

import os
from urllib.parse import unquote

__all__ = [
    "DEFAULT_DOCUMENT",
    "safe_unquote",
    "is_inside",
    "resolve_request_path",
]

DEFAULT_DOCUMENT = "index.html"


def safe_unquote(value: str) -> str:
    """Percent-decode ``value``; return it unchanged if it isn't valid UTF-8."""
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def is_inside(root: str, candidate: str) -> bool:
    """True if ``candidate`` lies strictly below ``root`` (the root itself doesn't count)."""
    try:
        relative = os.path.relpath(candidate, root)
    except ValueError:
        # different drives on Windows
        return False
    if not relative or relative == os.curdir or os.path.isabs(relative):
        return False
    return relative != os.pardir and not relative.startswith(os.pardir + os.sep)


def resolve_request_path(root: str, request_path: str) -> str | None:
    """Resolve ``request_path`` to an absolute file path under ``root``.

    Returns None when the target would land outside the root; callers answer
    that with 403. Whether the file exists is for the caller to find out.
    """
    clean = request_path.split("?", 1)[0].split("#", 1)[0]

    if clean in ("", "/"):
        clean = "/" + DEFAULT_DOCUMENT
    elif clean.endswith("/"):
        clean += DEFAULT_DOCUMENT

    decoded = safe_unquote(clean)
    if "\x00" in decoded:
        return None

    # Strip leading separators so the join can't be overridden by an absolute path.
    relative = decoded.replace("\\", "/").lstrip("/")
    root = os.path.abspath(root)
    candidate = os.path.normpath(os.path.join(root, *relative.split("/")))

    if not is_inside(root, candidate):
        return None
    return candidate
