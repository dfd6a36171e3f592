from __future__ import annotations

import argparse
import os
from dataclasses import dataclass

from .notifier import DEFAULT_IGNORE_PATTERNS, DEFAULT_WATCH_EVENTS, WATCHABLE_EVENTS

__all__ = [
    "ServerConfig",
    "build_parser",
    "parse_args",
    "config_from_args",
]

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_WS_PATH = "/__ws"
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ServerConfig:
    root: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    ws_path: str = DEFAULT_WS_PATH
    watch: bool = True
    watch_events: frozenset[str] = DEFAULT_WATCH_EVENTS
    ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS
    follow_symlinks: bool = True
    chunk_size: int = DEFAULT_CHUNK_SIZE
    open_browser: bool = False
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self) -> None:
        # The served root is always absolute and normalised.
        object.__setattr__(self, "root", os.path.abspath(self.root))
        if not self.ws_path.startswith("/"):
            object.__setattr__(self, "ws_path", "/" + self.ws_path)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"


def _event_list(value: str) -> frozenset[str]:
    events = frozenset(e.strip().lower() for e in value.split(",") if e.strip())
    unknown = events - WATCHABLE_EVENTS
    if unknown or not events:
        raise argparse.ArgumentTypeError(
            f"expected a comma-separated subset of {', '.join(sorted(WATCHABLE_EVENTS))}"
        )
    return events


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="liveserver",
        description="Serve a directory over HTTP and reload browsers when files change",
    )
    parser.add_argument(
        "root",
        nargs="?",
        default=os.getenv("LIVESERVER_ROOT", os.getcwd()),
        help="directory to serve (default: $LIVESERVER_ROOT or the current directory)",
    )
    parser.add_argument("--host", default=os.getenv("LIVESERVER_HOST", DEFAULT_HOST))
    parser.add_argument(
        "--port", type=_port, default=os.getenv("LIVESERVER_PORT", str(DEFAULT_PORT))
    )
    parser.add_argument("--ws-path", default=DEFAULT_WS_PATH, help="live-reload websocket path")
    parser.add_argument(
        "--watch-events",
        type=_event_list,
        default=DEFAULT_WATCH_EVENTS,
        help="file-system events that trigger a reload, e.g. modified,created,deleted,moved",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        default=None,
        metavar="PATTERN",
        help="glob of paths whose changes never trigger a reload (repeatable)",
    )
    parser.add_argument("--no-watch", action="store_false", dest="watch")
    parser.add_argument(
        "--no-follow-symlinks",
        action="store_false",
        dest="follow_symlinks",
        help="refuse to serve symlinks that point outside the served root",
    )
    parser.add_argument("--open", action="store_true", dest="open_browser")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO").upper())
    parser.add_argument("--log-format", choices=("text", "json"), default="text")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments; the served root must be an existing directory."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not os.path.isdir(args.root):
        parser.error(f"root is not a directory: {args.root}")
    return args


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    ignore = tuple(args.ignore) if args.ignore else DEFAULT_IGNORE_PATTERNS
    return ServerConfig(
        root=args.root,
        host=args.host,
        port=args.port,
        ws_path=args.ws_path,
        watch=args.watch,
        watch_events=args.watch_events,
        ignore_patterns=ignore,
        follow_symlinks=args.follow_symlinks,
        open_browser=args.open_browser,
        log_level=args.log_level,
        log_format=args.log_format,
    )
