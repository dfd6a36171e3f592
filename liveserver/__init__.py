"""Local development file server with live reload."""
from importlib.metadata import PackageNotFoundError, version

from .app import create_app
from .config import ServerConfig
from .inject import RELOAD_SNIPPET, HtmlInjector, inject_reload_snippet
from .notifier import ChangeNotifier, ClientRegistry
from .paths import resolve_request_path

try:
    __version__ = version("simple-live-server")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = [
    "create_app",
    "ServerConfig",
    "RELOAD_SNIPPET",
    "HtmlInjector",
    "inject_reload_snippet",
    "ChangeNotifier",
    "ClientRegistry",
    "resolve_request_path",
]
