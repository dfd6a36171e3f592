from __future__ import annotations

import sys
import webbrowser

from aiohttp import web

from .app import create_app
from .config import config_from_args, parse_args
from .logging_conf import get_logger, setup_logging

logger = get_logger("liveserver")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    config = config_from_args(args)
    setup_logging(config.log_level, config.log_format)

    app = create_app(config)
    logger.info("serving %s at %s", config.root, config.url)
    if config.open_browser:
        webbrowser.open(config.url)

    web.run_app(app, host=config.host, port=config.port, print=None)


if __name__ == "__main__":
    main(sys.argv[1:])
