#! /usr/bin/env python3
"""Command line entrypoint: ``local-feed run [PACKAGE_DIRECTORY]``."""

import importlib
import logging
import sys
import typing as t
from pathlib import Path
from wsgiref.simple_server import WSGIRequestHandler

import bottle

from localfeed.config import Config

log = logging.getLogger("localfeed.main")

# Server adapters tried for `--server auto`, best first, with the module
# each one needs.
AUTO_SERVERS = (
    ("waitress", "waitress"),
    ("paste", "paste"),
    ("twisted", "twisted.web"),
    ("cherrypy", "cheroot.wsgi"),
)
FALLBACK_SERVER = "wsgiref"


def init_logging(
    level: int = logging.NOTSET,
    frmt: t.Optional[str] = None,
    filename: t.Union[str, Path, None] = None,
    stream: t.Optional[t.IO] = sys.stderr,
    logger: t.Optional[logging.Logger] = None,
) -> None:
    """Configure the specified logger, or the root logger otherwise.

    A stream handler is only added to a logger that has no handlers yet.
    """
    logger = logger or logging.getLogger()
    logger.setLevel(level)

    handlers: t.List[logging.Handler] = []
    if stream is not None and not logger.handlers:
        handlers.append(logging.StreamHandler(stream))
    if filename:
        handlers.append(logging.FileHandler(filename))
    for handler in handlers:
        handler.setFormatter(logging.Formatter(frmt))
        logger.addHandler(handler)


class RequestLogHandler(WSGIRequestHandler):
    """Access log of the wsgiref server, written through logging."""

    def address_string(self) -> str:  # no reverse DNS lookups
        return self.client_address[0]

    def log_message(
        self, format: str, *args: t.Any  # pylint: disable=redefined-builtin
    ) -> None:
        log.info("%s %s", self.address_string(), format % args)


def _can_import(name: str) -> bool:
    try:
        importlib.import_module(name)
        return True
    except ImportError:
        return False


def resolve_server(method: str) -> str:
    """Return the bottle server adapter to run `method` with.

    `auto` becomes the first adapter of `AUTO_SERVERS` whose module is
    installed, or the stdlib wsgiref server.
    """
    if method != "auto":
        return method
    return next(
        (name for name, module in AUTO_SERVERS if _can_import(module)),
        FALLBACK_SERVER,
    )


def _log_bottle_output(*parts: t.Any) -> None:
    """Stand-in for bottle's stderr writer, e.g. its startup banner."""
    msg = " ".join(str(part) for part in parts).rstrip("\r\n")
    if msg:
        logging.getLogger(bottle.__name__).info(msg)


def main(argv: t.Optional[t.Sequence[str]] = None) -> None:
    """Parse the command line and serve the feed until interrupted."""
    # pylint: disable=import-outside-toplevel
    import localfeed

    config = Config.from_args(sys.argv[1:] if argv is None else argv)

    init_logging(
        level=config.log_level,
        filename=config.log_file,
        frmt=config.log_frmt,
        stream=config.log_stream,
    )

    bottle.debug(config.verbosity > 1)
    bottle._stderr = _log_bottle_output  # pylint: disable=protected-access

    app = localfeed.app_from_config(config)
    server = resolve_server(config.server_method)
    extra_kwargs = (
        {"handler_class": RequestLogHandler} if server == FALLBACK_SERVER else {}
    )
    log.info(
        "Serving packages from %s on %s:%s with the %s server",
        config.package_root,
        config.host,
        config.port,
        server,
    )

    bottle.run(
        app=app,
        host=config.host,
        port=config.port,
        server=server,
        **extra_kwargs,
    )


if __name__ == "__main__":
    main()
