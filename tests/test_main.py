import logging
import sys
from unittest import mock

import bottle
import pytest

from localfeed import __main__


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.setattr(bottle, "_stderr", bottle._stderr)
    monkeypatch.setattr(bottle, "DEBUG", bottle.DEBUG)
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def run_calls(monkeypatch):
    """Every `bottle.run()` call made by `main()`, without serving."""
    calls = []
    monkeypatch.setattr("bottle.run", lambda **kwargs: calls.append(kwargs))
    return calls


@pytest.fixture
def feed_dir(tmp_path):
    return tmp_path / "feed"


@pytest.fixture
def serve(run_calls, feed_dir):
    """Run `main()` on a temporary package directory; return the app and
    the remaining `bottle.run()` keyword arguments."""

    def serve(*args):
        __main__.main([str(feed_dir), "--disable-cache", *args])
        kwargs = dict(run_calls[-1])
        return kwargs.pop("app"), kwargs

    return serve


@pytest.fixture
def installed(monkeypatch):
    """Pretend only the given modules can be imported."""

    def installed(*modules):
        monkeypatch.setattr(__main__, "_can_import", lambda name: name in modules)

    return installed


def test_serves_package_directory(serve, feed_dir):
    app, _ = serve()
    assert app._localfeed_config.package_root == feed_dir.resolve()
    assert feed_dir.is_dir()


def test_default_address(serve, installed):
    installed("waitress")
    _, kwargs = serve()
    assert kwargs == {"host": "0.0.0.0", "port": 8080, "server": "waitress"}


@pytest.mark.parametrize(
    "args, host, port",
    [
        (["-p", "8081"], "0.0.0.0", 8081),
        (["--port=9000", "-H", "127.0.0.1"], "127.0.0.1", 9000),
        (["--host", "::1", "--port", "8082"], "::1", 8082),
    ],
)
def test_address_options(serve, args, host, port):
    _, kwargs = serve(*args)
    assert (kwargs["host"], kwargs["port"]) == (host, port)


@pytest.mark.parametrize(
    "modules, expected",
    [
        (("waitress", "paste"), "waitress"),
        (("paste", "cheroot.wsgi"), "paste"),
        (("twisted.web",), "twisted"),
        (("cheroot.wsgi",), "cherrypy"),
        ((), "wsgiref"),
    ],
)
def test_resolve_auto_server(installed, modules, expected):
    installed(*modules)
    assert __main__.resolve_server("auto") == expected


def test_resolve_explicit_server(installed):
    installed()
    assert __main__.resolve_server("paste") == "paste"


def test_wsgiref_logs_requests(serve, installed):
    installed()
    _, kwargs = serve()
    assert kwargs["server"] == "wsgiref"
    assert kwargs["handler_class"] is __main__.RequestLogHandler
    _, kwargs = serve("--server", "wsgiref")
    assert kwargs["handler_class"] is __main__.RequestLogHandler


def test_other_servers_get_no_handler(serve):
    _, kwargs = serve("--server", "Paste")
    assert kwargs == {"host": "0.0.0.0", "port": 8080, "server": "paste"}


def test_options_reach_app(serve):
    app, _ = serve("--write-retries", "5", "--cors-origin", "*")
    config = app._localfeed_config
    assert (config.write_retries, config.cors_origin) == (5, "*")
    assert config.disable_cache


def test_log_file(serve, tmp_path):
    logfile = tmp_path / "feed.log"
    serve("-v", "--log-file", str(logfile))
    assert logfile.exists()


@pytest.mark.parametrize(
    "args, level",
    [
        ([], logging.WARNING),
        (["-v"], logging.INFO),
        (["-vv"], logging.DEBUG),
        (["-vvv"], logging.NOTSET),
    ],
)
def test_verbosity_sets_root_level(serve, args, level):
    serve(*args)
    assert logging.getLogger().level == level


@pytest.mark.parametrize("cli_arg, expected", [("stdout", "stdout"), ("none", None)])
def test_log_stream(serve, cli_arg, expected):
    with mock.patch.object(__main__, "init_logging") as init_logging:
        serve("--log-stream", cli_arg)
    stream = init_logging.call_args.kwargs["stream"]
    assert stream is (sys.stdout if expected else None)


@pytest.fixture
def fresh_logger():
    logger = logging.getLogger("localfeed.tests.fresh")
    yield logger
    logger.handlers = []


def test_init_logging_adds_stream_handler(fresh_logger):
    __main__.init_logging(stream=sys.stdout, logger=fresh_logger)
    (handler,) = fresh_logger.handlers
    assert isinstance(handler, logging.StreamHandler)
    assert handler.stream is sys.stdout


def test_init_logging_keeps_existing_handlers(fresh_logger):
    existing = logging.NullHandler()
    fresh_logger.addHandler(existing)
    __main__.init_logging(stream=sys.stdout, logger=fresh_logger)
    assert fresh_logger.handlers == [existing]


def test_init_logging_without_stream(fresh_logger, tmp_path):
    __main__.init_logging(
        stream=None, filename=tmp_path / "out.log", logger=fresh_logger
    )
    (handler,) = fresh_logger.handlers
    assert isinstance(handler, logging.FileHandler)
    handler.close()


@pytest.mark.parametrize(
    "parts, logged",
    [
        (("",), []),
        (("\n",), []),
        (
            ("Listening on http://0.0.0.0:8080/\n",),
            ["Listening on http://0.0.0.0:8080/"],
        ),
        (("Hit Ctrl-C to quit.\r\n",), ["Hit Ctrl-C to quit."]),
        (("Bottle", "v0.13"), ["Bottle v0.13"]),
    ],
)
def test_bottle_output_is_logged(caplog, parts, logged):
    with caplog.at_level(logging.INFO, logger="bottle"):
        __main__._log_bottle_output(*parts)
    assert [r.getMessage() for r in caplog.records] == logged


def test_request_log_handler(caplog):
    handler = __main__.RequestLogHandler.__new__(__main__.RequestLogHandler)
    handler.client_address = ("10.0.0.7", 51234)
    with caplog.at_level(logging.INFO, logger="localfeed.main"):
        handler.log_message('"%s" %s %s', "GET /packages HTTP/1.1", "200", "2")
    assert caplog.records[-1].getMessage() == (
        '10.0.0.7 "GET /packages HTTP/1.1" 200 2'
    )
