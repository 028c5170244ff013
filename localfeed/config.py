"""localfeed configuration management.

To add a config option:

- Add it to the `run_parser` in the `get_parser()` function, or to
  `add_common_args()` if it is not specific to running the server.
- Add it to `RunConfig`: as an `__init__()` kwarg, set as an instance
  attribute in `__init__()`, and parsed from the argparse namespace in
  the `kwargs_from_namespace()` method.
- Ensure your config option is tested in `tests/test_config.py`.

The `Config` class is a factory class only. It provides the following
constructors:

- `default_with_overrides(**overrides: Any)`: construct a `RunConfig` with
  default values, applying any specified overrides
- `from_args(args: Optional[Sequence[str]])`: construct a config from the
  provided arguments

Since `run` is the only command, it may be omitted from the commandline.
"""

import argparse
import logging
import pathlib
import sys
import typing as t

_TRUTHY = ("y", "yes", "t", "true", "on", "1")
_FALSY = ("n", "no", "f", "false", "off", "0")


def strtobool(val: str) -> bool:
    """Parse a truthiness-indicating string like 'yes' or 'off'."""
    lower = val.strip().lower()
    if lower in _TRUTHY:
        return True
    if lower in _FALSY:
        return False
    raise ValueError(f"invalid truth value {val!r}")


# Specify defaults here so that we can use them in tests &c. and not need
# to update things in multiple places if a default changes.
class DEFAULTS:
    """Config defaults."""

    INTERFACE = "0.0.0.0"
    LOG_FRMT = "%(asctime)s|%(name)s|%(levelname)s|%(thread)d|%(message)s"
    LOG_ERR_FRMT = "%(body)s: %(exception)s \n%(traceback)s"
    LOG_REQ_FRMT = "%(bottle.request)s"
    LOG_RES_FRMT = "%(status)s"
    LOG_STREAM = sys.stdout
    MAX_SESSIONS = 1024
    PACKAGE_DIRECTORY = pathlib.Path("~/nuget-packages").expanduser().resolve()
    PORT = 8080
    SERVER_METHOD = "auto"
    WRITE_RETRIES = 2


def package_directory_arg(arg: str) -> pathlib.Path:
    """Convert the package directory argument into its absolute path.

    The directory is created on startup if it does not exist yet.
    """
    pkg_dir = pathlib.Path(arg).expanduser().resolve()
    if pkg_dir.exists() and not pkg_dir.is_dir():
        raise argparse.ArgumentTypeError(
            f"Error: package directory ({pkg_dir}) is not a directory"
        )
    return pkg_dir


def non_negative_int_arg(arg: str) -> int:
    try:
        val = int(arg)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an integer: {arg!r}") from exc
    if val < 0:
        raise argparse.ArgumentTypeError(f"Must not be negative: {arg!r}")
    return val


# We need to capture this at compile time, so that tests replacing
# sys.stderr don't leak into the parsed config.
_ORIG_STDERR = sys.stderr


def log_stream_arg(arg: str) -> t.Optional[t.IO]:
    """Parse the log-stream argument."""
    lower = arg.lower()
    if lower == "none":
        return None
    if lower == "stdout":
        return sys.stdout
    if lower == "stderr":
        return _ORIG_STDERR
    raise argparse.ArgumentTypeError(
        "Invalid option for --log-stream. Value must be one of stdout, "
        "stderr, or none."
    )


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    # Don't update at top-level to avoid circular imports in __init__
    from localfeed import __version__

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging; repeat for more verbosity.",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        help=(
            "Write logging info into this FILE, as well as to stdout or "
            "stderr, if configured."
        ),
    )
    parser.add_argument(
        "--log-stream",
        metavar="STREAM",
        default=DEFAULTS.LOG_STREAM,
        type=log_stream_arg,
        help=(
            "Log messages to the specified STREAM. Valid values are stdout, "
            "stderr, and none"
        ),
    )
    parser.add_argument(
        "--log-frmt",
        metavar="FORMAT",
        default=DEFAULTS.LOG_FRMT,
        help=(
            "The logging format-string.  (see `logging.LogRecord` class from "
            "standard python library)"
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=__version__,
    )


def get_parser() -> argparse.ArgumentParser:
    """Return an ArgumentParser."""
    parser = argparse.ArgumentParser(
        description=(
            "start a local nuget package feed storing packages in "
            "PACKAGE_DIRECTORY (default: ~/nuget-packages)."
        ),
        epilog="Packages are pushed with `nuget push -Source <url>`.\n",
    )

    add_common_args(parser)

    subparsers = parser.add_subparsers(dest="cmd")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the feed, storing packages in PACKAGE_DIRECTORY",
    )

    add_common_args(run_parser)

    run_parser.add_argument(
        "package_directory",
        default=DEFAULTS.PACKAGE_DIRECTORY,
        nargs="?",
        type=package_directory_arg,
        help="The directory where packages are stored.",
    )
    run_parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=DEFAULTS.PORT,
        help="Listen on port PORT (default: 8080)",
    )
    run_parser.add_argument(
        "-i",
        "-H",
        "--interface",
        "--host",
        dest="host",
        default=DEFAULTS.INTERFACE,
        help="Listen on interface INTERFACE (default: 0.0.0.0)",
    )
    run_parser.add_argument(
        "--server",
        metavar="METHOD",
        default=DEFAULTS.SERVER_METHOD,
        choices=("auto", "cherrypy", "paste", "twisted", "waitress", "wsgiref"),
        type=str.lower,
        help=(
            "Use METHOD to run the server. Valid values include waitress, "
            "paste, twisted, cherrypy, wsgiref, and auto. The default is "
            '"auto", which picks the first of them that is installed.'
        ),
    )
    run_parser.add_argument(
        "--disable-cache",
        action="store_true",
        help=(
            "Read the package index from disk on every request instead of "
            "keeping it in memory."
        ),
    )
    run_parser.add_argument(
        "--write-retries",
        metavar="COUNT",
        type=non_negative_int_arg,
        default=DEFAULTS.WRITE_RETRIES,
        help=(
            "Retry failed package writes COUNT times before failing the "
            "push (default: 2)."
        ),
    )
    run_parser.add_argument(
        "--cors-origin",
        metavar="ORIGIN",
        help=(
            "Allow cross-origin requests from ORIGIN (use '*' for any "
            "origin). CORS headers are not sent by default."
        ),
    )
    run_parser.add_argument(
        "--max-sessions",
        metavar="COUNT",
        type=non_negative_int_arg,
        default=DEFAULTS.MAX_SESSIONS,
        help=(
            "Remember the packages of at most COUNT client sessions "
            "(default: 1024)."
        ),
    )
    run_parser.add_argument(
        "--log-req-frmt",
        metavar="FORMAT",
        default=DEFAULTS.LOG_REQ_FRMT,
        help=(
            "A format-string selecting Http-Request properties to log; set "
            "to '%%s' to see them all."
        ),
    )
    run_parser.add_argument(
        "--log-res-frmt",
        metavar="FORMAT",
        default=DEFAULTS.LOG_RES_FRMT,
        help=(
            "A format-string selecting Http-Response properties to log; set "
            "to '%%s' to see them all."
        ),
    )
    run_parser.add_argument(
        "--log-err-frmt",
        metavar="FORMAT",
        default=DEFAULTS.LOG_ERR_FRMT,
        help=(
            "A format-string selecting Http-Error properties to log; set "
            "to '%%s' to see them all."
        ),
    )
    return parser


class RunConfig:
    """A config for the Run command."""

    def __init__(
        self,
        package_root: pathlib.Path,
        verbosity: int,
        log_frmt: str,
        log_file: t.Optional[str],
        log_stream: t.Optional[t.IO],
        port: int,
        host: str,
        server_method: str,
        disable_cache: bool,
        write_retries: int,
        cors_origin: t.Optional[str],
        max_sessions: int,
        log_req_frmt: str,
        log_res_frmt: str,
        log_err_frmt: str,
    ) -> None:
        """Construct a RunConfig."""
        self.package_root = pathlib.Path(package_root)
        self.verbosity = verbosity
        self.log_file = log_file
        self.log_stream = log_stream
        self.log_frmt = log_frmt
        self.port = port
        self.host = host
        self.server_method = server_method
        self.disable_cache = disable_cache
        self.write_retries = write_retries
        self.cors_origin = cors_origin
        self.max_sessions = max_sessions
        self.log_req_frmt = log_req_frmt
        self.log_res_frmt = log_res_frmt
        self.log_err_frmt = log_err_frmt

    @classmethod
    def from_namespace(cls, namespace: argparse.Namespace) -> "RunConfig":
        """Construct a config from an argparse namespace."""
        return cls(**cls.kwargs_from_namespace(namespace))

    @staticmethod
    def kwargs_from_namespace(
        namespace: argparse.Namespace,
    ) -> t.Dict[str, t.Any]:
        """Convert a namespace into __init__ kwargs for this class."""
        return dict(
            package_root=namespace.package_directory,
            verbosity=namespace.verbose,
            log_file=namespace.log_file,
            log_stream=namespace.log_stream,
            log_frmt=namespace.log_frmt,
            port=namespace.port,
            host=namespace.host,
            server_method=namespace.server,
            disable_cache=namespace.disable_cache,
            write_retries=namespace.write_retries,
            cors_origin=namespace.cors_origin,
            max_sessions=namespace.max_sessions,
            log_req_frmt=namespace.log_req_frmt,
            log_res_frmt=namespace.log_res_frmt,
            log_err_frmt=namespace.log_err_frmt,
        )

    @property
    def log_level(self) -> int:
        """Return an appropriate log-level for the config's verbosity."""
        levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG,
        }
        # Return a log-level from warning through not set (log all messages).
        # If we've specified 3 or more levels of verbosity, just return not set.
        return levels.get(self.verbosity, logging.NOTSET)

    def with_updates(self, **kwargs: t.Any) -> "RunConfig":
        """Create a new config with the specified updates.

        The current config is used as a base. Any properties not specified in
        keyword arguments will remain unchanged.
        """
        return self.__class__(**{**dict(self), **kwargs})

    def __repr__(self) -> str:
        """A string representation indicating the class and its properties."""
        return "{}({})".format(
            self.__class__.__name__,
            ", ".join(f"{k}={v}" for k, v in self),
        )

    def __eq__(self, other: t.Any) -> bool:
        """Configs are equal if their public values are equal."""
        if not isinstance(other, self.__class__):
            return False
        return dict(self) == dict(other)

    def __iter__(self) -> t.Iterator[t.Tuple[str, t.Any]]:
        """Iterate over config (k, v) pairs."""
        yield from (
            (k, v) for k, v in vars(self).items() if not k.startswith("_")
        )


class Config:
    """Config constructor for building a config from args."""

    @classmethod
    def default_with_overrides(cls, **overrides: t.Any) -> RunConfig:
        """Construct a RunConfig with default arguments, plus overrides.

        Overrides must be valid arguments to the `__init__()` function
        of `RunConfig`.
        """
        return cls.from_args(["run"]).with_updates(**overrides)

    @classmethod
    def from_args(cls, args: t.Optional[t.Sequence[str]] = None) -> RunConfig:
        """Construct a Config from the passed args or sys.argv."""
        args = list(args if args is not None else sys.argv[1:])
        if not cls._has_command(args):
            args.insert(0, "run")
        parsed = get_parser().parse_args(args)
        return RunConfig.from_namespace(parsed)

    @staticmethod
    def _has_command(args: t.Sequence[str]) -> bool:
        """Is the `run` command, or a top-level only flag, present?"""
        return any(a in ("run", "-h", "--help", "--version") for a in args)
