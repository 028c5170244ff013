"""Test the ArgumentParser and associated functions."""

import argparse
import logging
import pathlib
import sys

import pytest

from localfeed.config import (
    DEFAULTS,
    Config,
    RunConfig,
    get_parser,
    log_stream_arg,
    non_negative_int_arg,
    package_directory_arg,
    strtobool,
)


@pytest.mark.parametrize(
    "val, exp",
    [
        ("yes", True),
        ("On", True),
        (" 1 ", True),
        ("true", True),
        ("no", False),
        ("OFF", False),
        ("0", False),
        ("false", False),
    ],
)
def test_strtobool(val, exp):
    assert strtobool(val) is exp


def test_strtobool_invalid():
    with pytest.raises(ValueError):
        strtobool("maybe")


class TestCustomParsers:
    def test_package_directory(self, tmp_path):
        assert package_directory_arg(str(tmp_path)) == tmp_path.resolve()
        missing = tmp_path / "not-yet"
        assert package_directory_arg(str(missing)) == missing.resolve()

    def test_package_directory_is_file(self, tmp_path):
        afile = tmp_path / "afile"
        afile.write_text("")
        with pytest.raises(argparse.ArgumentTypeError):
            package_directory_arg(str(afile))

    @pytest.mark.parametrize("arg, exp", [("0", 0), ("3", 3)])
    def test_non_negative_int(self, arg, exp):
        assert non_negative_int_arg(arg) == exp

    @pytest.mark.parametrize("arg", ["-1", "two", ""])
    def test_non_negative_int_invalid(self, arg):
        with pytest.raises(argparse.ArgumentTypeError):
            non_negative_int_arg(arg)

    @pytest.mark.parametrize(
        "arg, exp",
        [("stdout", sys.stdout), ("STDOUT", sys.stdout), ("none", None)],
    )
    def test_log_stream(self, arg, exp):
        assert log_stream_arg(arg) is exp

    def test_log_stream_stderr(self):
        assert log_stream_arg("stderr") is not None

    def test_log_stream_invalid(self):
        with pytest.raises(argparse.ArgumentTypeError):
            log_stream_arg("somewhere")


def test_defaults():
    config = Config.from_args([])
    assert config.package_root == DEFAULTS.PACKAGE_DIRECTORY
    assert config.port == DEFAULTS.PORT
    assert config.host == DEFAULTS.INTERFACE
    assert config.server_method == DEFAULTS.SERVER_METHOD
    assert config.write_retries == DEFAULTS.WRITE_RETRIES
    assert config.max_sessions == DEFAULTS.MAX_SESSIONS
    assert config.disable_cache is False
    assert config.cors_origin is None
    assert config.verbosity == 0
    assert config.log_level == logging.WARNING


def test_run_command_is_optional(tmp_path):
    implicit = Config.from_args([str(tmp_path), "-p", "9000"])
    explicit = Config.from_args(["run", str(tmp_path), "-p", "9000"])
    assert implicit == explicit
    assert implicit.package_root == tmp_path.resolve()
    assert implicit.port == 9000


@pytest.mark.parametrize(
    "args, attr, exp",
    [
        (["--port", "8081"], "port", 8081),
        (["-p", "8081"], "port", 8081),
        (["-i", "1.1.1.1"], "host", "1.1.1.1"),
        (["-H", "1.1.1.1"], "host", "1.1.1.1"),
        (["--interface", "1.1.1.1"], "host", "1.1.1.1"),
        (["--host", "1.1.1.1"], "host", "1.1.1.1"),
        (["--server", "Waitress"], "server_method", "waitress"),
        (["--disable-cache"], "disable_cache", True),
        (["--write-retries", "0"], "write_retries", 0),
        (["--cors-origin", "*"], "cors_origin", "*"),
        (["--max-sessions", "10"], "max_sessions", 10),
        (["--log-file", "foo.log"], "log_file", "foo.log"),
        (["--log-stream", "none"], "log_stream", None),
        (["--log-frmt", "%(message)s"], "log_frmt", "%(message)s"),
        (["--log-req-frmt", "%s"], "log_req_frmt", "%s"),
        (["--log-res-frmt", "%s"], "log_res_frmt", "%s"),
        (["--log-err-frmt", "%s"], "log_err_frmt", "%s"),
    ],
)
def test_run_options(args, attr, exp):
    assert getattr(Config.from_args(args), attr) == exp


@pytest.mark.parametrize(
    "args",
    [
        ["--server", "tornado"],
        ["--server", "gunicorn"],
        ["--write-retries", "-1"],
        ["--max-sessions", "lots"],
        ["--log-stream", "file"],
    ],
)
def test_invalid_options(args, capsys):
    with pytest.raises(SystemExit):
        Config.from_args(args)
    assert "error" in capsys.readouterr().err


@pytest.mark.parametrize(
    "verbosity, exp",
    [
        (0, logging.WARNING),
        (1, logging.INFO),
        (2, logging.DEBUG),
        (3, logging.NOTSET),
        (5, logging.NOTSET),
    ],
)
def test_log_level(verbosity, exp):
    args = ["-v"] * verbosity
    assert Config.from_args(args).log_level == exp


def test_version(capsys):
    from localfeed import __version__

    with pytest.raises(SystemExit):
        get_parser().parse_args(["--version"])
    assert __version__ in capsys.readouterr().out


def test_with_updates():
    config = Config.default_with_overrides(port=9000)
    updated = config.with_updates(port=9001, cors_origin="*")
    assert isinstance(updated, RunConfig)
    assert config.port == 9000
    assert updated.port == 9001
    assert updated.cors_origin == "*"
    assert updated.with_updates(port=9000, cors_origin=None) == config
    assert config != updated
    assert config != object()


def test_default_with_overrides_path(tmp_path):
    config = Config.default_with_overrides(package_root=str(tmp_path))
    assert isinstance(config.package_root, pathlib.Path)
    assert "package_root" in dict(config)
    assert repr(config).startswith("RunConfig(")
