import pathlib
import re as _re
import sys
import typing as t

from bottle import Bottle

version = __version__ = "1.0.0"
__version_info__ = tuple(_re.split("[.-]", __version__))

__title__ = "localfeed"
__summary__ = "A local nuget package feed."

if t.TYPE_CHECKING:
    from .config import RunConfig
    from .engine import IPackageService


identity = lambda x: x


def app(**kwargs: t.Any) -> Bottle:
    """Construct a bottle app running localfeed.

    :param kwargs: Any overrides for defaults. Any property of RunConfig,
        defined in `localfeed.config`, may be overridden.
    """
    from .config import Config

    config = Config.default_with_overrides(**kwargs)
    return app_from_config(config)


def app_from_config(
    config: "RunConfig", service: t.Optional["IPackageService"] = None
) -> Bottle:
    """Construct a bottle app from the provided RunConfig.

    :param service: serve requests with this package service instead of
        one built on the configured feed store
    """
    from .backend import get_feed_store
    from .engine import PackageService
    from .session import SessionRegistry

    # The _app module instantiates a Bottle instance directly when it is
    # imported. That is `_app.app`. We directly mutate some global variables
    # on the imported `_app` module so that its endpoints will behave as
    # we expect.
    _app = __import__("_app", globals(), locals(), ["."], 1)
    # Because we're about to mutate our import, we pop it out of the imported
    # modules map, so that any future imports do not receive our mutated version
    sys.modules.pop("localfeed._app", None)
    _app.config = config
    if service is None:
        _app.store = get_feed_store(config)
        _app.service = PackageService(
            _app.store, write_retries=config.write_retries
        )
    else:
        _app.store = getattr(service, "store", None)
        _app.service = service
    _app.sessions = SessionRegistry(config.max_sessions)
    # Add a reference to our config on the Bottle app for easy access in testing
    # and other contexts.
    _app.app._localfeed_config = config
    return _app.app


def paste_app_factory(_global_config, **local_conf):
    """Parse a paste config and return an app.

    The paste config is entirely strings, so we need to parse those
    strings into values usable for the config, if they're present.
    """
    from .config import strtobool

    def to_bool(val: t.Optional[str]) -> t.Optional[bool]:
        """Convert a string value, if provided, to a bool."""
        return val if val is None else strtobool(val)

    def to_int(val: t.Optional[str]) -> t.Optional[int]:
        """Convert a string value, if provided, to an int."""
        return val if val is None else int(val)

    def _make_root(root: str) -> pathlib.Path:
        """Convert a specified string root into an absolute Path instance."""
        return pathlib.Path(root.strip()).expanduser().resolve()

    # A map of config keys we expect in the paste config to the appropriate
    # function to parse the string config value.
    maps: t.Dict[str, t.Callable[[str], t.Any]] = {
        "package_root": _make_root,
        "disable_cache": to_bool,
        "write_retries": to_int,
        "max_sessions": to_int,
        "verbosity": to_int,
        "cors_origin": lambda val: val.strip() or None,
    }

    conf = {k: maps.get(k, identity)(v) for k, v in local_conf.items()}
    return app(**conf)
