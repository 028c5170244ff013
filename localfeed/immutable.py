"""Utilities to make immutability easier.

Inherit from `Immutable` to get instances whose attributes may only be
assigned inside `__init__()`. Afterwards, any assignment or deletion
raises `ImmutableAssignmentError`, a subclass of `AttributeError`.

Note that none of the immutability extends to the attributes themselves:
if `immutable.a` is a list, the list can still be mutated, so keep
attribute values immutable too (tuples, strings, other `Immutable`s).
"""

import typing as t
from functools import wraps


class ImmutableAssignmentError(AttributeError):
    """An attribute could not be set because the object is immutable."""


def _wrap_init(init: t.Callable) -> t.Callable:
    """Freeze instances once the outermost initializer returns."""

    @wraps(init)
    def new_init(inst, *args, **kwargs):
        depth = getattr(inst, "_init_depth", 0)
        object.__setattr__(inst, "_init_depth", depth + 1)
        try:
            init(inst, *args, **kwargs)
        finally:
            object.__setattr__(inst, "_init_depth", depth)
        if depth == 0:
            object.__setattr__(inst, "_frozen", True)

    return new_init


class Immutable:
    """A class that may have instances but whose instances are not mutable
    after construction."""

    __slots__ = ("_frozen", "_init_depth")

    def __init_subclass__(cls, **kwargs: t.Any) -> None:
        super().__init_subclass__(**kwargs)
        if "__init__" in cls.__dict__:
            cls.__init__ = _wrap_init(cls.__dict__["__init__"])  # type: ignore

    def __setattr__(self, attr: str, val: t.Any) -> None:
        if getattr(self, "_frozen", False):
            raise ImmutableAssignmentError(
                "{} is immutable".format(self.__class__.__name__)
            )
        object.__setattr__(self, attr, val)

    def __delattr__(self, attr: str) -> None:
        raise ImmutableAssignmentError(
            "{} is immutable".format(self.__class__.__name__)
        )
