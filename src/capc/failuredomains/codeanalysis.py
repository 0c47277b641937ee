"""
Opt-in runtime type checking. With FDBALANCER_RUNTIME_CHECKS=true, fdwrap checks a
function's arguments and return value with typeguard and traces it with
fdlogging.apitrace. fdwrapclass does the same for the methods of a class. Otherwise
both return their argument unchanged.
"""
import inspect
import os
from typing import Any, Callable

from typeguard import typechecked

from capc.failuredomains.fdlogging import apitrace

RUNTIME_TYPE_CHECKING = (
    os.getenv("FDBALANCER_RUNTIME_CHECKS", "false").lower() == "true"
)


def fdwrap(function: Callable) -> Callable:
    if not RUNTIME_TYPE_CHECKING:
        return function
    return apitrace(typechecked(function))


def _is_checked_method(cls: type, name: str, method: Any) -> bool:
    if name.startswith("__") and name != "__init__":
        return False

    if getattr(method, "__isabstractmethod__", False):
        return False

    if isinstance(inspect.getattr_static(cls, name), staticmethod):
        return False

    # nothing to check on a bare self
    return list(inspect.signature(method).parameters) not in ([], ["self"])


def fdwrapclass(cls: type) -> type:
    if not RUNTIME_TYPE_CHECKING:
        return cls

    for name, method in inspect.getmembers(cls, inspect.isfunction):
        if _is_checked_method(cls, name, method):
            setattr(cls, name, fdwrap(method))
    return cls
