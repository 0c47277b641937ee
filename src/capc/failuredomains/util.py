import json
import os
import sys
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple, TypeVar, Union

T = TypeVar("T")
K = TypeVar("K")


class ConfigurationException(RuntimeError):
    pass


class CircularIncludeError(ConfigurationException):
    pass


def partition(items: List[T], func: Callable[[T], K]) -> Dict[K, List[T]]:
    """Groups items by func(item), keeping the order in which keys are first seen."""
    by_key: Dict[K, List[T]] = {}
    for item in items:
        by_key.setdefault(func(item), []).append(item)
    return by_key


def partition_single(items: List[T], func: Callable[[T], K]) -> Dict[K, T]:
    ret: Dict[K, T] = {}
    for key, values in partition(items, func).items():
        if len(values) > 1:
            raise RuntimeError("Duplicate key {} for {}".format(key, values))
        ret[key] = values[0]
    return ret


def json_dump(obj: object, writer: Optional[TextIO] = None) -> None:
    def default(x: object) -> Any:
        if hasattr(x, "to_dict"):
            return getattr(x, "to_dict")()
        return str(x)

    writer = writer or sys.stdout
    json.dump(obj, writer, indent=2, default=default)
    writer.write("\n")


def load_config(*configs: Union[str, Dict]) -> Dict:
    """
    Merges json config files (or dicts) left to right. A file may list other files
    under "include"; relative paths are relative to the including file, and included
    files override the includer.
    """
    ret: Dict = {}
    for config in configs:
        ret = _merge(ret, _load(config, ()))
    return ret


def _load(config: Union[str, Dict], includers: Tuple[str, ...]) -> Dict:
    if isinstance(config, dict):
        return config

    path = os.path.abspath(config)
    if path in includers:
        raise CircularIncludeError(
            "Circular include found: {}".format(" ---> ".join(includers + (path,)))
        )

    try:
        with open(path) as fr:
            loaded = json.load(fr)
    except (OSError, ValueError) as e:
        raise ConfigurationException(
            "Could not parse config {}: {}".format(config, e)
        ) from e

    for include in loaded.get("include", []):
        child = os.path.join(os.path.dirname(path), include)
        loaded = _merge(loaded, _load(child, includers + (path,)))
    return loaded


def _merge(base: Dict, override: Dict) -> Dict:
    """Dicts merge recursively, lists are concatenated without duplicates."""
    ret = dict(base)
    for key, value in override.items():
        current = ret.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            ret[key] = _merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            ret[key] = current + [v for v in value if v not in current]
        else:
            ret[key] = value
    return ret
