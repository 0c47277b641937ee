"""
Logging for the failure domain balancer. Import it in place of logging:

    import capc.failuredomains.fdlogging as logging
    logger = logging.getLogger("capc.balancer")

Every record carries a 'context' attribute, the machine currently being placed
(see set_context), so handlers can use %(context)s in their format.

Placement decisions and the capacity snapshots behind them are written as one JSON
document per event to the "capc.repro" logger at the REPRO level. Enable it to
replay why a machine landed where it did:

    {"logging": {"config": {... "loggers": {"capc.repro": {"level": "REPRO"}}}}}
"""
import functools
import inspect
import logging
import logging.config
import os
import sys
import time
from typing import Any, Callable, Dict, Optional

import jsonpickle

DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR
NOTSET = logging.NOTSET
FINE = logging.DEBUG // 2
TRACE = 2
REPRO = 1

logging.addLevelName(FINE, "FINE")
logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(REPRO, "REPRO")

_CONTEXT = "[init]"

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(context)s: %(message)s"


class FDLogger(logging.Logger):
    def makeRecord(self, *args: Any, **kwargs: Any) -> logging.LogRecord:
        record = logging.Logger.makeRecord(self, *args, **kwargs)
        if not hasattr(record, "context"):
            record.context = _CONTEXT  # type: ignore
        return record

    def fine(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(FINE):
            self._log(FINE, msg, args, **kwargs)

    def trace(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)


class ContextFilter(logging.Filter):
    """Adds 'context' to records from loggers that are not FDLoggers."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            record.context = _CONTEXT  # type: ignore
        return True


logging.setLoggerClass(FDLogger)

getLogger = logging.getLogger

_LOGGER: FDLogger = getLogger("capc.failuredomains")  # type: ignore
_TRACE_LOGGER: FDLogger = getLogger("capc.apitrace")  # type: ignore
_REPRO_LOGGER: FDLogger = getLogger("capc.repro")  # type: ignore

debug = _LOGGER.debug
info = _LOGGER.info
warning = _LOGGER.warning
error = _LOGGER.error
exception = _LOGGER.exception


def set_context(ctx: str) -> None:
    global _CONTEXT
    _CONTEXT = ctx


def get_context() -> str:
    return _CONTEXT


def reprolog(event: str, **fields: Any) -> None:
    """
    Writes one placement event, e.g.

        reprolog("assigned", balancer="random", machine=cs_machine, failure_domain="fd1")

    Values with a to_dict method are written as that dict.
    """
    if not _REPRO_LOGGER.isEnabledFor(REPRO):
        return

    doc: Dict[str, Any] = {"timestamp": time.time(), "context": _CONTEXT, "event": event}
    for key, value in fields.items():
        doc[key] = _plain(value)
    _REPRO_LOGGER.log(REPRO, jsonpickle.encode(doc, unpicklable=False))


def _plain(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def apitrace(function: Callable) -> Callable:
    """
    Logs ENTER/EXIT of function to "capc.apitrace" at FINE. At TRACE the entry
    line includes the bound arguments.
    """
    if getattr(function, "is_apitraced", False):
        return function

    sig = inspect.signature(function)

    @functools.wraps(function)
    def apitrace_wrapper(*args: Any, **kwargs: Any) -> Any:
        name = function.__qualname__
        if _TRACE_LOGGER.isEnabledFor(TRACE):
            bound = sig.bind_partial(*args, **kwargs).arguments
            _TRACE_LOGGER.trace(
                "ENTER %s(%s)",
                name,
                ", ".join(
                    "{}={!r}".format(k, v) for k, v in bound.items() if k != "self"
                ),
            )
        else:
            _TRACE_LOGGER.fine("ENTER %s", name)

        ret = function(*args, **kwargs)
        _TRACE_LOGGER.fine("EXIT %s -> %r", name, ret)
        return ret

    setattr(apitrace_wrapper, "is_apitraced", True)
    return apitrace_wrapper


_initialized = False


def initialize_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Configures logging once per process from the "logging" section of the config:

        "config"        a logging.config.dictConfig dict
        "config_file"   a logging.config.fileConfig file, FDBALANCER_LOG_CONFIG
                        is used when this is not set
        "level"         level of the default stderr handler (default INFO)
    """
    global _initialized

    if _initialized:
        return

    section = (config or {}).get("logging", {})
    config_file = section.get("config_file") or os.getenv("FDBALANCER_LOG_CONFIG")

    if section.get("config"):
        logging.config.dictConfig(section["config"])
    elif config_file and os.path.exists(config_file):
        logging.config.fileConfig(config_file, disable_existing_loggers=False)
    else:
        if config_file:
            print(
                "Logging config file {} does not exist, logging to stderr".format(
                    config_file
                ),
                file=sys.stderr,
            )
        handler = logging.StreamHandler(sys.stderr)
        handler.addFilter(ContextFilter())
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        logging.basicConfig(level=section.get("level", INFO), handlers=[handler])

    _initialized = True
