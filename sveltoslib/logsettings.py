"""Run-time log verbosity driven by debugging configuration."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass

# Verbosity levels used by the services.
LOG_INFO = 0
LOG_DEBUG = 5
LOG_VERBOSE = 10

_log = logging.getLogger(__name__)


class LogLevel(str, enum.Enum):
    """Log level requested for a component."""

    NOT_SET = "LogLevelNotSet"
    INFO = "LogLevelInfo"
    DEBUG = "LogLevelDebug"
    VERBOSE = "LogLevelVerbose"


@dataclass(frozen=True)
class ComponentConfiguration:
    """The log level requested for one component."""

    component: str
    log_level: LogLevel | str = LogLevel.NOT_SET


class LogSetter:
    """Holds the verbosity of one component and changes it on request.

    The values used for each level can be changed through the
    default_value, info_value, debug_value and verbose_value attributes.
    """

    def __init__(
        self,
        component: str,
        *,
        default_value: int = LOG_INFO,
        info_value: int = LOG_INFO,
        debug_value: int = LOG_DEBUG,
        verbose_value: int = LOG_VERBOSE,
    ) -> None:
        self.component = component
        self.default_value = default_value
        self.info_value = info_value
        self.debug_value = debug_value
        self.verbose_value = verbose_value
        self.verbosity = default_value
        self._lock = threading.Lock()

    def update_log_level(self, configurations: Iterable[ComponentConfiguration]) -> int:
        """Apply the entries for this component and return the new verbosity.

        Without an entry naming a known level the default is applied.
        """
        chosen: int | None = None
        for entry in configurations:
            if entry.component != self.component:
                continue
            if entry.log_level == LogLevel.VERBOSE:
                chosen = self.verbose_value
            elif entry.log_level == LogLevel.DEBUG:
                chosen = self.debug_value
            elif entry.log_level == LogLevel.INFO:
                chosen = self.info_value
        if chosen is None:
            chosen = self.default_value
        with self._lock:
            self.verbosity = chosen
        _log.info("Setting log severity for %s to %d", self.component, chosen)
        return chosen

    def reset(self) -> int:
        """Return to the default verbosity, as when the configuration is deleted."""
        with self._lock:
            self.verbosity = self.default_value
        _log.info("Debugging configuration removed; log severity set to %d", self.default_value)
        return self.default_value


_instance: LogSetter | None = None
_instance_lock = threading.Lock()


def register_for_log_settings(component: str) -> LogSetter:
    """Create the process-wide LogSetter for component on first call; return it."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _log.info("Registering for run-time log severity changes: %s", component)
            _instance = LogSetter(component)
        return _instance


def get_instance() -> LogSetter | None:
    """Return the process-wide LogSetter, or None before registration."""
    return _instance


def update_log_level(configurations: Iterable[ComponentConfiguration]) -> int:
    """Apply configurations to the process-wide LogSetter."""
    instance = _instance
    if instance is None:
        raise RuntimeError("log settings are not registered")
    return instance.update_log_level(configurations)