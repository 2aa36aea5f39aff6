"""Deployment requests: their keys, results and handler signatures."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

SEPARATOR = ":::"
_KEY_FIELDS = 6
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ResultStatus(enum.IntEnum):
    """Outcome of a request to deploy or remove a feature."""

    DEPLOYED = 0
    IN_PROGRESS = 1
    FAILED = 2
    REMOVED = 3
    UNAVAILABLE = 4

    def __str__(self) -> str:
        return _STATUS_NAMES.get(self, "unavailable")


_STATUS_NAMES = {
    ResultStatus.DEPLOYED: "deployed",
    ResultStatus.IN_PROGRESS: "in-progress",
    ResultStatus.FAILED: "failed",
    ResultStatus.REMOVED: "removed",
    ResultStatus.UNAVAILABLE: "unavailable",
}


@dataclass(frozen=True)
class Result:
    """Status of a request and, when it failed, the error it failed with."""

    status: ResultStatus
    error: BaseException | None = None


@dataclass
class Options:
    """Extra options handed to a request handler."""

    handler_options: dict[str, str] = field(default_factory=dict)


class MalformedKeyError(ValueError):
    """A request key does not have the expected shape."""


# handler(client, cluster_namespace, cluster_name, applicant, feature_id,
#         cluster_type, options, logger); raises to report failure.
RequestHandler = Callable[[Any, str, str, str, str, str, Options, logging.Logger], None]

# metric_handler(elapsed_seconds, cluster_namespace, cluster_name, feature_id,
#                cluster_type, logger)
MetricHandler = Callable[[float, str, str, str, str, logging.Logger], None]


def _cluster_type_text(cluster_type: Any) -> str:
    return str(getattr(cluster_type, "value", cluster_type))


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise MalformedKeyError(f'parsing "{text}": invalid syntax')


@dataclass(frozen=True)
class RequestKey:
    """The parts that identify one request for a feature in a cluster."""

    cluster_namespace: str
    cluster_name: str
    cluster_type: str
    applicant: str
    feature_id: str
    cleanup: bool

    @classmethod
    def parse(cls, key: str) -> RequestKey:
        """Split a key made by get_key back into its parts."""
        parts = key.split(SEPARATOR)
        if len(parts) != _KEY_FIELDS:
            raise MalformedKeyError(f"key: {key} is malformed")
        namespace, name, cluster_type, applicant, feature_id, cleanup = parts
        return cls(
            cluster_namespace=namespace,
            cluster_name=name,
            cluster_type=cluster_type,
            applicant=applicant,
            feature_id=feature_id,
            cleanup=_parse_bool(cleanup),
        )

    def __str__(self) -> str:
        return SEPARATOR.join(
            (
                self.cluster_namespace,
                self.cluster_name,
                _cluster_type_text(self.cluster_type),
                self.applicant,
                self.feature_id,
                "true" if self.cleanup else "false",
            )
        )


def get_key(
    cluster_namespace: str,
    cluster_name: str,
    applicant: str,
    feature_id: str,
    cluster_type: Any,
    cleanup: bool,
) -> str:
    """Return the unique key of a request for a feature in a cluster."""
    return str(
        RequestKey(
            cluster_namespace=cluster_namespace,
            cluster_name=cluster_name,
            cluster_type=_cluster_type_text(cluster_type),
            applicant=applicant,
            feature_id=feature_id,
            cleanup=bool(cleanup),
        )
    )