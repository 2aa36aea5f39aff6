"""An in-memory deployer that never runs handlers, for use in tests."""

from __future__ import annotations

from typing import Any

from sveltoslib.requests import (
    MetricHandler,
    Options,
    RequestHandler,
    Result,
    ResultStatus,
    get_key,
)


class FakeDeployer:
    """Records requests; results are supplied by the caller via store_result."""

    def __init__(self, client: Any = None) -> None:
        self.client = client
        self._in_progress: list[str] = []
        self._results: dict[str, BaseException | None] = {}
        self._features: set[str] = set()

    def register_feature_id(self, feature_id: str) -> None:
        """Accept any feature ID, even one already registered."""
        self._features.add(feature_id)

    def deploy(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
        handler: RequestHandler | None,
        metric_handler: MetricHandler | None,
        options: Options | None,
    ) -> None:
        """Mark the request as in progress; the handler is never invoked."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        self._in_progress.append(key)

    def get_result(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
    ) -> Result:
        """Return the stored result, or in-progress/unavailable if none is stored."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        if key not in self._results:
            if self.is_key_in_progress(key):
                return Result(ResultStatus.IN_PROGRESS)
            return Result(ResultStatus.UNAVAILABLE)
        error = self._results[key]
        if error is not None:
            return Result(ResultStatus.FAILED, error)
        return Result(ResultStatus.DEPLOYED)

    def is_in_progress(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
    ) -> bool:
        """Return True if the request was deployed or marked in progress."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        return self.is_key_in_progress(key)

    def cleanup_entries(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
    ) -> None:
        """Forget any stored result for the request."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        self._results.pop(key, None)

    def store_result(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
        error: BaseException | None,
    ) -> None:
        """Pretend the request finished, failing with error if one is given."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        self._results[key] = error

    def store_in_progress(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
    ) -> None:
        """Mark the request as in progress."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        self._in_progress.append(key)

    def is_key_in_progress(self, key: str) -> bool:
        """Return True if key is currently marked in progress."""
        return key in self._in_progress