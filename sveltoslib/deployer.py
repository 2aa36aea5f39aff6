"""A pool of workers that serves requests to deploy features in clusters.

A request is first added to the dirty list, unless it is already there,
and is queued only if it is not currently being served. A worker takes the
request at the front of the queue, marks it in progress and drops it from
the dirty list. If the same request arrives while it is being served it is
only marked dirty, so one request is never served twice in parallel. When
the worker is done the result is stored and, if the request was marked dirty
again in the meantime, it goes back to the end of the queue.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from sveltoslib.requests import (
    MalformedKeyError,
    MetricHandler,
    Options,
    RequestHandler,
    RequestKey,
    Result,
    ResultStatus,
    get_key,
)

_log = logging.getLogger(__name__)


class FeatureRegistrationError(ValueError):
    """A feature ID is registered twice, or used without being registered."""


class RequestStatusUnavailable(LookupError):
    """A request has not been processed and is neither queued nor in progress."""


@dataclass(frozen=True)
class Response:
    """The stored outcome of a processed request."""

    key: str
    error: BaseException | None = None


@dataclass
class _Job:
    key: str
    handler: RequestHandler | None
    metric: MetricHandler | None
    options: Options = field(default_factory=Options)


class Deployer:
    """Queues deployment requests and serves them with a pool of worker threads."""

    def __init__(
        self,
        client: Any = None,
        num_workers: int = 1,
        *,
        logger: logging.Logger | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.client = client
        self.num_workers = num_workers
        self.poll_interval = poll_interval
        self._log = logger or _log
        self._lock = threading.Lock()
        self._dirty: list[str] = []
        self._in_progress: list[str] = []
        self._job_queue: list[_Job] = []
        self._results: dict[str, BaseException | None] = {}
        self._features: set[str] = set()
        self._stop_event: threading.Event | None = None
        self._threads: list[threading.Thread] = []

    @property
    def dirty(self) -> list[str]:
        """Keys of requests waiting to be served."""
        with self._lock:
            return list(self._dirty)

    @property
    def in_progress(self) -> list[str]:
        """Keys of requests currently being served."""
        with self._lock:
            return list(self._in_progress)

    @property
    def queued(self) -> list[str]:
        """Keys in the job queue, front first."""
        with self._lock:
            return [job.key for job in self._job_queue]

    @property
    def results(self) -> dict[str, BaseException | None]:
        """Stored results not yet collected, by key."""
        with self._lock:
            return dict(self._results)

    def start(self) -> None:
        """Start the worker threads."""
        if self._stop_event is not None:
            raise RuntimeError("deployer is already running")
        self._log.info("Creating instance now. Number of workers: %d", self.num_workers)
        self._stop_event = threading.Event()
        self._threads = [
            threading.Thread(
                target=self.process_requests,
                args=(worker_id, self._stop_event),
                name=f"deployer-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(self.num_workers)
        ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Stop the worker threads and wait for them to finish."""
        if self._stop_event is None:
            return
        self._stop_event.set()
        for thread in self._threads:
            thread.join()
        self._threads = []
        self._stop_event = None

    def __enter__(self) -> Deployer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.stop()

    def register_feature_id(self, feature_id: str) -> None:
        """Register a feature ID; raise FeatureRegistrationError if already known."""
        with self._lock:
            if feature_id in self._features:
                raise FeatureRegistrationError(f"featureID {feature_id} is already registered")
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
        """Request a feature to be deployed (or removed, if cleanup) in a cluster."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        with self._lock:
            if feature_id not in self._features:
                raise FeatureRegistrationError(f"featureID {feature_id} is not registered")
            if key in self._dirty:
                self._log.debug("request is already present in dirty")
                return
            self._results.pop(key, None)
            self._dirty.append(key)
            if key in self._in_progress:
                self._log.debug("request is already in inProgress")
                return
            self._job_queue.append(
                _Job(key, handler, metric_handler, options if options is not None else Options())
            )

    def get_result(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
    ) -> Result:
        """Return the status of a request; a stored result is consumed."""
        try:
            response = self.get_request_status(
                cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup
            )
        except RequestStatusUnavailable:
            return Result(ResultStatus.UNAVAILABLE)
        if response is None:
            return Result(ResultStatus.IN_PROGRESS)
        if response.error is not None:
            return Result(ResultStatus.FAILED, response.error)
        if cleanup:
            return Result(ResultStatus.REMOVED)
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
        """Return True if the request is currently being served."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        with self._lock:
            return key in self._in_progress

    def cleanup_entries(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
    ) -> None:
        """Drop the request from the dirty list, the queue and the results."""
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        with self._lock:
            if key in self._dirty:
                self._dirty.remove(key)
            for index, job in enumerate(self._job_queue):
                if job.key == key:
                    del self._job_queue[index]
                    break
            self._results.pop(key, None)

    def store_result(
        self,
        key: str,
        error: BaseException | None,
        handler: RequestHandler | None,
        metric_handler: MetricHandler | None,
    ) -> None:
        """Record the outcome of a request and requeue it if it was marked dirty."""
        with self._lock:
            if key in self._in_progress:
                self._in_progress.remove(key)
            if error is not None:
                self._log.debug("key %s: added to result with err %s", key, error)
            else:
                self._log.debug("key %s: added to result", key)
            self._results[key] = error
            if key in self._dirty:
                self._job_queue.append(_Job(key, handler, metric_handler))
                self._dirty.remove(key)
                self._results.pop(key, None)

    def get_request_status(
        self,
        cluster_namespace: str,
        cluster_name: str,
        applicant: str,
        feature_id: str,
        cluster_type: Any,
        cleanup: bool,
    ) -> Response | None:
        """Return the stored response (consuming it), or None while queued or in progress.

        Raises RequestStatusUnavailable if the request is unknown.
        """
        key = get_key(cluster_namespace, cluster_name, applicant, feature_id, cluster_type, cleanup)
        with self._lock:
            if key in self._results:
                return Response(key, self._results.pop(key))
            if key in self._in_progress:
                return None
            if any(job.key == key for job in self._job_queue):
                return None
        raise RequestStatusUnavailable("request has not been processed nor is currently queued")

    def process_requests(self, worker_id: int, stop_event: threading.Event) -> None:
        """Serve queued requests until stop_event is set."""
        logger = logging.LoggerAdapter(self._log, {"worker": worker_id})
        logger.info("started worker %d", worker_id)
        job: _Job | None = None
        while True:
            if job is not None:
                self._serve(worker_id, job, logger)
            job = None
            if stop_event.wait(self.poll_interval):
                logger.info("worker %d stopped", worker_id)
                return
            job = self._take_job()

    def _take_job(self) -> _Job | None:
        with self._lock:
            if not self._job_queue:
                return None
            job = self._job_queue.pop(0)
            self._in_progress.append(job.key)
            if job.key in self._dirty:
                self._dirty.remove(job.key)
            return job

    def _serve(self, worker_id: int, job: _Job, logger: Any) -> None:
        try:
            request = RequestKey.parse(job.key)
        except MalformedKeyError as exc:
            self.store_result(job.key, exc, job.handler, job.metric)
            return
        logger.info(
            "worker: %d processing request %s. cleanup: %s", worker_id, job.key, request.cleanup
        )
        start = time.monotonic()
        error: BaseException | None = None
        try:
            if job.handler is None:
                raise TypeError("request has no handler")
            job.handler(
                self.client,
                request.cluster_namespace,
                request.cluster_name,
                request.applicant,
                request.feature_id,
                request.cluster_type,
                job.options,
                logger,
            )
        except Exception as exc:  # the handler's failure is the request's result
            error = exc
        self.store_result(job.key, error, job.handler, job.metric)
        elapsed = time.monotonic() - start
        if job.metric is not None:
            job.metric(
                elapsed,
                request.cluster_namespace,
                request.cluster_name,
                request.feature_id,
                request.cluster_type,
                logger,
            )


_instance: Deployer | None = None
_instance_lock = threading.Lock()


def get_client(client: Any, num_workers: int) -> Deployer:
    """Return the process-wide deployer, creating and starting it on first call."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Deployer(client, num_workers)
            _instance.start()
        return _instance