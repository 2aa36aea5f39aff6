import threading
import time

import pytest

from sveltoslib.deployer import (
    Deployer,
    FeatureRegistrationError,
    RequestStatusUnavailable,
    Response,
    get_client,
)
from sveltoslib.requests import Options, ResultStatus, get_key

NS = "workerns"
NAME = "workername"
APPLICANT = "applicant"
FEATURE = "feature"
CAPI = "Capi"
SVELTOS = "Sveltos"


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def do_nothing(client, namespace, name, applicant, feature_id, cluster_type, options, logger):
    return None


class Blocker:
    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self, client, namespace, name, applicant, feature_id, cluster_type, options, logger):
        self.entered.set()
        self.release.wait(5)


@pytest.fixture
def deployer():
    d = Deployer(None, 1, poll_interval=0.01)
    d.register_feature_id(FEATURE)
    return d


@pytest.fixture
def busy(deployer):
    """A started deployer whose only worker is serving (and blocked on) the request."""
    blocker = Blocker()
    deployer.start()
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, blocker, None, Options())
    assert blocker.entered.wait(5)
    yield deployer, blocker
    blocker.release.set()
    deployer.stop()


def test_register_feature_id_twice_raises():
    d = Deployer()
    d.register_feature_id("f1")
    with pytest.raises(FeatureRegistrationError):
        d.register_feature_id("f1")


def test_get_result_returns_deployed_and_consumes_it(deployer):
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    deployer.store_result(key, None, None, None)
    assert len(deployer.results) == 1
    result = deployer.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert result.status == ResultStatus.DEPLOYED
    assert result.error is None
    assert deployer.results == {}
    again = deployer.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert again.status == ResultStatus.UNAVAILABLE


def test_get_result_returns_failed_with_error(deployer):
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    error = RuntimeError("failed to deploy")
    deployer.store_result(key, error, None, None)
    result = deployer.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert result.status == ResultStatus.FAILED
    assert result.error is error


def test_get_result_removed_for_cleanup(deployer):
    key = get_key(NS, NAME, APPLICANT, FEATURE, SVELTOS, True)
    deployer.store_result(key, None, None, None)
    result = deployer.get_result(NS, NAME, APPLICANT, FEATURE, SVELTOS, True)
    assert result.status == ResultStatus.REMOVED


def test_get_result_in_progress_when_being_served(busy):
    d, _ = busy
    assert d.is_in_progress(NS, NAME, APPLICANT, FEATURE, CAPI, False) is True
    result = d.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert result.status == ResultStatus.IN_PROGRESS
    assert result.error is None


def test_get_result_in_progress_when_queued(deployer):
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, SVELTOS, False, do_nothing, None, Options())
    assert len(deployer.queued) == 1
    result = deployer.get_result(NS, NAME, APPLICANT, FEATURE, SVELTOS, False)
    assert result.status == ResultStatus.IN_PROGRESS
    other = deployer.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert other.status == ResultStatus.UNAVAILABLE
    assert other.error is None


def test_get_result_unavailable_when_unknown(deployer):
    for cluster_type in (CAPI, SVELTOS):
        result = deployer.get_result(NS, NAME, APPLICANT, FEATURE, cluster_type, True)
        assert result.status == ResultStatus.UNAVAILABLE
        assert result.error is None


def test_deploy_unregistered_feature_raises():
    d = Deployer()
    with pytest.raises(FeatureRegistrationError):
        d.deploy(NS, NAME, APPLICANT, "unknown", CAPI, True, None, None, Options())


def test_deploy_adds_to_dirty_and_queue(deployer):
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, None, None, Options())
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert deployer.dirty == [key]
    assert deployer.in_progress == []
    assert deployer.queued == [key]


def test_deploy_does_nothing_if_already_dirty(deployer):
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, None, None, Options())
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, None, None, Options())
    assert len(deployer.dirty) == 1
    assert len(deployer.in_progress) == 0
    assert len(deployer.queued) == 1


def test_deploy_when_in_progress_does_not_queue(busy):
    d, _ = busy
    d.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, do_nothing, None, Options())
    assert len(d.dirty) == 1
    assert len(d.in_progress) == 1
    assert len(d.queued) == 0


def test_deploy_removes_existing_result(deployer):
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    deployer.store_result(key, None, None, None)
    assert len(deployer.results) == 1
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, None, None, Options())
    assert len(deployer.dirty) == 1
    assert len(deployer.in_progress) == 0
    assert len(deployer.queued) == 1
    assert len(deployer.results) == 0


def test_cleanup_entries_clears_dirty_and_queue(deployer):
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, None, None, Options())
    deployer.cleanup_entries(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert deployer.dirty == []
    assert deployer.queued == []


def test_cleanup_entries_clears_results(deployer):
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    deployer.store_result(key, None, None, None)
    deployer.cleanup_entries(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert deployer.results == {}


def test_cleanup_entries_keeps_in_progress(busy):
    d, _ = busy
    d.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, do_nothing, None, Options())
    d.cleanup_entries(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert d.dirty == []
    assert d.queued == []
    assert d.results == {}
    assert len(d.in_progress) == 1


def test_store_result_removes_from_in_progress(busy):
    d, _ = busy
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    d.store_result(key, None, do_nothing, None)
    assert d.in_progress == []
    assert d.results == {key: None}


def test_store_result_requeues_dirty_request(busy):
    d, _ = busy
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    d.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, do_nothing, None, Options())
    d.store_result(key, None, do_nothing, None)
    assert d.in_progress == []
    assert d.dirty == []
    assert d.queued == [key]
    assert d.results == {}


def test_get_request_status_returns_response(deployer):
    key = get_key(NS, NAME, APPLICANT, FEATURE, SVELTOS, True)
    deployer.store_result(key, None, None, None)
    response = deployer.get_request_status(NS, NAME, APPLICANT, FEATURE, SVELTOS, True)
    assert response == Response(key, None)


def test_get_request_status_reports_error(deployer):
    key = get_key(NS, NAME, APPLICANT, FEATURE, CAPI, True)
    error = RuntimeError("failed to deploy")
    deployer.store_result(key, error, None, None)
    response = deployer.get_request_status(NS, NAME, APPLICANT, FEATURE, CAPI, True)
    assert response.error is error


def test_get_request_status_none_when_in_progress(busy):
    d, _ = busy
    assert d.get_request_status(NS, NAME, APPLICANT, FEATURE, CAPI, False) is None


def test_get_request_status_none_when_queued(deployer):
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, None, None, Options())
    assert deployer.get_request_status(NS, NAME, APPLICANT, FEATURE, CAPI, False) is None


def test_get_request_status_raises_when_unknown(deployer):
    with pytest.raises(RequestStatusUnavailable):
        deployer.get_request_status(NS, NAME, APPLICANT, FEATURE, CAPI, False)


def test_process_requests_runs_handler_and_stores_result(deployer):
    calls = []
    metrics = []

    def handler(client, namespace, name, applicant, feature_id, cluster_type, options, logger):
        calls.append((client, namespace, name, applicant, feature_id, cluster_type, options))

    def metric(elapsed, namespace, name, feature_id, cluster_type, logger):
        metrics.append((elapsed, namespace, name, feature_id, cluster_type))

    deployer.client = "control-cluster"
    options = Options({"opt": "value"})
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, True, handler, metric, options)
    stop = threading.Event()
    worker = threading.Thread(target=deployer.process_requests, args=(1, stop))
    worker.start()
    try:
        assert wait_for(lambda: len(deployer.results) == 1)
    finally:
        stop.set()
        worker.join()
    assert calls == [("control-cluster", NS, NAME, APPLICANT, FEATURE, CAPI, options)]
    assert wait_for(lambda: len(metrics) == 1)
    assert metrics[0][0] >= 0
    assert metrics[0][1:] == (NS, NAME, FEATURE, CAPI)
    result = deployer.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, True)
    assert result.status == ResultStatus.REMOVED


def test_failing_handler_gives_failed_result(deployer):
    def handler(client, namespace, name, applicant, feature_id, cluster_type, options, logger):
        raise RuntimeError("boom")

    with deployer:
        deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, handler, None, Options())
        assert wait_for(lambda: len(deployer.results) == 1)
    result = deployer.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, False)
    assert result.status == ResultStatus.FAILED
    assert str(result.error) == "boom"


def test_stopped_deployer_does_not_serve(deployer):
    with deployer:
        pass
    deployer.deploy(NS, NAME, APPLICANT, FEATURE, CAPI, False, do_nothing, None, Options())
    time.sleep(0.1)
    assert deployer.get_result(NS, NAME, APPLICANT, FEATURE, CAPI, False).status == (
        ResultStatus.IN_PROGRESS
    )


def test_start_twice_raises(deployer):
    with deployer:
        with pytest.raises(RuntimeError):
            deployer.start()


def test_get_client_returns_same_instance():
    first = get_client("client", 2)
    second = get_client("other", 5)
    try:
        assert first is second
        assert first.client == "client"
        assert first.num_workers == 2
    finally:
        first.stop()