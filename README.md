# sveltoslib

Building blocks for controllers that roll out add-ons and policies across many
Kubernetes clusters. Cluster objects are plain dictionaries, the shape you get
when you decode a manifest. Clients are any objects that offer the small
interface each function calls, so you can test everything with in-memory
stand-ins.

## Installation

```
pip install sveltoslib
```

To run the test suite:

```
pip install "sveltoslib[test]"
pytest
```

## Modules

### `sveltoslib.deployer`

`Deployer(client=None, num_workers=1, *, logger=None, poll_interval=1.0)` queues
requests to deploy a feature in a cluster, or to clean it up, and serves them
with a pool of worker threads.

- `start()` and `stop()` start and stop the workers. The class also works as a
  context manager.
- `register_feature_id(feature_id)` registers a feature. Registering the same
  feature twice raises `FeatureRegistrationError`.
- `deploy(...)` queues a request. It raises `FeatureRegistrationError` if the
  feature has not been registered.
  - A request that is already waiting is dropped.
  - A request that is already being served is marked dirty and queued again
    once the running one finishes.
  - The same request never runs twice in parallel.
- `get_result(...)` returns a `Result` whose status is one of `DEPLOYED`,
  `REMOVED` (for a cleanup), `FAILED` (with the error), `IN_PROGRESS` or
  `UNAVAILABLE`. A stored result is consumed when it is read.
- `get_request_status(...)` gives the same information as a `Response`. It
  returns `None` while the request is queued or running, and raises
  `RequestStatusUnavailable` for an unknown request.
- `is_in_progress(...)` and `cleanup_entries(...)` check a request and drop it
  from the queue, the dirty list and the results.
- The properties `dirty`, `in_progress`, `queued` and `results` return
  snapshots of the internal state.

`get_client(client, num_workers)` returns a deployer shared by the whole
process. It is created and started on the first call.

A handler is called as
`handler(client, cluster_namespace, cluster_name, applicant, feature_id, cluster_type, options, logger)`.
It reports failure by raising. An optional metric handler is then called with
the elapsed seconds.

### `sveltoslib.requests`

- `get_key(...)` builds a request key and `RequestKey.parse(key)` splits one.
  A badly formed key raises `MalformedKeyError`.
- Also provides `ResultStatus`, `Result` and `Options(handler_options=...)`.

### `sveltoslib.fake_deployer`

`FakeDeployer` is an in-memory stand-in for tests. `deploy` only marks the
request as in progress and never runs a handler. You set outcomes yourself with
`store_result` and `store_in_progress`.

### `sveltoslib.policy`

- Owner-reference bookkeeping on object dicts: `add_owner_reference`,
  `remove_owner_reference`, `is_owner_reference` and `is_only_owner_reference`.
- `validate_object_for_update(resource, obj, kind, namespace, name)` returns
  `(exists, hash)`. It raises `ConflictError` when the existing object was
  deployed from a different ConfigMap/Secret.
- `get_owner_message(resource, name)` describes why an object is deployed.
- `resource` is any object with a `get(name)` method that raises
  `NotFoundError` for a missing object.

### `sveltoslib.roles`

Keeps the kubeconfig for each cluster and service account in a Secret. The
functions are `get_secret`, `create_secret`, `delete_secret`, `list_secrets`,
`list_secret_for_owner`, `get_kubeconfig` and
`get_service_account_name_in_managed_cluster`.

The client needs four methods: `list(namespace, labels)`, `create(obj)`,
`update(obj)` and `delete(obj)`.

### `sveltoslib.utils`

- `get_unstructured(data)` decodes a YAML or JSON manifest into a dict. It
  raises `ValueError` when the data cannot be decoded or has no kind.
- `get_kubeconfig_with_user_token(id_token, ca_data, user_id, server)` returns
  a JSON kubeconfig as bytes. `server` must look like
  `https://host` or `https://host:port`.

### `sveltoslib.logsettings`

`LogSetter` maps `LogLevel.INFO`, `DEBUG` and `VERBOSE` to verbosity values
(0, 5 and 10 by default) for one component.

- `update_log_level(configurations)` applies a list of `ComponentConfiguration`
  entries.
- `reset()` goes back to the default level.
- `register_for_log_settings(component)`, `get_instance()` and the module-level
  `update_log_level(...)` work with a single instance shared by the whole
  process.

### `sveltoslib.crd_watcher`

`CRDWatcher(handler)` provides `on_add`, `on_update` and `on_delete` event
handlers. Each one calls `handler` with a `GroupVersionKind` for every version
that the CustomResourceDefinition declares. `crd_group_version_kinds(crd)`
does the same extraction on its own.

### `sveltoslib.refset`

`ReferenceSet` is a set of frozen `ObjectReference` values. It provides
`insert`, `append`, `erase`, `has`, `items` and `difference`.

## Example

```python
import time

from sveltoslib.deployer import Deployer
from sveltoslib.requests import Options, ResultStatus


def handler(client, namespace, name, applicant, feature_id, cluster_type, options, logger):
    ...  # deploy the feature; raise to report failure


with Deployer(client=None, num_workers=2, poll_interval=0.1) as deployer:
    deployer.register_feature_id("helm")
    deployer.deploy("default", "cluster1", "", "helm", "Capi", False,
                    handler, None, Options())
    while True:
        result = deployer.get_result("default", "cluster1", "", "helm", "Capi", False)
        if result.status is not ResultStatus.IN_PROGRESS:
            break
        time.sleep(0.1)
    print(result.status)  # deployed
```

## What it does not do

The package never talks to a Kubernetes API server itself. It has no watchers
or informers. `CRDWatcher` and `LogSetter` react only to the events and
configurations you pass to them. Secrets and objects are read and written only
through the client objects you supply. There is no command-line program.