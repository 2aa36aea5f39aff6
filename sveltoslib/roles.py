"""Secrets that hold the kubeconfig granted to a service account in a cluster.

A RoleRequest grants an admin permissions in managed clusters. For each
cluster and service account, the resulting kubeconfig is kept in a Secret in
the management cluster. Secrets are unstructured dicts; their ``data`` values
are raw bytes.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from typing import Any, Protocol

from sveltoslib.policy import add_owner_reference, is_owner_reference, remove_owner_reference

ROLE_REQUEST_LABEL = "projectsveltos.io/role-request"
CLUSTER_NAME_LABEL = "projectsveltos.io/role-cluster"
SERVICE_ACCOUNT_NAME_LABEL = "projectsveltos.io/role-service-account-name"
SERVICE_ACCOUNT_NAMESPACE_LABEL = "projectsveltos.io/role-service-account-namespace"
KUBECONFIG_KEY = "kubeconfig"


class SecretClient(Protocol):
    """Access to Secrets in the management cluster."""

    def list(
        self, namespace: str | None, labels: Mapping[str, str]
    ) -> list[dict[str, Any]]:
        """Return Secrets in namespace (all namespaces if None) carrying all labels."""

    def create(self, obj: dict[str, Any]) -> None:
        """Create obj."""

    def update(self, obj: dict[str, Any]) -> None:
        """Replace the stored object with obj."""

    def delete(self, obj: dict[str, Any]) -> None:
        """Delete obj."""


def _selector(
    cluster_name: str, service_account_namespace: str, service_account_name: str
) -> dict[str, str]:
    return {
        CLUSTER_NAME_LABEL: cluster_name,
        SERVICE_ACCOUNT_NAME_LABEL: service_account_name,
        SERVICE_ACCOUNT_NAMESPACE_LABEL: service_account_namespace,
    }


def _list_matching(
    client: SecretClient,
    cluster_namespace: str,
    cluster_name: str,
    service_account_namespace: str,
    service_account_name: str,
) -> list[dict[str, Any]]:
    return list(
        client.list(
            cluster_namespace,
            _selector(cluster_name, service_account_namespace, service_account_name),
        )
    )


def _too_many(
    service_account_name: str, cluster_namespace: str, cluster_name: str
) -> ValueError:
    return ValueError(
        f"found more than one existing secret for {service_account_name} "
        f"in cluster {cluster_namespace}/{cluster_name}"
    )


def get_secret(
    client: SecretClient,
    cluster_namespace: str,
    cluster_name: str,
    service_account_namespace: str,
    service_account_name: str,
    cluster_type: Any,
) -> dict[str, Any] | None:
    """Return the Secret holding the kubeconfig, or None if it does not exist yet."""
    items = _list_matching(
        client, cluster_namespace, cluster_name, service_account_namespace, service_account_name
    )
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    raise _too_many(service_account_name, cluster_namespace, cluster_name)


def create_secret(
    client: SecretClient,
    cluster_namespace: str,
    cluster_name: str,
    service_account_namespace: str,
    service_account_name: str,
    cluster_type: Any,
    kubeconfig: bytes,
    owner: Mapping[str, Any],
) -> dict[str, Any]:
    """Return the Secret holding the kubeconfig, creating or updating it as needed.

    An existing Secret is updated when its kubeconfig differs or owner is not
    yet one of its owner references.
    """
    items = _list_matching(
        client, cluster_namespace, cluster_name, service_account_namespace, service_account_name
    )
    if not items:
        return _create(
            client,
            cluster_namespace,
            cluster_name,
            service_account_namespace,
            service_account_name,
            kubeconfig,
            owner,
        )
    if len(items) == 1:
        existing = items[0]
        if _should_update(existing, kubeconfig, owner):
            return _update(client, existing, kubeconfig, owner)
        return existing
    raise _too_many(service_account_name, cluster_namespace, cluster_name)


def delete_secret(
    client: SecretClient,
    cluster_namespace: str,
    cluster_name: str,
    service_account_namespace: str,
    service_account_name: str,
    cluster_type: Any,
    owner: Mapping[str, Any],
) -> None:
    """Drop owner from the matching Secrets; delete those left with no owner.

    A failure to list the Secrets is not reported.
    """
    try:
        items = _list_matching(
            client, cluster_namespace, cluster_name, service_account_namespace, service_account_name
        )
    except Exception:  # listing failures are deliberately ignored
        return

    for item in items:
        remove_owner_reference(item, owner)
        if (item.get("metadata") or {}).get("ownerReferences"):
            # Other requests still rely on this object.
            client.update(item)
            continue
        client.delete(item)


def list_secret_for_owner(
    client: SecretClient, owner: Mapping[str, Any]
) -> list[dict[str, Any]]:
    """Return all RoleRequest Secrets listing owner as an owner reference."""
    return [
        item
        for item in client.list(None, {ROLE_REQUEST_LABEL: "ok"})
        if is_owner_reference(item, owner)
    ]


def list_secrets(client: SecretClient) -> list[dict[str, Any]]:
    """Return all Secrets created for RoleRequests."""
    return list(client.list(None, {ROLE_REQUEST_LABEL: "ok"}))


def get_kubeconfig(
    client: SecretClient,
    cluster_namespace: str,
    cluster_name: str,
    service_account_namespace: str,
    service_account_name: str,
    cluster_type: Any,
) -> bytes | None:
    """Return the stored kubeconfig for the service account, or None if absent."""
    found = get_secret(
        client,
        cluster_namespace,
        cluster_name,
        service_account_namespace,
        service_account_name,
        cluster_type,
    )
    if found is None:
        return None
    data = found.get("data")
    if data is None:
        return None
    return data.get(KUBECONFIG_KEY)


def get_service_account_name_in_managed_cluster(namespace: str, name: str) -> str:
    """Return the managed-cluster name of a management-cluster service account."""
    return f"{namespace}--{name}"


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _create(
    client: SecretClient,
    namespace: str,
    cluster_name: str,
    service_account_namespace: str,
    service_account_name: str,
    kubeconfig: bytes,
    owner: Mapping[str, Any],
) -> dict[str, Any]:
    name = "sveltos-" + _sha256_hex(cluster_name + service_account_namespace + service_account_name)
    labels = _selector(cluster_name, service_account_namespace, service_account_name)
    labels[ROLE_REQUEST_LABEL] = "ok"
    manifest: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"namespace": namespace, "name": name, "labels": labels},
        "data": {KUBECONFIG_KEY: kubeconfig},
    }
    add_owner_reference(manifest, owner)
    client.create(manifest)
    return manifest


def _should_update(existing: Mapping[str, Any], kubeconfig: bytes, owner: Mapping[str, Any]) -> bool:
    if not is_owner_reference(existing, owner):
        return True
    data = existing.get("data")
    if data is None:
        return True
    return data.get(KUBECONFIG_KEY) != kubeconfig


def _update(
    client: SecretClient, existing: dict[str, Any], kubeconfig: bytes, owner: Mapping[str, Any]
) -> dict[str, Any]:
    add_owner_reference(existing, owner)
    existing["data"] = {KUBECONFIG_KEY: kubeconfig}
    client.update(existing)
    return existing