"""Helpers to decode Kubernetes resources and build kubeconfigs."""

from __future__ import annotations

import base64
import json
import re
from typing import Any

import yaml

_SERVER_WITH_PORT = re.compile(r"https://[0-9a-zA-Z][0-9a-zA-Z.-]+[0-9a-zA-Z]:\d+", re.ASCII)
_SERVER_WITHOUT_PORT = re.compile(r"https://[0-9a-zA-Z][0-9a-zA-Z.-]+[0-9a-zA-Z]", re.ASCII)


def _as_text(data: bytes | bytearray | str) -> str:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    return data


def _as_bytes(data: bytes | bytearray | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def get_unstructured(data: bytes | str) -> dict[str, Any]:
    """Decode a YAML or JSON Kubernetes resource into its unstructured form.

    Raises ValueError if the document cannot be decoded or has no kind.
    """
    text = _as_text(data)
    preview = text[:50]
    try:
        obj = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to decode k8s resource {preview}. Err: {exc}") from exc
    if not isinstance(obj, dict):
        raise ValueError(
            f"failed to decode k8s resource {preview}. Err: document is not an object"
        )
    if not obj.get("kind"):
        raise ValueError(
            f"failed to decode k8s resource {preview}. Err: Object 'Kind' is missing"
        )
    return obj


def get_kubeconfig_with_user_token(
    id_token: bytes | str,
    ca_data: bytes | str | None,
    user_id: str,
    server: str,
) -> bytes:
    """Return a JSON kubeconfig granting user_id access to server with id_token.

    server must carry the https scheme and a host, optionally a port.
    """
    if not user_id or not id_token:
        raise ValueError("userID and IDToken cannot be empty")
    return _user_or_sa_kubeconfig(id_token, ca_data, user_id, server)


def _user_or_sa_kubeconfig(
    token: bytes | str,
    ca_data: bytes | str | None,
    user: str,
    server: str,
) -> bytes:
    if not server:
        raise ValueError("server cannot be empty")

    if not (_SERVER_WITH_PORT.fullmatch(server) or _SERVER_WITHOUT_PORT.fullmatch(server)):
        raise ValueError(
            "server value is invalid. valid values e.g. https://127.0.0.1:123, "
            "https://hostname:321, https://127.0.0.1"
        )

    if ca_data is None:
        raise ValueError("empty CA data")

    cluster: dict[str, Any] = {"server": server}
    ca_bytes = _as_bytes(ca_data)
    if ca_bytes:
        cluster["certificate-authority-data"] = base64.b64encode(ca_bytes).decode("ascii")

    user_info: dict[str, Any] = {}
    token_text = _as_text(token)
    if token_text:
        user_info["token"] = token_text

    config = {
        "kind": "Config",
        "apiVersion": "v1",
        "preferences": {},
        "clusters": [{"name": user, "cluster": cluster}],
        "users": [{"name": user, "user": user_info}],
        "contexts": [{"name": user, "context": {"cluster": user, "user": user}}],
        "current-context": user,
    }
    return _compact_json(config)


def _compact_json(value: Any) -> bytes:
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    text = (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )
    return text.encode("utf-8")