"""Minimal Kubernetes API client: pod snapshots, evictions and node taints."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .logger import get_logger
from .models import PodDescriptor
from .normalize import pods_from_list
from .retry import exponential_backoff, should_retry_http_status

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
MERGE_PATCH = "application/merge-patch+json"


class KubeConfigError(Exception):
    """Raised when no API server or credentials can be found."""
    pass


class KubeAPIError(Exception):
    """Raised on a non-success response from the API server."""

    def __init__(self, status: int, message: str):
        super().__init__(f"API server returned {status}: {message}")
        self.status = status
        self.message = message


class EvictionBlockedError(KubeAPIError):
    """The eviction was refused, usually by a PodDisruptionBudget (429)."""
    pass


class PodNotFoundError(KubeAPIError):
    """The pod no longer exists (404)."""
    pass


class _RetryableStatus(Exception):
    def __init__(self, response: requests.Response):
        super().__init__(f"retryable status {response.status_code}")
        self.response = response


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip() or resp.reason or ""
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return resp.text.strip()


class KubeClient:
    """
    Talks to the API server over HTTPS with a bearer token.

    Transport errors and 5xx responses are retried with exponential
    backoff; any other non-2xx response raises KubeAPIError.
    """

    def __init__(
        self,
        api_server: str,
        token: Optional[str] = None,
        ca_cert: Optional[str] = None,
        verify: bool = True,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        self.api_server = api_server.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Accept"] = "application/json"
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.session.verify = ca_cert if (verify and ca_cert) else verify

    @classmethod
    def from_settings(cls, settings, sa_dir: Path = SERVICE_ACCOUNT_DIR) -> "KubeClient":
        """
        Build a client from explicit settings, else from the pod's service account.

        Raises:
            KubeConfigError: If neither is available
        """
        if settings.api_server:
            return cls(
                settings.api_server,
                token=settings.token,
                ca_cert=settings.ca_cert,
                verify=not settings.insecure,
            )

        host = os.getenv("KUBERNETES_SERVICE_HOST")
        port = os.getenv("KUBERNETES_SERVICE_PORT", "443")
        token_file = sa_dir / "token"
        if not host or not token_file.exists():
            raise KubeConfigError(
                "No API server configured. Set NODEPRESSURE_API_SERVER or run in-cluster."
            )
        if ":" in host:
            host = f"[{host}]"
        ca_file = sa_dir / "ca.crt"
        return cls(
            f"https://{host}:{port}",
            token=token_file.read_text(encoding="utf-8").strip(),
            ca_cert=str(ca_file) if ca_file.exists() else None,
            verify=not settings.insecure,
        )

    @exponential_backoff(
        max_retries=3,
        base_delay=1.0,
        exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, _RetryableStatus),
    )
    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        get_logger().record_api_call()
        resp = self.session.request(method, self.api_server + path, timeout=self.timeout, **kwargs)
        # 429 on a read is throttling; on an eviction it is a disruption budget refusal
        if should_retry_http_status(resp.status_code) or (resp.status_code == 429 and method == "GET"):
            raise _RetryableStatus(resp)
        return resp

    def request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Raises:
            KubeAPIError: On a non-2xx status
            RetryError: When retries are exhausted
        """
        resp = self._send(method, path, **kwargs)
        if not 200 <= resp.status_code < 300:
            raise KubeAPIError(resp.status_code, _error_message(resp))
        if not resp.content:
            return {}
        return resp.json()

    def list_node_pods(self, node_name: str) -> List[PodDescriptor]:
        """Snapshot of the running pods scheduled on node_name."""
        data = self.request(
            "GET",
            "/api/v1/pods",
            params={"fieldSelector": f"spec.nodeName={node_name},status.phase=Running"},
        )
        return pods_from_list(data)

    def evict_pod(self, namespace: str, name: str) -> None:
        """
        Ask the API server to evict a pod, honouring disruption budgets.

        Raises:
            EvictionBlockedError: On 429, usually a PodDisruptionBudget
            PodNotFoundError: On 404
            KubeAPIError: On any other non-2xx status
        """
        body = {
            "apiVersion": "policy/v1",
            "kind": "Eviction",
            "metadata": {"name": name, "namespace": namespace},
        }
        try:
            self.request("POST", f"/api/v1/namespaces/{namespace}/pods/{name}/eviction", json=body)
        except KubeAPIError as e:
            if e.status == 429:
                raise EvictionBlockedError(429, e.message) from e
            if e.status == 404:
                raise PodNotFoundError(404, e.message) from e
            raise

    def get_node(self, name: str) -> Dict[str, Any]:
        return self.request("GET", f"/api/v1/nodes/{name}")

    def set_node_taints(self, name: str, taints: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Replace the node's taint list."""
        return self.request(
            "PATCH",
            f"/api/v1/nodes/{name}",
            json={"spec": {"taints": taints}},
            headers={"Content-Type": MERGE_PATCH},
        )
