"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from nodepressure.kube import KubeAPIError
from nodepressure.logger import get_logger, reset_logger
from nodepressure.models import OwnerKind, OwnerReference, PodDescriptor, QoSClass

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep the global logger off the console and out of ./logs."""
    reset_logger()
    get_logger(enable_file=False, enable_console=False)
    yield
    reset_logger()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_pod():
    """Factory for PodDescriptor with sensible, evictable defaults."""
    def _make(
        name: str = "web-1",
        namespace: str = "default",
        qos: Optional[QoSClass] = QoSClass.BEST_EFFORT,
        age: Optional[timedelta] = timedelta(days=10),
        owners=(OwnerKind.REPLICA_SET,),
        priority_class_name: str = "",
        annotations: Optional[Dict[str, str]] = None,
    ) -> PodDescriptor:
        return PodDescriptor(
            namespace=namespace,
            name=name,
            qos_class=qos,
            start_time=NOW - age if age is not None else None,
            owner_references=tuple(OwnerReference(kind=k, name=f"{name}-owner") for k in owners),
            priority_class_name=priority_class_name,
            annotations=annotations or {},
        )
    return _make


@pytest.fixture
def pod_json():
    """Factory for pod objects in API (JSON) shape."""
    def _make(
        name: str = "web-1",
        namespace: str = "default",
        qos: Optional[str] = "BestEffort",
        start_time: Optional[str] = "2024-05-22T12:00:00Z",
        owner_kinds=("ReplicaSet",),
        priority_class_name: Optional[str] = None,
        annotations: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "ownerReferences": [
                {"apiVersion": "apps/v1", "kind": k, "name": f"{name}-owner", "controller": True}
                for k in owner_kinds
            ],
        }
        if annotations is not None:
            metadata["annotations"] = annotations
        spec: Dict[str, Any] = {"nodeName": "node-1"}
        if priority_class_name is not None:
            spec["priorityClassName"] = priority_class_name
        status: Dict[str, Any] = {"phase": "Running"}
        if qos is not None:
            status["qosClass"] = qos
        if start_time is not None:
            status["startTime"] = start_time
        return {"apiVersion": "v1", "kind": "Pod", "metadata": metadata, "spec": spec, "status": status}
    return _make


def write_psi(proc_root: Path, some_avg300: float, resource: str = "cpu", full: bool = True) -> None:
    path = proc_root / "pressure" / resource
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"some avg10=1.50 avg60=2.25 avg300={some_avg300:.2f} total=123456"]
    if full:
        lines.append("full avg10=0.00 avg60=0.00 avg300=0.00 total=0")
    path.write_text("\n".join(lines) + "\n")


@pytest.fixture
def proc_root(tmp_path) -> Path:
    """A fake procfs with low CPU pressure."""
    root = tmp_path / "proc"
    write_psi(root, 0.0)
    return root


class FakeKubeClient:
    """In-memory stand-in for KubeClient."""

    def __init__(self, pods: Optional[List[PodDescriptor]] = None):
        self.pods = list(pods or [])
        self.evicted: List[tuple] = []
        self.taints: List[Dict[str, Any]] = []
        self.evict_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.node_error: Optional[Exception] = None
        self.taint_patches = 0

    def list_node_pods(self, node_name: str) -> List[PodDescriptor]:
        if self.list_error:
            raise self.list_error
        return list(self.pods)

    def evict_pod(self, namespace: str, name: str) -> None:
        if self.evict_error:
            raise self.evict_error
        self.evicted.append((namespace, name))

    def get_node(self, name: str) -> Dict[str, Any]:
        if self.node_error:
            raise self.node_error
        return {"metadata": {"name": name}, "spec": {"taints": [dict(t) for t in self.taints]}}

    def set_node_taints(self, name: str, taints: List[Dict[str, Any]]) -> Dict[str, Any]:
        self.taint_patches += 1
        self.taints = [dict(t) for t in taints]
        return self.get_node(name)


@pytest.fixture
def fake_client() -> FakeKubeClient:
    return FakeKubeClient()


@pytest.fixture
def api_error() -> KubeAPIError:
    return KubeAPIError(403, "forbidden")
