"""
Node tainting while pressure is high.

A PreferNoSchedule taint steers the scheduler away from the node without
affecting pods already running there. It is added on a high-pressure
transition and removed on the way back down.
"""

from typing import Any, Dict, List

from .kube import KubeClient
from .logger import get_logger

DEFAULT_TAINT_KEY = "nodepressure.io/pressure-high"
DEFAULT_TAINT_EFFECT = "PreferNoSchedule"


class NodeTainter:
    def __init__(
        self,
        client: KubeClient,
        node_name: str,
        key: str = DEFAULT_TAINT_KEY,
        effect: str = DEFAULT_TAINT_EFFECT,
    ):
        self.client = client
        self.node_name = node_name
        self.key = key
        self.effect = effect

    def _current_taints(self) -> List[Dict[str, Any]]:
        node = self.client.get_node(self.node_name)
        return list((node.get("spec") or {}).get("taints") or [])

    def _is_ours(self, taint: Dict[str, Any]) -> bool:
        return taint.get("key") == self.key and taint.get("effect") == self.effect

    def taint(self) -> bool:
        """Add the taint if missing. Returns True if the node was changed."""
        taints = self._current_taints()
        if any(self._is_ours(t) for t in taints):
            return False
        taints.append({"key": self.key, "value": "true", "effect": self.effect})
        self.client.set_node_taints(self.node_name, taints)
        get_logger().info("node tainted", node=self.node_name, key=self.key, effect=self.effect)
        return True

    def untaint(self) -> bool:
        """Remove the taint if present. Returns True if the node was changed."""
        taints = self._current_taints()
        remaining = [t for t in taints if not self._is_ours(t)]
        if len(remaining) == len(taints):
            return False
        self.client.set_node_taints(self.node_name, remaining)
        get_logger().info("node taint removed", node=self.node_name, key=self.key)
        return True
