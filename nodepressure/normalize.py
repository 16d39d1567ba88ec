from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .logger import get_logger
from .models import OwnerKind, OwnerReference, PodDescriptor, QoSClass

QOS_BY_NAME = {q.value.lower(): q for q in QoSClass}


def normalize_text(s: str) -> str:
    return " ".join(s.strip().split())


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp as written by the API server.

    Returns None for a missing or empty value. Raises ValueError for
    anything that is not a timestamp. Naive results are taken as UTC.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected a timestamp string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def normalize_qos_class(value: Optional[str]) -> Optional[QoSClass]:
    if not value:
        return None
    return QOS_BY_NAME.get(normalize_text(value).lower().replace(" ", ""))


def normalize_owner(ref: Dict[str, Any]) -> OwnerReference:
    return OwnerReference(
        kind=OwnerKind.from_kind(ref.get("kind")),
        name=ref.get("name") or "",
        controller=bool(ref.get("controller", False)),
    )


def pod_from_dict(data: Dict[str, Any], strict: bool = True) -> PodDescriptor:
    """
    Build a PodDescriptor from a pod object in API (JSON) shape.

    With strict=False an unparseable startTime becomes None, which the age
    pass vetoes, instead of raising ValueError.
    """
    metadata = data.get("metadata") or {}
    spec = data.get("spec") or {}
    status = data.get("status") or {}

    try:
        start_time = parse_timestamp(status.get("startTime"))
    except ValueError as e:
        if strict:
            raise
        get_logger().warning(
            "unparseable pod startTime, treating as missing",
            pod=f"{metadata.get('namespace') or 'default'}/{metadata.get('name')}",
            error=str(e),
        )
        start_time = None

    return PodDescriptor(
        namespace=metadata.get("namespace") or "default",
        name=metadata.get("name") or "",
        qos_class=normalize_qos_class(status.get("qosClass")),
        start_time=start_time,
        owner_references=tuple(normalize_owner(o) for o in metadata.get("ownerReferences") or []),
        priority_class_name=spec.get("priorityClassName") or "",
        annotations=dict(metadata.get("annotations") or {}),
        node_name=spec.get("nodeName"),
        uid=metadata.get("uid"),
    )


def pod_items(data: Any) -> List[Dict[str, Any]]:
    """Accept a PodList object or a bare list of pods and return the pods."""
    if isinstance(data, dict):
        return list(data.get("items") or [])
    if isinstance(data, list):
        return list(data)
    raise ValueError("Expected a PodList object or a list of pods")


def pods_from_list(data: Any) -> List[PodDescriptor]:
    """Lenient conversion for API snapshots: one bad pod never drops the rest."""
    return [pod_from_dict(item, strict=False) for item in pod_items(data)]
