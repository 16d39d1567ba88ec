from typing import Any, Dict, List

from .models import QoSClass
from .normalize import parse_timestamp

REQUIRED_METADATA_FIELDS = ["name"]
OPTIONAL_METADATA_STR_FIELDS = ["namespace", "uid"]
OPTIONAL_SPEC_STR_FIELDS = ["priorityClassName", "nodeName"]
KNOWN_QOS_CLASSES = {q.value for q in QoSClass}


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _section(data: Dict[str, Any], name: str, errors: List[str]) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        errors.append(f"Field '{name}' must be an object if provided")
        return {}
    return value


def validate_pod(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    Only the fields eviction scoring reads are checked. Missing optional
    fields are fine: they are scored conservatively, not rejected.
    """
    errors: List[str] = []
    if not isinstance(data, dict):
        return ["Pod must be an object"]

    metadata = _section(data, "metadata", errors)
    spec = _section(data, "spec", errors)
    status = _section(data, "status", errors)

    for f in REQUIRED_METADATA_FIELDS:
        if f not in metadata:
            errors.append(f"Missing required field: metadata.{f}")
        elif not _is_non_empty_str(metadata[f]):
            errors.append(f"Field 'metadata.{f}' must be a non-empty string")

    for f in OPTIONAL_METADATA_STR_FIELDS:
        if f in metadata and not isinstance(metadata[f], str):
            errors.append(f"Field 'metadata.{f}' must be a string if provided")

    for f in OPTIONAL_SPEC_STR_FIELDS:
        if f in spec and not isinstance(spec[f], str):
            errors.append(f"Field 'spec.{f}' must be a string if provided")

    annotations = metadata.get("annotations")
    if annotations is not None:
        if not isinstance(annotations, dict):
            errors.append("Field 'metadata.annotations' must be an object if provided")
        elif not all(isinstance(k, str) and isinstance(v, str) for k, v in annotations.items()):
            errors.append("Field 'metadata.annotations' must map strings to strings")

    owners = metadata.get("ownerReferences")
    if owners is not None:
        if not isinstance(owners, list):
            errors.append("Field 'metadata.ownerReferences' must be a list if provided")
        else:
            for i, owner in enumerate(owners):
                if not isinstance(owner, dict) or not _is_non_empty_str(owner.get("kind")):
                    errors.append(f"Owner reference {i} must be an object with a non-empty 'kind'")

    qos = status.get("qosClass")
    if qos is not None and qos not in KNOWN_QOS_CLASSES:
        errors.append(f"Field 'status.qosClass' must be one of {sorted(KNOWN_QOS_CLASSES)}")

    start_time = status.get("startTime")
    if start_time is not None:
        if not isinstance(start_time, str):
            errors.append("Field 'status.startTime' must be a string if provided")
        else:
            try:
                parse_timestamp(start_time)
            except ValueError:
                errors.append("Field 'status.startTime' must be an RFC 3339 timestamp")

    return errors
