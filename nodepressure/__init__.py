"""Pick the safest pod to evict from a node under resource pressure."""

__version__ = "0.1.0"
