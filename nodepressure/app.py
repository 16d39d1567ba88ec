import argparse
import json
import signal
import threading
from pathlib import Path
from typing import List

from .env import load_env

from . import __version__
from .cleanup import cleanup_eviction_history
from .config import Settings, parse_duration
from .controller import PressureController
from .evicter import Evicter
from .kube import KubeClient, KubeConfigError
from .logger import get_logger
from .models import PodDescriptor
from .normalize import parse_timestamp, pod_from_dict, pod_items
from .schema import validate_pod
from .selection import select_candidate_for_eviction
from .storage import list_evictions
from .tainter import NodeTainter
from .watcher import PressureUnavailableError, PressureWatcher


def _load_json(path_arg: str):
    input_path = Path(path_arg)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise SystemExit(f"Invalid JSON in {input_path}: {e}")


def _items(data) -> list:
    try:
        return pod_items(data)
    except ValueError as e:
        raise SystemExit(str(e))


def _duration(value: str):
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def load_pods(data) -> List[PodDescriptor]:
    """Validate and convert a snapshot, skipping (and reporting) invalid pods."""
    pods = []
    for i, item in enumerate(_items(data)):
        errors = validate_pod(item)
        if errors:
            name = ((item.get("metadata") or {}).get("name") if isinstance(item, dict) else None) or f"#{i}"
            print(f"[skip] pod {name}: {'; '.join(errors)}")
            continue
        pods.append(pod_from_dict(item))
    return pods


def _settings(args: argparse.Namespace) -> Settings:
    try:
        settings = Settings.from_env()
    except ValueError as e:
        raise SystemExit(f"Invalid configuration: {e}")
    return settings.with_overrides(
        node_name=getattr(args, "node", None),
        min_pod_age=getattr(args, "min_pod_age", None),
        db_path=Path(args.db) if getattr(args, "db", None) else None,
        pressure_threshold=getattr(args, "threshold", None),
        poll_interval=getattr(args, "interval", None),
        pressure_resource=getattr(args, "resource", None),
        pressure_window=getattr(args, "window", None),
        eviction_backoff=getattr(args, "backoff", None),
        dry_run=True if getattr(args, "dry_run", False) else None,
        taint_enabled=False if getattr(args, "no_taint", False) else None,
    )


def cmd_select(args: argparse.Namespace) -> None:
    settings = _settings(args)
    pods = load_pods(_load_json(args.input))
    if not pods:
        print("No pods in snapshot.")
        return

    try:
        now = parse_timestamp(args.now) if args.now else None
    except ValueError:
        raise SystemExit(f"Invalid --now timestamp: {args.now}")

    ranked = []
    selected = select_candidate_for_eviction(
        pods, settings.min_pod_age, now=now, sink=lambda c, rank: ranked.append(c)
    )
    print(f"Ranked {len(ranked)} candidates (min pod age {settings.min_pod_age}):\n")
    for rank, c in enumerate(ranked, start=1):
        print(f"{rank:>3}. {c.pod.key}  score={c.score}")
        for reason in c.reasons:
            print(f"       {reason}")

    print()
    if selected is None:
        print("No eligible candidate.")
        return
    print(f"Selected: {selected.pod.key} (score of {selected.score})")


def cmd_validate(args: argparse.Namespace) -> None:
    items = _items(_load_json(args.input))
    invalid = 0
    for i, item in enumerate(items):
        errors = validate_pod(item)
        if errors:
            invalid += 1
            print(f"Pod #{i} invalid:")
            for e in errors:
                print(f" - {e}")
    if invalid:
        raise SystemExit(2)
    print(f"Valid ({len(items)} pods)")


def cmd_sample(args: argparse.Namespace) -> None:
    settings = _settings(args)
    try:
        watcher = PressureWatcher(
            threshold=settings.pressure_threshold,
            resource=settings.pressure_resource,
            window=settings.pressure_window,
            proc_root=settings.proc_root,
        )
    except (PressureUnavailableError, ValueError) as e:
        raise SystemExit(str(e))
    stats = watcher.read_stats()
    print(f"{watcher.resource} pressure ({watcher.path}):")
    for kind, line in (("some", stats.some), ("full", stats.full)):
        if line is None:
            continue
        print(f"  {kind}: avg10={line.avg10:.2f} avg60={line.avg60:.2f} avg300={line.avg300:.2f} total={line.total}")
    value = getattr(stats.some, watcher.window)
    state = "HIGH" if value > watcher.threshold else "ok"
    print(f"  {watcher.window}={value:.2f} threshold={watcher.threshold:.2f} -> {state}")


def cmd_watch(args: argparse.Namespace) -> None:
    settings = _settings(args)
    if not settings.node_name:
        raise SystemExit("Node name not set. Set NODEPRESSURE_NODE_NAME or pass --node.")

    get_logger(level=settings.log_level, log_dir=settings.log_dir)
    try:
        watcher = PressureWatcher(
            threshold=settings.pressure_threshold,
            poll_interval=settings.poll_interval,
            resource=settings.pressure_resource,
            window=settings.pressure_window,
            proc_root=settings.proc_root,
        )
    except (PressureUnavailableError, ValueError) as e:
        raise SystemExit(f"Cannot watch pressure on this host: {e}")
    try:
        client = KubeClient.from_settings(settings)
    except KubeConfigError as e:
        raise SystemExit(str(e))

    evicter = Evicter(
        client,
        settings.node_name,
        settings.db_path,
        backoff=settings.eviction_backoff,
        dry_run=settings.dry_run,
    )
    tainter = NodeTainter(client, settings.node_name) if settings.taint_enabled else None
    controller = PressureController(settings, watcher, client, evicter, tainter)

    stop = threading.Event()

    def _stop(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    controller.run(stop)


def cmd_history(args: argparse.Namespace) -> None:
    settings = _settings(args)
    # explicit --node only, not the NODE_NAME fallback
    records = list_evictions(settings.db_path, node_name=args.node, limit=args.limit)
    if not records:
        print("No evictions recorded.")
        return
    print(f"Found {len(records)} evictions in {settings.db_path}:\n")
    for r in records:
        print(f"{r.created_at:%Y-%m-%d %H:%M:%S}  {r.node_name}  {r.namespace}/{r.pod_name}")
        print(f"  Status: {r.status}")
        print(f"  Score: {r.score}")
        if r.message:
            print(f"  Message: {r.message}")
        print()


def cmd_cleanup(args: argparse.Namespace) -> None:
    settings = _settings(args)
    before, after = cleanup_eviction_history(settings.db_path, days=args.days)
    print(f"Removed {before - after} entries, {after} remaining.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodepressure",
        description="Evict the safest pod from a node under resource pressure",
    )
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    sel = subparsers.add_parser("select", help="Rank a pod snapshot and show which pod would be evicted")
    sel.add_argument("--input", required=True, help="Path to a PodList JSON (e.g. kubectl get pods -o json)")
    sel.add_argument("--min-pod-age", type=_duration, help="Minimum pod age, e.g. 30s, 5m (default 5m)")
    sel.add_argument("--now", help="Reference time as RFC 3339 (default: now)")
    sel.set_defaults(func=cmd_select)

    val = subparsers.add_parser("validate", help="Validate a pod snapshot JSON")
    val.add_argument("--input", required=True, help="Path to a PodList JSON")
    val.set_defaults(func=cmd_validate)

    smp = subparsers.add_parser("sample", help="Print the current pressure stall information")
    smp.add_argument("--resource", choices=["cpu", "memory", "io"], help="PSI resource (default cpu)")
    smp.add_argument("--window", choices=["avg10", "avg60", "avg300"], help="Averaging window (default avg300)")
    smp.add_argument("--threshold", type=float, help="Pressure threshold 0-100 (default 25)")
    smp.set_defaults(func=cmd_sample)

    wat = subparsers.add_parser("watch", help="Watch node pressure and evict pods while it stays high")
    wat.add_argument("--node", help="Node name (or set NODEPRESSURE_NODE_NAME)")
    wat.add_argument("--threshold", type=float, help="Pressure threshold 0-100 (default 25)")
    wat.add_argument("--interval", type=_duration, help="Poll interval (default 15s)")
    wat.add_argument("--resource", choices=["cpu", "memory", "io"], help="PSI resource (default cpu)")
    wat.add_argument("--window", choices=["avg10", "avg60", "avg300"], help="Averaging window (default avg300)")
    wat.add_argument("--min-pod-age", type=_duration, help="Minimum pod age (default 5m)")
    wat.add_argument("--backoff", type=_duration, help="Minimum time between evictions (default 10m)")
    wat.add_argument("--dry-run", action="store_true", help="Select and record, but do not evict")
    wat.add_argument("--no-taint", action="store_true", help="Do not taint the node while pressure is high")
    wat.add_argument("--db", help="Path to eviction ledger (default: data/evictions.db)")
    wat.set_defaults(func=cmd_watch)

    his = subparsers.add_parser("history", help="List recorded evictions")
    his.add_argument("--node", help="Only show evictions from this node")
    his.add_argument("--limit", type=int, default=50, help="Maximum entries (default 50)")
    his.add_argument("--db", help="Path to eviction ledger (default: data/evictions.db)")
    his.set_defaults(func=cmd_history)

    cln = subparsers.add_parser("cleanup", help="Delete old eviction ledger entries")
    cln.add_argument("--days", type=int, default=30, help="Keep entries newer than this (default 30)")
    cln.add_argument("--db", help="Path to eviction ledger (default: data/evictions.db)")
    cln.set_defaults(func=cmd_cleanup)

    return parser


def main(argv=None):
    # Load .env if present (NODEPRESSURE_NODE_NAME, NODEPRESSURE_API_SERVER, etc.)
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
