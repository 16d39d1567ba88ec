"""
Tests for the pressure control loop.
"""

import threading
from datetime import timedelta

import pytest

from conftest import FakeKubeClient, write_psi
from nodepressure.config import Settings
from nodepressure.controller import PressureController
from nodepressure.evicter import EVICTED, Evicter
from nodepressure.logger import get_logger
from nodepressure.models import OwnerKind, QoSClass
from nodepressure.retry import RetryError
from nodepressure.storage import list_evictions
from nodepressure.tainter import DEFAULT_TAINT_KEY, NodeTainter
from nodepressure.watcher import PressureWatcher


@pytest.fixture
def pods(make_pod):
    return [
        make_pod(name="batch", qos=QoSClass.GUARANTEED, owners=(OwnerKind.JOB,)),
        make_pod(name="web"),
        make_pod(name="db", owners=(OwnerKind.STATEFUL_SET,)),
    ]


@pytest.fixture
def setup(tmp_path, proc_root, pods):
    """Controller wired to a fake procfs, a fake API server and a temp ledger."""
    settings = Settings(node_name="node-1", db_path=tmp_path / "evictions.db", proc_root=proc_root)
    client = FakeKubeClient(pods)
    watcher = PressureWatcher(threshold=25, proc_root=proc_root)
    evicter = Evicter(client, "node-1", settings.db_path, backoff=timedelta(minutes=10))
    controller = PressureController(settings, watcher, client, evicter, NodeTainter(client, "node-1"))
    return controller, client, settings


class TestTick:
    """Test single poll cycles."""

    def test_low_pressure_does_nothing(self, setup, now):
        """Below the threshold nothing is listed or evicted."""
        controller, client, _ = setup
        assert controller.tick(now) is None
        assert client.evicted == []
        assert client.taints == []

    def test_high_pressure_taints_and_evicts(self, setup, proc_root, now):
        """High pressure taints the node and evicts the best candidate."""
        controller, client, settings = setup
        write_psi(proc_root, 80.0)

        result = controller.tick(now)

        assert result.status == EVICTED
        assert result.candidate.pod.name == "web"
        assert client.evicted == [("default", "web")]
        assert [t["key"] for t in client.taints] == [DEFAULT_TAINT_KEY]
        assert list_evictions(settings.db_path)[0].pod_name == "web"

    def test_backoff_between_evictions(self, setup, proc_root, now):
        """While pressure stays high, evictions are spaced by the backoff."""
        controller, client, _ = setup
        write_psi(proc_root, 80.0)

        controller.tick(now)
        assert controller.tick(now + timedelta(minutes=1)) is None
        result = controller.tick(now + timedelta(minutes=11))

        assert result.status == EVICTED
        assert len(client.evicted) == 2
        assert client.taint_patches == 1

    def test_recovery_untaints(self, setup, proc_root, now):
        """Dropping below the threshold removes the taint."""
        controller, client, _ = setup
        write_psi(proc_root, 80.0)
        controller.tick(now)

        write_psi(proc_root, 5.0)
        assert controller.tick(now + timedelta(minutes=20)) is None
        assert client.taints == []
        assert len(client.evicted) == 1

    def test_all_candidates_vetoed(self, setup, proc_root, make_pod, now):
        """With nothing safe to evict the tick reports no result."""
        controller, client, _ = setup
        client.pods = [make_pod(name="dns", namespace="kube-system")]
        write_psi(proc_root, 80.0)

        assert controller.tick(now) is None
        assert client.evicted == []
        metrics = get_logger().get_metrics()
        assert metrics["selections"] == 1
        assert metrics["selections_empty"] == 1

    def test_list_failure(self, setup, proc_root, now):
        """API errors while listing are logged and the loop carries on."""
        controller, client, _ = setup
        client.list_error = RetryError("Failed after 4 attempts: timeout")
        write_psi(proc_root, 80.0)

        assert controller.tick(now) is None
        assert get_logger().get_metrics()["errors_by_type"] == {"RetryError": 1}

    def test_taint_failure_does_not_block_eviction(self, setup, proc_root, api_error, now):
        """A failed taint update is logged; eviction still happens."""
        controller, client, _ = setup
        client.node_error = api_error
        write_psi(proc_root, 80.0)

        result = controller.tick(now)

        assert result.status == EVICTED
        assert get_logger().get_metrics()["errors_by_type"]["KubeAPIError"] == 1

    def test_without_tainter(self, tmp_path, proc_root, pods, now):
        """Tainting is optional."""
        client = FakeKubeClient(pods)
        settings = Settings(node_name="node-1")
        controller = PressureController(
            settings,
            PressureWatcher(proc_root=proc_root),
            client,
            Evicter(client, "node-1", tmp_path / "e.db"),
        )
        write_psi(proc_root, 80.0)

        assert controller.tick(now).status == EVICTED
        assert client.taint_patches == 0

    def test_pressure_read_failure(self, setup, proc_root, now):
        """A vanished PSI file is logged and the tick reports nothing."""
        controller, client, _ = setup
        (proc_root / "pressure" / "cpu").unlink()

        assert controller.tick(now) is None
        assert client.evicted == []
        assert get_logger().get_metrics()["errors_by_type"] == {"PressureUnavailableError": 1}

    def test_garbled_pressure_file(self, setup, proc_root, now):
        """Unparseable PSI data is treated the same as a missing file."""
        controller, _, _ = setup
        (proc_root / "pressure" / "cpu").write_text("garbage\n")

        assert controller.tick(now) is None
        assert get_logger().get_metrics()["errors_by_type"] == {"PressureUnavailableError": 1}

    def test_requires_node_name(self, proc_root, fake_client, tmp_path):
        """The controller needs to know which node it guards."""
        with pytest.raises(ValueError):
            PressureController(
                Settings(),
                PressureWatcher(proc_root=proc_root),
                fake_client,
                Evicter(fake_client, "", tmp_path / "e.db"),
            )


class _StopAfterWaits(threading.Event):
    def __init__(self, waits=1):
        super().__init__()
        self.waits = waits
        self.waited = []

    def wait(self, timeout=None):
        self.waited.append(timeout)
        if len(self.waited) >= self.waits:
            self.set()
        return self.is_set()


class TestRun:
    """Test the polling loop."""

    def test_run_until_stopped(self, setup):
        """run() ticks, waits one poll interval and exits once stopped."""
        controller, client, _ = setup
        stop = _StopAfterWaits()

        controller.run(stop)

        assert stop.waited == [15.0]
        assert get_logger().get_metrics()["pressure_samples"] == 1
        assert client.evicted == []

    def test_run_already_stopped(self, setup):
        """A pre-set stop event means no ticks."""
        controller, _, _ = setup
        stop = threading.Event()
        stop.set()

        controller.run(stop)

        assert get_logger().get_metrics()["pressure_samples"] == 0

    def test_run_survives_pressure_read_failures(self, setup, proc_root):
        """A missing PSI file does not end the loop."""
        controller, _, _ = setup
        (proc_root / "pressure" / "cpu").unlink()
        stop = _StopAfterWaits(waits=2)

        controller.run(stop)

        assert stop.waited == [15.0, 15.0]
        assert get_logger().get_metrics()["errors_by_type"] == {"PressureUnavailableError": 2}

    def test_run_survives_unexpected_errors(self, setup, monkeypatch):
        """Any exception escaping a tick is logged and the next tick still runs."""
        controller, _, _ = setup
        calls = []

        def failing_tick(now=None):
            calls.append(now)
            raise RuntimeError("boom")

        monkeypatch.setattr(controller, "tick", failing_tick)
        stop = _StopAfterWaits(waits=3)

        controller.run(stop)

        assert len(calls) == 3
        assert get_logger().get_metrics()["errors_by_type"] == {"RuntimeError": 3}
