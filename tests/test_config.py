"""
Tests for settings and value parsing.
"""

import os
from datetime import timedelta
from pathlib import Path

import pytest

from nodepressure.config import Settings, parse_bool, parse_duration
from nodepressure.env import load_env


class TestParseDuration:
    """Test duration strings."""

    @pytest.mark.parametrize("text,expected", [
        ("90", timedelta(seconds=90)),
        ("2.5", timedelta(seconds=2.5)),
        ("30s", timedelta(seconds=30)),
        ("5m", timedelta(minutes=5)),
        ("1h", timedelta(hours=1)),
        ("2d", timedelta(days=2)),
        ("1h30m", timedelta(minutes=90)),
        (" 10M ", timedelta(minutes=10)),
    ])
    def test_valid(self, text, expected):
        """Bare seconds, unit suffixes and compounds are accepted."""
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "five minutes", "5x", "m5", "1h 30m"])
    def test_invalid(self, text):
        """Anything else is a ValueError."""
        with pytest.raises(ValueError):
            parse_duration(text)

    @pytest.mark.parametrize("text", ["inf", "-inf", "nan", "-5", "-1.5", "1e400", "99999999999d"])
    def test_out_of_range(self, text):
        """Negative, non-finite and overflowing values are ValueErrors too."""
        with pytest.raises(ValueError):
            parse_duration(text)


class TestParseBool:
    """Test boolean flags."""

    @pytest.mark.parametrize("text", ["1", "true", "Yes", "ON"])
    def test_true(self, text):
        assert parse_bool(text) is True

    @pytest.mark.parametrize("text", ["0", "false", "No", "off"])
    def test_false(self, text):
        assert parse_bool(text) is False

    def test_invalid(self):
        """Unknown words are rejected."""
        with pytest.raises(ValueError):
            parse_bool("maybe")


class TestSettingsFromEnv:
    """Test building settings from environment variables."""

    def test_defaults(self):
        """An empty environment gives the documented defaults."""
        s = Settings.from_env({})
        assert s.node_name is None
        assert s.pressure_threshold == 25.0
        assert s.poll_interval == timedelta(seconds=15)
        assert s.pressure_resource == "cpu"
        assert s.pressure_window == "avg300"
        assert s.min_pod_age == timedelta(minutes=5)
        assert s.eviction_backoff == timedelta(minutes=10)
        assert s.taint_enabled is True
        assert s.dry_run is False
        assert s.db_path == Path("data/evictions.db")

    def test_all_variables(self):
        """Every NODEPRESSURE_* variable is read."""
        s = Settings.from_env({
            "NODEPRESSURE_NODE_NAME": "node-7",
            "NODEPRESSURE_THRESHOLD": "40",
            "NODEPRESSURE_POLL_INTERVAL": "30s",
            "NODEPRESSURE_RESOURCE": "memory",
            "NODEPRESSURE_WINDOW": "avg60",
            "NODEPRESSURE_PROC_ROOT": "/host/proc",
            "NODEPRESSURE_MIN_POD_AGE": "10m",
            "NODEPRESSURE_EVICTION_BACKOFF": "1h",
            "NODEPRESSURE_TAINT": "false",
            "NODEPRESSURE_DRY_RUN": "yes",
            "NODEPRESSURE_DB": "/var/lib/np.db",
            "NODEPRESSURE_API_SERVER": "https://k8s:6443",
            "NODEPRESSURE_TOKEN": "secret",
            "NODEPRESSURE_CA_CERT": "/ca.crt",
            "NODEPRESSURE_INSECURE": "1",
            "NODEPRESSURE_LOG_LEVEL": "debug",
            "NODEPRESSURE_LOG_DIR": "/var/log/np",
        })
        assert s.node_name == "node-7"
        assert s.pressure_threshold == 40.0
        assert s.poll_interval == timedelta(seconds=30)
        assert s.pressure_resource == "memory"
        assert s.pressure_window == "avg60"
        assert s.proc_root == Path("/host/proc")
        assert s.min_pod_age == timedelta(minutes=10)
        assert s.eviction_backoff == timedelta(hours=1)
        assert s.taint_enabled is False
        assert s.dry_run is True
        assert s.db_path == Path("/var/lib/np.db")
        assert s.api_server == "https://k8s:6443"
        assert s.token == "secret"
        assert s.ca_cert == "/ca.crt"
        assert s.insecure is True
        assert s.log_level == "DEBUG"
        assert s.log_dir == Path("/var/log/np")

    def test_downward_api_node_name(self):
        """Plain NODE_NAME (as set from spec.nodeName) is a fallback."""
        assert Settings.from_env({"NODE_NAME": "node-3"}).node_name == "node-3"
        assert Settings.from_env({
            "NODE_NAME": "node-3",
            "NODEPRESSURE_NODE_NAME": "node-9",
        }).node_name == "node-9"

    def test_empty_values_are_ignored(self):
        """Empty variables keep the default."""
        assert Settings.from_env({"NODEPRESSURE_THRESHOLD": ""}).pressure_threshold == 25.0

    @pytest.mark.parametrize("name,value", [
        ("NODEPRESSURE_THRESHOLD", "high"),
        ("NODEPRESSURE_MIN_POD_AGE", "soon"),
        ("NODEPRESSURE_MIN_POD_AGE", "-5"),
        ("NODEPRESSURE_POLL_INTERVAL", "inf"),
        ("NODEPRESSURE_DRY_RUN", "perhaps"),
    ])
    def test_bad_values(self, name, value):
        """Unparseable values raise ValueError."""
        with pytest.raises(ValueError):
            Settings.from_env({name: value})

    def test_with_overrides_skips_none(self):
        """None overrides leave the current value."""
        s = Settings(node_name="node-1").with_overrides(node_name=None, dry_run=True)
        assert s.node_name == "node-1"
        assert s.dry_run is True


class TestLoadEnv:
    """Test .env loading."""

    def test_missing_file(self, tmp_path):
        """No file, nothing loaded."""
        assert load_env(tmp_path / ".env") is False

    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        """File values fill gaps but do not replace existing variables."""
        env_file = tmp_path / ".env"
        env_file.write_text("NODEPRESSURE_NODE_NAME=from-file\nNODEPRESSURE_THRESHOLD=50\n")
        monkeypatch.setenv("NODEPRESSURE_NODE_NAME", "from-env")
        # registered so teardown removes the value loaded from the file
        monkeypatch.setenv("NODEPRESSURE_THRESHOLD", "placeholder")
        monkeypatch.delenv("NODEPRESSURE_THRESHOLD")

        assert load_env(env_file) is True

        assert os.environ["NODEPRESSURE_NODE_NAME"] == "from-env"
        assert os.environ["NODEPRESSURE_THRESHOLD"] == "50"
