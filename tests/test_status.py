import pytest

from conftest import stats_payload
from pangolin_guardian.status import (
    UNKNOWN,
    ContainerStatus,
    Health,
    cpu_percent_from_stats,
    format_bytes,
    is_unhealthy,
    memory_usage_from_stats,
    parse_uptime,
)


class TestParseUptime:
    @pytest.mark.parametrize("status, expected", [
        ("Up 20 hours", "20 hours"),
        ("Up 3 days", "3 days"),
        ("  Up 1 minute ", "1 minute"),
    ])
    def test_matches(self, status, expected):
        assert parse_uptime(status) == expected

    @pytest.mark.parametrize("status", [
        "Up 2 minutes (healthy)",
        "Up About an hour",
        "Exited (0) 2 hours ago",
        "Läuft seit 3 Stunden",
        "",
        None,
    ])
    def test_unparseable_is_unknown(self, status):
        assert parse_uptime(status) == UNKNOWN


class TestFormatBytes:
    def test_zero(self):
        assert format_bytes(0) == "0 Bytes"

    def test_none_is_unknown(self):
        assert format_bytes(None) == UNKNOWN

    def test_kilobytes(self):
        assert format_bytes(1536) == "1.50 KB"

    def test_small_values_stay_bytes(self):
        assert format_bytes(512) == "512 Bytes"

    def test_megabytes_and_gigabytes(self):
        assert format_bytes(5 * 1024 * 1024) == "5.00 MB"
        assert format_bytes(3 * 1024 ** 3) == "3.00 GB"

    def test_terabytes_clamp_to_gigabytes(self):
        assert format_bytes(2 * 1024 ** 4) == "2048.00 GB"

    @pytest.mark.parametrize("value", [float("nan"), -1, "garbage"])
    def test_invalid_is_unknown(self, value):
        assert format_bytes(value) == UNKNOWN


class TestStats:
    def test_cpu_percent(self):
        assert cpu_percent_from_stats(stats_payload()) == 20.0

    def test_cpu_percent_without_system_delta(self):
        assert cpu_percent_from_stats(stats_payload(system=0, pre_system=0)) == 0.0

    def test_cpu_percent_missing_fields(self):
        assert cpu_percent_from_stats({}) is None

    def test_memory(self):
        assert memory_usage_from_stats(stats_payload(memory=1024)) == 1024
        assert memory_usage_from_stats({"memory_stats": {}}) is None


class TestContainerStatus:
    def test_running_requires_exists(self):
        with pytest.raises(ValueError):
            ContainerStatus(name="ghost", exists=False, running=True)

    def test_missing_has_sentinels(self):
        status = ContainerStatus.missing("ghost")
        assert status.health is Health.MISSING
        assert status.uptime == UNKNOWN
        assert status.cpu_display == UNKNOWN
        assert status.memory_display == UNKNOWN
        assert not status.needs_restart

    def test_unhealthy_overrides_running(self):
        status = ContainerStatus(name="traefik", exists=True, running=True, status="Up 5 minutes (unhealthy)")
        assert is_unhealthy(status.status)
        assert status.health is Health.DEGRADED
        assert status.needs_restart

    def test_stopped_needs_restart(self):
        status = ContainerStatus(name="gerbil", exists=True, running=False, status="Exited (1)")
        assert status.health is Health.STOPPED
        assert status.needs_restart

    def test_healthy(self):
        status = ContainerStatus(name="pangolin", exists=True, running=True, status="Up 2 hours", cpu_percent=1.5)
        assert status.health is Health.HEALTHY
        assert not status.needs_restart
        assert status.cpu_display == "1.50%"
