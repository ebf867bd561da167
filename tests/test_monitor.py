import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from pangolin_guardian.errors import TransportError
from pangolin_guardian.gateway import RestartMethod
from pangolin_guardian.monitor import HealthMonitor, MonitorState
from pangolin_guardian.restart_policy import RestartPolicy, RestartPolicyStore
from pangolin_guardian.status import ContainerStatus

NOW = datetime(2024, 5, 2, 10, 30, tzinfo=timezone.utc)


def running(name, cpu=5.0, status="Up 2 hours"):
    return ContainerStatus(name=name, exists=True, running=True, status=status, cpu_percent=cpu, memory_usage=1024)


def stopped(name):
    return ContainerStatus(name=name, exists=True, running=False, state="exited", status="Exited (1)")


class FakeGateway:
    def __init__(self, statuses):
        self.statuses = statuses
        self.restart = AsyncMock(return_value=RestartMethod.CONTAINER)

    async def get_status(self, name):
        status = self.statuses[name]
        if isinstance(status, Exception):
            raise status
        return status


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def store(tmp_path):
    return RestartPolicyStore(str(tmp_path / "autoRestart.json"))


@pytest.fixture
def sink():
    return AsyncMock()


def monitor_for(gateway, store, sink, clock=None, **kwargs):
    return HealthMonitor(gateway, store, sink, clock=clock or Clock(NOW), **kwargs)


class TestRunPass:
    """Restart pass over containers with auto-restart enabled."""

    @pytest.mark.asyncio
    async def test_failure_of_one_container_does_not_stop_the_pass(self, store, sink):
        store.save({"a": RestartPolicy(), "b": RestartPolicy()})
        gateway = FakeGateway({"a": TransportError("socket closed"), "b": stopped("b")})

        outcomes = await monitor_for(gateway, store, sink).run_pass()

        assert [(o.name, o.state) for o in outcomes] == [
            ("a", MonitorState.FAILED),
            ("b", MonitorState.RESTART_ATTEMPTED),
        ]
        gateway.restart.assert_awaited_once_with("b")
        assert sink.send.await_count == 2

    @pytest.mark.asyncio
    async def test_restart_records_attempt(self, store, sink):
        store.save({"gerbil": RestartPolicy(max_attempts=3, attempts=3, last_attempt=NOW - timedelta(days=1))})
        gateway = FakeGateway({"gerbil": stopped("gerbil")})

        outcomes = await monitor_for(gateway, store, sink).run_pass()

        assert outcomes[0].state is MonitorState.RESTART_ATTEMPTED
        policy = store.load()["gerbil"]
        assert policy.attempts == 1
        assert policy.last_attempt == NOW
        assert "Attempt 1/3" in sink.send.await_args.args[0]

    @pytest.mark.asyncio
    async def test_unhealthy_running_container_is_restarted(self, store, sink):
        store.save({"traefik": RestartPolicy()})
        gateway = FakeGateway({"traefik": running("traefik", status="Up 5 minutes (unhealthy)")})

        outcomes = await monitor_for(gateway, store, sink).run_pass()
        assert outcomes[0].state is MonitorState.RESTART_ATTEMPTED

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, store, sink):
        store.save({"gerbil": RestartPolicy(max_attempts=2, attempts=2, last_attempt=NOW - timedelta(hours=1))})
        gateway = FakeGateway({"gerbil": stopped("gerbil")})

        outcomes = await monitor_for(gateway, store, sink).run_pass()

        assert outcomes[0].state is MonitorState.ATTEMPTS_EXHAUSTED
        gateway.restart.assert_not_awaited()
        assert "maximum daily attempts (2)" in sink.send.await_args.args[0]
        assert store.load()["gerbil"].attempts == 2

    @pytest.mark.asyncio
    async def test_healthy_missing_and_disabled(self, store, sink):
        store.save({
            "pangolin": RestartPolicy(),
            "ghost": RestartPolicy(),
            "traefik": RestartPolicy(enabled=False),
        })
        gateway = FakeGateway({"pangolin": running("pangolin"), "ghost": ContainerStatus.missing("ghost")})

        outcomes = await monitor_for(gateway, store, sink).run_pass()

        assert [(o.name, o.state) for o in outcomes] == [
            ("pangolin", MonitorState.HEALTHY),
            ("ghost", MonitorState.NOT_FOUND),
        ]
        sink.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_restart_error_is_alerted(self, store, sink):
        store.save({"gerbil": RestartPolicy()})
        gateway = FakeGateway({"gerbil": stopped("gerbil")})
        gateway.restart.side_effect = TransportError("engine down")

        outcomes = await monitor_for(gateway, store, sink).run_pass()

        assert outcomes[0].state is MonitorState.FAILED
        assert "engine down" in sink.send.await_args.args[0]
        assert store.load()["gerbil"].attempts == 0

    @pytest.mark.asyncio
    async def test_malformed_entries_are_isolated(self, store, sink, tmp_path):
        path = tmp_path / "autoRestart.json"
        path.write_text(json.dumps({"containers": {
            "a": {"enabled": True, "maxAttempts": "lots"},
            "b": {"enabled": True, "maxAttempts": 3, "attempts": 0},
            "c": True,
        }}))
        gateway = FakeGateway({"b": stopped("b")})

        outcomes = await monitor_for(gateway, store, sink).run_pass()

        assert [(o.name, o.state) for o in outcomes] == [
            ("a", MonitorState.FAILED),
            ("b", MonitorState.RESTART_ATTEMPTED),
            ("c", MonitorState.FAILED),
        ]
        gateway.restart.assert_awaited_once_with("b")
        on_disk = json.loads(path.read_text())["containers"]
        assert on_disk["a"] == {"enabled": True, "maxAttempts": "lots"}
        assert on_disk["c"] is True
        assert on_disk["b"]["attempts"] == 1

    @pytest.mark.asyncio
    async def test_corrupt_config_is_alerted(self, store, sink, tmp_path):
        (tmp_path / "autoRestart.json").write_text("oops")
        outcomes = await monitor_for(FakeGateway({}), store, sink).run_pass()
        assert outcomes[0].state is MonitorState.FAILED
        sink.send.assert_awaited_once()


class TestCheckResources:
    @pytest.mark.asyncio
    async def test_alert_cooldown_and_reset(self, store, sink):
        clock = Clock(NOW)
        gateway = FakeGateway({"pangolin": running("pangolin", cpu=95.0), "gerbil": stopped("gerbil")})
        monitor = monitor_for(gateway, store, sink, clock=clock, stack_containers=["pangolin", "gerbil"], cpu_threshold=80)

        assert await monitor.check_resources() == ["pangolin"]

        clock.now = NOW + timedelta(minutes=2)
        assert await monitor.check_resources() == []

        clock.now = NOW + timedelta(minutes=6)
        assert await monitor.check_resources() == ["pangolin"]

        gateway.statuses["pangolin"] = running("pangolin", cpu=10.0)
        assert await monitor.check_resources() == []
        gateway.statuses["pangolin"] = running("pangolin", cpu=99.0)
        clock.now = NOW + timedelta(minutes=7)
        assert await monitor.check_resources() == ["pangolin"]

    @pytest.mark.asyncio
    async def test_unknown_cpu_is_ignored(self, store, sink):
        gateway = FakeGateway({"pangolin": running("pangolin", cpu=None)})
        monitor = monitor_for(gateway, store, sink, stack_containers=["pangolin"])
        assert await monitor.check_resources() == []


class TestRunForever:
    @pytest.mark.asyncio
    async def test_stops_when_closed(self, store, sink):
        monitor = monitor_for(FakeGateway({}), store, sink, interval=0)
        checks = iter([False, False, True])
        await monitor.run_forever(lambda: next(checks))

    @pytest.mark.asyncio
    async def test_survives_a_failing_pass(self, store, sink):
        monitor = monitor_for(FakeGateway({}), store, sink, interval=0)
        monitor.run_pass = AsyncMock(side_effect=[RuntimeError("boom"), []])
        monitor.check_resources = AsyncMock(return_value=[])
        checks = iter([False, False, True])

        await monitor.run_forever(lambda: next(checks))

        assert monitor.run_pass.await_count == 2
        monitor.check_resources.assert_awaited_once()
