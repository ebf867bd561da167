"""
Background health monitor.

Every pass walks the containers that have auto-restart enabled, restarts the
stopped or unhealthy ones within their daily attempt budget and reports what
it did to the alert channel. A second, lighter pass warns about stack
containers running hot on CPU.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Sequence

from pangolin_guardian.branding import EMOJIS, format_container_name
from pangolin_guardian.errors import GuardianError
from pangolin_guardian.restart_policy import RestartPolicy, RestartPolicyStore, utcnow

logger = logging.getLogger(__name__)

CPU_ALERT_COOLDOWN = timedelta(minutes=5)


class MonitorState(Enum):
    HEALTHY = "healthy"
    RESTART_ATTEMPTED = "restart_attempted"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class MonitorOutcome:
    name: str
    state: MonitorState
    detail: str = ""


class HealthMonitor:
    def __init__(
        self,
        gateway,
        store: RestartPolicyStore,
        sink,
        stack_containers: Sequence[str] = (),
        cpu_threshold: float = 80.0,
        interval: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.store = store
        self.sink = sink
        self.stack_containers = tuple(stack_containers)
        self.cpu_threshold = cpu_threshold
        self.interval = interval
        self.clock = clock
        self._cpu_alerted: Dict[str, datetime] = {}

    async def run_pass(self) -> List[MonitorOutcome]:
        try:
            entries = self.store.load_entries()
        except GuardianError as exc:
            logger.error("❌ Could not read auto-restart config: %s", exc)
            await self.sink.send(f"{EMOJIS['error']} Could not read auto-restart config\n```{exc}```", "danger")
            return [MonitorOutcome("*", MonitorState.FAILED, str(exc))]

        outcomes = []
        for name, entry in entries.items():
            try:
                policy = RestartPolicy.from_dict(entry)
                if not policy.enabled:
                    continue
                outcome = await self._check(name, policy)
            except Exception as exc:
                logger.exception("Error handling %s", name)
                await self.sink.send(
                    f"{EMOJIS['error']} Auto-restart check failed for **{format_container_name(name)}**\n```{exc}```",
                    "danger",
                )
                outcome = MonitorOutcome(name, MonitorState.FAILED, str(exc))
            outcomes.append(outcome)
        return outcomes

    async def _check(self, name: str, policy: RestartPolicy) -> MonitorOutcome:
        status = await self.gateway.get_status(name)
        if not status.exists:
            logger.info("Container %s not found.", name)
            return MonitorOutcome(name, MonitorState.NOT_FOUND)
        if not status.needs_restart:
            return MonitorOutcome(name, MonitorState.HEALTHY)

        logger.info("Container %s needs restart (%s).", name, status.status or status.state)
        now = self.clock()
        if policy.exhausted(now.date()):
            logger.info("Maximum restart attempts (%d) reached for %s today.", policy.max_attempts, name)
            await self.sink.send(
                f"{EMOJIS['error']} Container **{format_container_name(name)}** needs restart but "
                f"maximum daily attempts ({policy.max_attempts}) reached.",
                "danger",
            )
            return MonitorOutcome(name, MonitorState.ATTEMPTS_EXHAUSTED)

        method = await self.gateway.restart(name)
        attempts = policy.record_attempt(now)
        self.store.put(name, policy)
        await self.sink.send(
            f"{EMOJIS['loading']} Auto-restarted **{format_container_name(name)}**\n"
            f"(Attempt {attempts}/{policy.max_attempts} today)",
            "warning",
        )
        return MonitorOutcome(name, MonitorState.RESTART_ATTEMPTED, method.value)

    async def check_resources(self) -> List[str]:
        """Alert on stack containers above the CPU threshold. Returns the names alerted."""
        alerted = []
        for name in self.stack_containers:
            try:
                status = await self.gateway.get_status(name)
            except GuardianError as exc:
                logger.warning("⚠️ Resource check failed for %s: %s", name, exc)
                continue
            if not status.running or status.cpu_percent is None:
                continue

            if status.cpu_percent <= self.cpu_threshold:
                self._cpu_alerted.pop(name, None)
                continue

            now = self.clock()
            last = self._cpu_alerted.get(name)
            if last and now - last < CPU_ALERT_COOLDOWN:
                continue
            await self.sink.send(
                f"🔥 **CPU Usage:** `{status.cpu_display}`\n🖥️ **Memory Usage:** `{status.memory_display}`",
                "danger",
                title=f"High CPU Alert: {format_container_name(name)}",
            )
            self._cpu_alerted[name] = now
            alerted.append(name)
        return alerted

    async def run_forever(self, is_closed: Callable[[], bool]):
        logger.info("✅ Health monitor started, checking every %ss", self.interval)
        while not is_closed():
            try:
                await self.run_pass()
                await self.check_resources()
            except Exception:
                logger.exception("Health monitor pass failed")
            await asyncio.sleep(self.interval)
