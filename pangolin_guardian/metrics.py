"""Host metrics sampled with psutil. Rates come from two samples one interval apart."""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)

MB = 1024 * 1024
LOOPBACK_PREFIXES = ("lo",)


@dataclass
class CpuInfo:
    usage: float
    load_avg: Tuple[float, float, float]
    cores: int


@dataclass
class MemoryInfo:
    total_mb: int
    used_mb: int
    free_mb: int
    percent: float


@dataclass
class DiskInfo:
    total: int
    used: int
    free: int
    percent: float


@dataclass
class InterfaceRate:
    rx_kbps: float
    tx_kbps: float
    rx_total: int
    tx_total: int


@dataclass
class BandwidthInfo:
    interfaces: Dict[str, InterfaceRate] = field(default_factory=dict)

    @property
    def rx_kbps(self) -> float:
        return round(sum(rate.rx_kbps for rate in self.interfaces.values()), 2)

    @property
    def tx_kbps(self) -> float:
        return round(sum(rate.tx_kbps for rate in self.interfaces.values()), 2)

    @property
    def rx_total(self) -> int:
        return sum(rate.rx_total for rate in self.interfaces.values())

    @property
    def tx_total(self) -> int:
        return sum(rate.tx_total for rate in self.interfaces.values())


@dataclass
class HostLoad:
    cpu: CpuInfo
    memory: MemoryInfo
    disk: DiskInfo


def cpu_usage_between(before, after) -> float:
    """Busy percentage between two ``psutil.cpu_times()`` samples."""
    idle_fields = ("idle", "iowait")
    # guest time is already included in user on Linux
    before_total = sum(before) - getattr(before, "guest", 0) - getattr(before, "guest_nice", 0)
    after_total = sum(after) - getattr(after, "guest", 0) - getattr(after, "guest_nice", 0)
    before_idle = sum(getattr(before, name, 0) for name in idle_fields)
    after_idle = sum(getattr(after, name, 0) for name in idle_fields)
    total = after_total - before_total
    if total <= 0:
        return 0.0
    busy = total - (after_idle - before_idle)
    return round(max(0.0, min(100.0, busy / total * 100)), 2)


def interface_rates(before, after, elapsed: float) -> Dict[str, InterfaceRate]:
    """Per-interface rates from two ``net_io_counters(pernic=True)`` samples."""
    rates = {}
    if elapsed <= 0:
        return rates
    for name, counters in after.items():
        if name.startswith(LOOPBACK_PREFIXES) or name not in before:
            continue
        previous = before[name]
        rx = max(0, counters.bytes_recv - previous.bytes_recv)
        tx = max(0, counters.bytes_sent - previous.bytes_sent)
        rates[name] = InterfaceRate(
            rx_kbps=round(rx / 1024 / elapsed, 2),
            tx_kbps=round(tx / 1024 / elapsed, 2),
            rx_total=counters.bytes_recv,
            tx_total=counters.bytes_sent,
        )
    return rates


class HostMetricsSampler:
    def __init__(self, interval: float = 1.0, disk_path: str = "/"):
        self.interval = interval
        self.disk_path = disk_path

    async def cpu(self) -> CpuInfo:
        before = psutil.cpu_times()
        await asyncio.sleep(self.interval)
        after = psutil.cpu_times()
        try:
            load_avg = tuple(round(value, 2) for value in os.getloadavg())
        except OSError:
            load_avg = (0.0, 0.0, 0.0)
        return CpuInfo(
            usage=cpu_usage_between(before, after),
            load_avg=load_avg,
            cores=psutil.cpu_count() or 1,
        )

    async def memory(self) -> MemoryInfo:
        memory = psutil.virtual_memory()
        return MemoryInfo(
            total_mb=memory.total // MB,
            used_mb=(memory.total - memory.available) // MB,
            free_mb=memory.available // MB,
            percent=round(memory.percent, 2),
        )

    async def disk(self) -> DiskInfo:
        usage = await asyncio.to_thread(psutil.disk_usage, self.disk_path)
        return DiskInfo(total=usage.total, used=usage.used, free=usage.free, percent=round(usage.percent, 2))

    async def bandwidth(self) -> BandwidthInfo:
        before = psutil.net_io_counters(pernic=True)
        started = time.monotonic()
        await asyncio.sleep(self.interval)
        after = psutil.net_io_counters(pernic=True)
        return BandwidthInfo(interfaces=interface_rates(before, after, time.monotonic() - started))

    async def load(self) -> HostLoad:
        cpu, memory, disk = await asyncio.gather(self.cpu(), self.memory(), self.disk())
        return HostLoad(cpu=cpu, memory=memory, disk=disk)


def process_rss(pid: Optional[int] = None) -> int:
    return psutil.Process(pid).memory_info().rss
