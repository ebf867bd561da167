from collections import namedtuple
from unittest.mock import patch

import pytest

from pangolin_guardian.metrics import HostMetricsSampler, cpu_usage_between, interface_rates

CpuTimes = namedtuple("CpuTimes", "user nice system idle iowait irq softirq steal guest guest_nice")
NetIO = namedtuple("NetIO", "bytes_sent bytes_recv")


def cpu(user, system, idle, iowait=0, guest=0):
    return CpuTimes(user, 0, system, idle, iowait, 0, 0, 0, guest, 0)


class TestCpuUsage:
    def test_busy_share(self):
        before = cpu(100, 50, 850)
        after = cpu(130, 60, 910)  # 40 busy of 100
        assert cpu_usage_between(before, after) == 40.0

    def test_iowait_counts_as_idle(self):
        before = cpu(0, 0, 0, iowait=0)
        after = cpu(25, 0, 50, iowait=25)
        assert cpu_usage_between(before, after) == 25.0

    def test_guest_time_is_not_double_counted(self):
        before = cpu(0, 0, 0)
        after = cpu(50, 0, 50, guest=50)
        assert cpu_usage_between(before, after) == 50.0

    def test_no_elapsed_ticks(self):
        sample = cpu(1, 1, 1)
        assert cpu_usage_between(sample, sample) == 0.0


class TestInterfaceRates:
    def test_rates_skip_loopback(self):
        before = {"eth0": NetIO(0, 0), "lo": NetIO(0, 0)}
        after = {"eth0": NetIO(2048, 4096), "lo": NetIO(10 ** 6, 10 ** 6)}

        rates = interface_rates(before, after, elapsed=2.0)

        assert list(rates) == ["eth0"]
        assert rates["eth0"].rx_kbps == 2.0
        assert rates["eth0"].tx_kbps == 1.0
        assert rates["eth0"].rx_total == 4096

    def test_new_interface_and_counter_reset(self):
        before = {"eth0": NetIO(5000, 5000)}
        after = {"eth0": NetIO(100, 100), "wg0": NetIO(10, 10)}
        rates = interface_rates(before, after, elapsed=1.0)
        assert list(rates) == ["eth0"]
        assert rates["eth0"].rx_kbps == 0.0

    def test_zero_elapsed(self):
        assert interface_rates({"eth0": NetIO(0, 0)}, {"eth0": NetIO(1, 1)}, elapsed=0) == {}


class TestHostMetricsSampler:
    @pytest.mark.asyncio
    async def test_bandwidth_samples_twice(self):
        samples = [{"eth0": NetIO(0, 0)}, {"eth0": NetIO(1024, 1024)}]
        with patch("pangolin_guardian.metrics.psutil.net_io_counters", side_effect=samples) as counters:
            bandwidth = await HostMetricsSampler(interval=0.01).bandwidth()
        assert counters.call_count == 2
        assert list(bandwidth.interfaces) == ["eth0"]
        assert bandwidth.rx_total == 1024

    @pytest.mark.asyncio
    async def test_load_gathers_everything(self):
        load = await HostMetricsSampler(interval=0).load()
        assert 0.0 <= load.cpu.usage <= 100.0
        assert load.cpu.cores >= 1
        assert load.memory.total_mb > 0
        assert load.disk.total > 0
