"""Shared fixtures: a fake docker client and container summaries."""

from unittest.mock import Mock

import pytest

from pangolin_guardian.gateway import ContainerGateway


def container_summary(name, state="running", status="Up 2 hours", image="example/image:latest", leading_slash=True):
    return {
        "Id": f"{name}-id",
        "Names": [f"/{name}" if leading_slash else name],
        "State": state,
        "Status": status,
        "Image": image,
    }


def stats_payload(total=200_000_000, pre_total=100_000_000, system=2_000_000_000, pre_system=1_000_000_000,
                  cpus=2, memory=50 * 1024 * 1024):
    return {
        "cpu_stats": {
            "cpu_usage": {"total_usage": total},
            "system_cpu_usage": system,
            "online_cpus": cpus,
        },
        "precpu_stats": {
            "cpu_usage": {"total_usage": pre_total},
            "system_cpu_usage": pre_system,
        },
        "memory_stats": {"usage": memory},
    }


@pytest.fixture
def docker_client():
    client = Mock()
    client.api.containers.return_value = [
        container_summary("pangolin"),
        container_summary("gerbil", state="exited", status="Exited (1) 3 minutes ago"),
        container_summary("traefik", status="Up 5 minutes (unhealthy)"),
        container_summary("crowdsec", leading_slash=False),
    ]
    client.api.stats.return_value = stats_payload()
    return client


@pytest.fixture
def gateway(docker_client):
    return ContainerGateway(docker_client, stats_timeout=1.0)
