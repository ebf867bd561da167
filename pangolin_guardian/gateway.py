"""
Container Gateway: the only way the bot finds and operates on containers.

Containers are resolved by name on every call, since the stack may be
recreated between two commands. Blocking docker SDK calls run in a worker
thread so the event loop keeps serving Discord.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import docker
import requests
from docker.utils import socket as docker_socket

from pangolin_guardian.errors import (
    CommandFailed,
    GuardianError,
    NotFound,
    NotRunning,
    Timeout,
    TransportError,
    ValidationError,
)
from pangolin_guardian.frames import demultiplex
from pangolin_guardian.status import (
    ContainerStatus,
    cpu_percent_from_stats,
    memory_usage_from_stats,
    parse_uptime,
)

logger = logging.getLogger(__name__)

DEFAULT_STATS_TIMEOUT = 3.0
_READ_SIZE = 4096


def _strip_separator(name: str) -> str:
    return name.lstrip("/")


@dataclass(frozen=True)
class ContainerRef:
    """A container as listed by the engine, valid for one operation only."""

    name: str
    id: str
    state: str = ""
    status: str = ""
    image: str = ""

    @property
    def running(self) -> bool:
        return self.state == "running"

    @classmethod
    def from_summary(cls, name: str, summary: Dict[str, Any]) -> "ContainerRef":
        return cls(
            name=name,
            id=summary.get("Id", ""),
            state=summary.get("State") or "",
            status=summary.get("Status") or "",
            image=summary.get("Image") or "",
        )


@dataclass(frozen=True)
class ContainerDetails:
    """The parts of ``docker inspect`` shown by ``/docker show``."""

    name: str
    id: str
    state: str
    created: str
    image: str
    network_mode: str
    networks: Dict[str, str]
    ports: List[str]
    mounts: List[str]

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @classmethod
    def from_inspect(cls, name: str, data: Dict[str, Any]) -> "ContainerDetails":
        settings = data.get("NetworkSettings") or {}
        networks = {
            network: (config or {}).get("IPAddress") or "-"
            for network, config in (settings.get("Networks") or {}).items()
        }
        ports = []
        for container_port, bindings in (settings.get("Ports") or {}).items():
            if not bindings:
                ports.append(f"{container_port} (not published)")
                continue
            for binding in bindings:
                ports.append(f"{binding.get('HostIp') or '0.0.0.0'}:{binding.get('HostPort')} -> {container_port}")
        mounts = [f"{mount.get('Source')} -> {mount.get('Destination')}" for mount in data.get("Mounts") or []]
        return cls(
            name=name,
            id=data.get("Id", ""),
            state=(data.get("State") or {}).get("Status") or "unknown",
            created=(data.get("Created") or "")[:19].replace("T", " "),
            image=(data.get("Config") or {}).get("Image") or data.get("Image", ""),
            network_mode=(data.get("HostConfig") or {}).get("NetworkMode") or "default",
            networks=networks,
            ports=ports,
            mounts=mounts,
        )


@dataclass(frozen=True)
class ExecResult:
    """Outcome of one command run inside a container.

    A command that writes only to stderr is treated as failed. Anything on
    stdout counts as success, whatever the exit code.
    """

    succeeded: bool
    stdout: str = ""
    stderr: str = ""
    error_message: Optional[str] = None
    exit_code: Optional[int] = None
    transport_failed: bool = field(default=False, compare=False)

    @classmethod
    def from_streams(cls, stdout: str, stderr: str, exit_code: Optional[int] = None) -> "ExecResult":
        if stderr and not stdout:
            return cls(succeeded=False, stdout="", stderr=stderr, error_message=stderr.strip() or stderr, exit_code=exit_code)
        return cls(succeeded=True, stdout=stdout, stderr=stderr, exit_code=exit_code)

    @classmethod
    def transport_failure(cls, message: str) -> "ExecResult":
        return cls(succeeded=False, error_message=message, transport_failed=True)

    @classmethod
    def rejected(cls, message: str) -> "ExecResult":
        return cls(succeeded=False, error_message=message)

    @property
    def output(self) -> str:
        return self.stdout or self.stderr

    def check(self) -> "ExecResult":
        """Raise the matching GuardianError unless the exec succeeded."""
        if self.transport_failed:
            raise TransportError(self.error_message or "Container engine unreachable")
        if not self.succeeded:
            raise CommandFailed(
                self.error_message or "Command failed",
                stdout=self.stdout,
                stderr=self.stderr,
                exit_code=self.exit_code,
            )
        return self


class RestartMethod(Enum):
    SERVICE = "service"
    CONTAINER = "container"


class ContainerGateway:
    def __init__(self, client: docker.DockerClient, stats_timeout: float = DEFAULT_STATS_TIMEOUT):
        self.client = client
        self.stats_timeout = stats_timeout

    @classmethod
    def from_env(cls, stats_timeout: float = DEFAULT_STATS_TIMEOUT) -> "ContainerGateway":
        try:
            client = docker.from_env()
        except docker.errors.DockerException as exc:
            raise TransportError(f"Unable to connect to Docker: {exc}") from exc
        logger.info("✅ Docker client initialized")
        return cls(client, stats_timeout=stats_timeout)

    async def _run(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except docker.errors.NotFound as exc:
            raise NotFound(getattr(exc, "explanation", None) or str(exc)) from exc
        except docker.errors.APIError as exc:
            raise CommandFailed(getattr(exc, "explanation", None) or str(exc)) from exc
        except (docker.errors.DockerException, requests.exceptions.RequestException, OSError) as exc:
            raise TransportError(f"Container engine unreachable: {exc}") from exc

    # ------------------------------------------------------------------
    # Resolution and status
    # ------------------------------------------------------------------

    async def list_containers(self) -> List[ContainerRef]:
        summaries = await self._run(self.client.api.containers, all=True)
        refs = []
        for summary in summaries:
            names = summary.get("Names") or []
            display = _strip_separator(names[0]) if names else summary.get("Id", "")[:12]
            refs.append(ContainerRef.from_summary(display, summary))
        return refs

    async def resolve_by_name(self, name: str) -> ContainerRef:
        wanted = _strip_separator(name)
        summaries = await self._run(self.client.api.containers, all=True)
        matches = [
            summary for summary in summaries
            if any(_strip_separator(candidate) == wanted for candidate in summary.get("Names") or [])
        ]
        if not matches:
            raise NotFound(f"Container {wanted} not found")
        if len(matches) > 1:
            logger.debug("%d containers named %s, using the first", len(matches), wanted)
        return ContainerRef.from_summary(wanted, matches[0])

    async def stats(self, ref: ContainerRef) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(
                self._run(self.client.api.stats, ref.id, stream=False),
                timeout=self.stats_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise Timeout(f"Stats for {ref.name} took longer than {self.stats_timeout}s") from exc

    async def get_status(self, name: str) -> ContainerStatus:
        try:
            ref = await self.resolve_by_name(name)
        except NotFound:
            return ContainerStatus.missing(_strip_separator(name))

        cpu_percent = None
        memory_usage = None
        if ref.running:
            try:
                stats = await self.stats(ref)
            except GuardianError as exc:
                logger.warning("⚠️ Stats unavailable for %s: %s", ref.name, exc)
            else:
                cpu_percent = cpu_percent_from_stats(stats)
                memory_usage = memory_usage_from_stats(stats)

        return ContainerStatus(
            name=ref.name,
            exists=True,
            running=ref.running,
            state=ref.state or "unknown",
            status=ref.status,
            uptime=parse_uptime(ref.status),
            cpu_percent=cpu_percent,
            memory_usage=memory_usage,
            container_id=ref.id,
        )

    async def inspect(self, name: str) -> ContainerDetails:
        ref = await self.resolve_by_name(name)
        data = await self._run(self.client.api.inspect_container, ref.id)
        return ContainerDetails.from_inspect(ref.name, data)

    async def stack_status(self, names: Sequence[str]) -> Dict[str, ContainerStatus]:
        results = {}
        for name in names:
            results[name] = await self.get_status(name)
        return results

    # ------------------------------------------------------------------
    # Exec
    # ------------------------------------------------------------------

    def _exec_sync(self, container_id: str, argv: List[str]) -> Tuple[bytes, Optional[int]]:
        exec_id = self.client.api.exec_create(container_id, argv, stdout=True, stderr=True)["Id"]
        sock = self.client.api.exec_start(exec_id, socket=True)
        chunks = []
        try:
            while True:
                chunk = docker_socket.read(sock, _READ_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
        finally:
            sock.close()
        exit_code = self.client.api.exec_inspect(exec_id).get("ExitCode")
        return b"".join(chunks), exit_code

    async def exec_in_container(self, name: str, argv: Sequence[str]) -> ExecResult:
        if not argv:
            raise ValidationError("No command given")
        ref = await self.resolve_by_name(name)
        if not ref.running:
            raise NotRunning(f"Container {ref.name} is not running")

        logger.info("Executing in %s: %s", ref.name, " ".join(argv))
        try:
            raw, exit_code = await self._run(self._exec_sync, ref.id, list(argv))
        except TransportError as exc:
            logger.error("❌ Exec in %s failed: %s", ref.name, exc)
            return ExecResult.transport_failure(str(exc))
        except CommandFailed as exc:
            # the engine answered but refused the exec, e.g. 409 while restarting
            logger.error("❌ Engine rejected exec in %s: %s", ref.name, exc)
            return ExecResult.rejected(str(exc))

        stdout, stderr = demultiplex(raw)
        return ExecResult.from_streams(
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            exit_code,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def restart(self, name: str, service_command: Optional[Sequence[str]] = None) -> RestartMethod:
        """Restart a container, trying ``service_command`` inside it first.

        The container is not guaranteed to be serving again when this
        returns; callers wait a grace period before re-checking status.
        """
        ref = await self.resolve_by_name(name)
        if service_command and ref.running:
            try:
                result = await self.exec_in_container(ref.name, service_command)
            except NotRunning:
                result = None
            if result is not None and result.succeeded:
                logger.info("🔄 Restarted %s via %s", ref.name, " ".join(service_command))
                return RestartMethod.SERVICE
            logger.warning("Service restart of %s failed, restarting the container instead", ref.name)

        await self._run(self.client.api.restart, ref.id)
        logger.info("🔄 Restarted container %s", ref.name)
        return RestartMethod.CONTAINER

    async def start(self, name: str) -> None:
        ref = await self.resolve_by_name(name)
        await self._run(self.client.api.start, ref.id)

    async def stop(self, name: str) -> None:
        ref = await self.resolve_by_name(name)
        await self._run(self.client.api.stop, ref.id)

    async def remove(self, name: str) -> None:
        ref = await self.resolve_by_name(name)
        if ref.running:
            raise ValidationError(f"Container {ref.name} is still running. Stop it before deleting.")
        await self._run(self.client.api.remove_container, ref.id)

    async def logs(self, name: str, tail: int = 20, since: Optional[timedelta] = None) -> str:
        ref = await self.resolve_by_name(name)
        options: Dict[str, Any] = {"stdout": True, "stderr": True, "timestamps": True, "tail": tail}
        if since is not None:
            options["since"] = int((datetime.now(timezone.utc) - since).timestamp())
        output = await self._run(self.client.api.logs, ref.id, **options)
        return output.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Engine-wide
    # ------------------------------------------------------------------

    async def engine_info(self) -> Dict[str, Any]:
        info = await self._run(self.client.api.info)
        return {
            "version": info.get("ServerVersion", "Unknown"),
            "containers": info.get("Containers", 0),
            "running": info.get("ContainersRunning", 0),
            "paused": info.get("ContainersPaused", 0),
            "stopped": info.get("ContainersStopped", 0),
            "images": info.get("Images", 0),
            "cpus": info.get("NCPU", 0),
            "memory": info.get("MemTotal", 0),
            "os": info.get("OperatingSystem", "Unknown"),
        }

    async def list_images(self) -> List[Tuple[str, int]]:
        images = await self._run(self.client.api.images)
        listed = []
        for image in images:
            tags = [tag for tag in image.get("RepoTags") or [] if tag != "<none>:<none>"]
            label = ", ".join(tags) if tags else image.get("Id", "")[7:19]
            listed.append((label, image.get("Size", 0)))
        return listed

    async def pull_image(self, reference: str) -> str:
        if not reference.strip():
            raise ValidationError("Image name is required")
        image = await self._run(self.client.images.pull, reference.strip())
        return ", ".join(image.tags) if image.tags else image.short_id

    async def local_digests(self, reference: str) -> List[str]:
        """Registry digests (``sha256:...``) recorded for a local image."""
        image = await self._run(self.client.api.inspect_image, reference)
        return [digest.split("@", 1)[1] for digest in image.get("RepoDigests") or [] if "@" in digest]

    async def registry_digest(self, reference: str) -> str:
        """Digest the registry currently serves for ``reference``, without pulling it."""
        distribution = await self._run(self.client.api.inspect_distribution, reference)
        digest = (distribution.get("Descriptor") or {}).get("digest")
        if not digest:
            raise CommandFailed(f"Registry returned no digest for {reference}")
        return digest

    async def remove_image(self, reference: str, force: bool = False) -> None:
        if not reference.strip():
            raise ValidationError("Image name is required")
        await self._run(self.client.api.remove_image, reference.strip(), force=force)

    async def prune_images(self, dangling_only: bool = True) -> Tuple[int, int]:
        result = await self._run(self.client.api.prune_images, filters={"dangling": dangling_only})
        deleted = result.get("ImagesDeleted") or []
        return len(deleted), result.get("SpaceReclaimed", 0)
