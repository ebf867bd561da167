"""
Image update checks.

A container is up to date when the digest its registry serves for the
image tag is one of the local image's RepoDigests. Nothing is pulled.
Containers named in the exclusion file (one name per line) are skipped.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from pangolin_guardian.errors import GuardianError, ValidationError
from pangolin_guardian.gateway import ContainerGateway, ContainerRef

logger = logging.getLogger(__name__)


class ExclusionList:
    def __init__(self, path: str):
        self.path = path

    def names(self) -> List[str]:
        try:
            with open(self.path, "r") as exclude_file:
                lines = exclude_file.read().splitlines()
        except FileNotFoundError:
            return []
        names = []
        for line in lines:
            name = line.strip()
            if name and name not in names:
                names.append(name)
        return names

    def _write(self, names: List[str]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".excluded-", suffix=".txt")
        try:
            with os.fdopen(fd, "w") as tmp_file:
                tmp_file.write("\n".join(names) + ("\n" if names else ""))
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def add(self, names: Iterable[str]) -> List[str]:
        """Returns the names that were not excluded before."""
        current = self.names()
        added = []
        for name in names:
            name = name.strip().lstrip("/")
            if not name:
                raise ValidationError("Container name is required")
            if name not in current:
                current.append(name)
                added.append(name)
        if added:
            self._write(current)
            logger.info("Excluded from update checks: %s", ", ".join(added))
        return added

    def remove(self, name: str) -> bool:
        current = self.names()
        name = name.strip().lstrip("/")
        if name not in current:
            return False
        current.remove(name)
        self._write(current)
        logger.info("%s is included in update checks again", name)
        return True

    def clear(self) -> int:
        count = len(self.names())
        if count:
            self._write([])
            logger.info("Cleared %d update check exclusions", count)
        return count


class UpdateState(Enum):
    CURRENT = "current"
    UPDATE_AVAILABLE = "update_available"
    EXCLUDED = "excluded"
    ERROR = "error"


@dataclass
class UpdateResult:
    name: str
    image: str
    state: UpdateState
    detail: Optional[str] = None
    newly_excluded: bool = False


class UpdateChecker:
    def __init__(self, gateway: ContainerGateway, exclusions: ExclusionList):
        self.gateway = gateway
        self.exclusions = exclusions

    async def _check(self, ref: ContainerRef) -> UpdateResult:
        if not ref.image or ref.image.startswith("sha256:"):
            return UpdateResult(ref.name, ref.image, UpdateState.ERROR, "Image has no tag to compare against")
        try:
            local = await self.gateway.local_digests(ref.image)
            if not local:
                return UpdateResult(ref.name, ref.image, UpdateState.ERROR, "Image has no registry digest (built locally?)")
            remote = await self.gateway.registry_digest(ref.image)
        except GuardianError as exc:
            logger.warning("⚠️ Update check for %s failed: %s", ref.name, exc)
            return UpdateResult(ref.name, ref.image, UpdateState.ERROR, str(exc))
        if remote in local:
            return UpdateResult(ref.name, ref.image, UpdateState.CURRENT)
        return UpdateResult(ref.name, ref.image, UpdateState.UPDATE_AVAILABLE, remote)

    async def check(self, exclude_failed: bool = False) -> List[UpdateResult]:
        """Check every container; with ``exclude_failed`` the ones that error are excluded from now on."""
        excluded = set(self.exclusions.names())
        results = []
        for ref in await self.gateway.list_containers():
            if ref.name in excluded:
                results.append(UpdateResult(ref.name, ref.image, UpdateState.EXCLUDED))
                continue
            results.append(await self._check(ref))

        if exclude_failed:
            failed = [result for result in results if result.state is UpdateState.ERROR]
            added = set(self.exclusions.add(result.name for result in failed))
            for result in failed:
                result.newly_excluded = result.name in added
        return results
