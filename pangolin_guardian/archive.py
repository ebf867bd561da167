"""
Backup and restore of the Pangolin deployment directory.

Archives are plain ``tar.gz`` files named after their UTC creation time, so
sorting by name sorts by age. Only the newest ``max_backups`` are kept.
"""

import asyncio
import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from pangolin_guardian.errors import CommandFailed, NotFound, ValidationError
from pangolin_guardian.status import format_bytes

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "pangolin_backup_"
SAFETY_PREFIX = "pre_restore_"
SUFFIX = ".tar.gz"
MANIFEST = "backup_info.json"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
DEFAULT_ITEMS = ("docker-compose.yml", "config")
MAX_BACKUPS = 10

_NAME_PATTERN = re.compile(rf"{BACKUP_PREFIX}(.+){re.escape(SUFFIX)}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BackupInfo:
    name: str
    timestamp: str
    created: Optional[datetime]
    size: int

    @property
    def size_display(self) -> str:
        return format_bytes(self.size)


@dataclass(frozen=True)
class RestoreResult:
    backup: str
    safety_backup: Optional[str]
    restored: List[str]


class BackupArchiver:
    def __init__(
        self,
        backup_dir: str,
        source_dir: str,
        items: Sequence[str] = DEFAULT_ITEMS,
        max_backups: int = MAX_BACKUPS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.backup_dir = backup_dir
        self.source_dir = source_dir
        self.items = tuple(items)
        self.max_backups = max_backups
        self.clock = clock

    async def _tar(self, *args: str) -> None:
        logger.debug("Running tar %s", " ".join(args))
        process = await asyncio.create_subprocess_exec(
            "tar", *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise CommandFailed(
                f"tar failed: {message or 'exit code ' + str(process.returncode)}",
                stdout=stdout.decode("utf-8", errors="replace"),
                stderr=message,
                exit_code=process.returncode,
            )

    def _present_items(self) -> List[str]:
        if not os.path.isdir(self.source_dir):
            raise NotFound(f"Pangolin root directory not found at {self.source_dir}")
        return [item for item in self.items if os.path.exists(os.path.join(self.source_dir, item))]

    def _path(self, name: str) -> str:
        if not name or os.sep in name or "/" in name or name in (".", ".."):
            raise ValidationError(f"Invalid backup name: {name!r}")
        path = os.path.join(self.backup_dir, name)
        if not os.path.isfile(path):
            raise NotFound(f"Backup {name} not found")
        return path

    def _timestamp(self) -> str:
        return self.clock().strftime(TIMESTAMP_FORMAT)

    async def create_backup(self, containers: Optional[List[dict]] = None) -> str:
        """Archive the tracked items and return the new backup's file name."""
        os.makedirs(self.backup_dir, exist_ok=True)
        present = self._present_items()
        if not present:
            raise NotFound(f"None of {', '.join(self.items)} exist in {self.source_dir}")

        timestamp = self._timestamp()
        name = f"{BACKUP_PREFIX}{timestamp}{SUFFIX}"
        destination = os.path.join(self.backup_dir, name)
        if os.path.exists(destination):
            raise ValidationError(f"Backup {name} already exists, try again in a moment")
        manifest = {
            "timestamp": timestamp,
            "createdAt": self.clock().isoformat(),
            "items": present,
            "sourceDir": self.source_dir,
            "containers": containers or [],
        }

        logger.info("📦 Creating backup %s from %s", name, self.source_dir)
        with tempfile.TemporaryDirectory(prefix="pangolin_backup_") as staging:
            with open(os.path.join(staging, MANIFEST), "w") as manifest_file:
                json.dump(manifest, manifest_file, indent=2)
            await self._tar(
                "-czf", destination,
                "-C", self.source_dir, *present,
                "-C", staging, MANIFEST,
            )

        self.prune()
        return name

    def list_backups(self) -> List[str]:
        """Backup names, newest first."""
        if not os.path.isdir(self.backup_dir):
            return []
        names = [
            name for name in os.listdir(self.backup_dir)
            if name.startswith(BACKUP_PREFIX) and name.endswith(SUFFIX)
        ]
        return sorted(names, reverse=True)

    def prune(self) -> List[str]:
        removed = []
        for name in self.list_backups()[self.max_backups:]:
            os.remove(os.path.join(self.backup_dir, name))
            logger.info("🗑️ Deleted old backup: %s", name)
            removed.append(name)
        return removed

    def backup_info(self, name: str) -> BackupInfo:
        path = self._path(name)
        match = _NAME_PATTERN.fullmatch(name)
        timestamp = match.group(1) if match else "Unknown"
        try:
            created = datetime.strptime(timestamp, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            created = None
        return BackupInfo(name=name, timestamp=timestamp, created=created, size=os.path.getsize(path))

    def delete_backup(self, name: str) -> None:
        os.remove(self._path(name))
        logger.info("🗑️ Deleted backup: %s", name)

    async def restore_backup(self, name: str) -> RestoreResult:
        """Replace the tracked items with the ones stored in ``name``.

        The current state is archived as ``pre_restore_<timestamp>.tar.gz``
        first so a bad restore can be undone by hand.
        """
        path = self._path(name)
        present = self._present_items()

        safety = None
        if present:
            safety = f"{SAFETY_PREFIX}{self._timestamp()}{SUFFIX}"
            logger.info("Creating pre-restore backup %s", safety)
            await self._tar("-czf", os.path.join(self.backup_dir, safety), "-C", self.source_dir, *present)

        restored = []
        workdir = tempfile.mkdtemp(prefix="pangolin_restore_")
        try:
            await self._tar("-xzf", path, "-C", workdir)
            for item in self.items:
                extracted = os.path.join(workdir, item)
                if not os.path.exists(extracted):
                    continue
                target = os.path.join(self.source_dir, item)
                await asyncio.to_thread(_replace, extracted, target)
                restored.append(item)
                logger.info("Restored %s", target)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        return RestoreResult(backup=name, safety_backup=safety, restored=restored)


def _replace(source: str, target: str) -> None:
    if os.path.isdir(target) and not os.path.islink(target):
        shutil.rmtree(target)
    elif os.path.lexists(target):
        os.remove(target)
    if os.path.isdir(source):
        shutil.copytree(source, target, symlinks=True)
    else:
        shutil.copy2(source, target)
