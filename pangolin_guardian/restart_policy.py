"""
Per-container auto-restart settings, stored as JSON::

    {"containers": {"pangolin": {"enabled": true, "maxAttempts": 3,
                                 "attempts": 1, "lastAttemptDate": "..."}}}

The attempt counter is per calendar day (UTC). It is never reset by a timer;
recording an attempt on a new day starts the count again from zero.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from pangolin_guardian.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class RestartPolicy:
    enabled: bool = True
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    attempts: int = 0
    last_attempt: Optional[datetime] = None

    @property
    def last_attempt_date(self) -> Optional[date]:
        return self.last_attempt.date() if self.last_attempt else None

    def attempts_on(self, today: date) -> int:
        return self.attempts if self.last_attempt_date == today else 0

    def exhausted(self, today: date) -> bool:
        return self.attempts_on(today) >= self.max_attempts

    def record_attempt(self, now: datetime) -> int:
        if self.last_attempt_date != now.date():
            self.attempts = 0
        self.attempts += 1
        self.last_attempt = now
        return self.attempts

    @classmethod
    def from_dict(cls, data: dict) -> "RestartPolicy":
        if not isinstance(data, dict):
            raise ValidationError(f"Invalid restart policy entry {data!r}: expected an object")
        last = data.get("lastAttemptDate")
        try:
            last_attempt = datetime.fromisoformat(last.replace("Z", "+00:00")) if last else None
            return cls(
                enabled=bool(data.get("enabled", False)),
                max_attempts=int(data.get("maxAttempts", DEFAULT_MAX_ATTEMPTS)),
                attempts=int(data.get("attempts") or 0),
                last_attempt=last_attempt,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid restart policy entry {data!r}: {exc}") from exc

    def to_dict(self) -> dict:
        data = {"enabled": self.enabled, "maxAttempts": self.max_attempts, "attempts": self.attempts}
        if self.last_attempt:
            data["lastAttemptDate"] = self.last_attempt.isoformat()
        return data


class RestartPolicyStore:
    def __init__(self, path: str):
        self.path = path

    def load_entries(self) -> Dict[str, Any]:
        """The raw ``containers`` mapping, entries left unparsed."""
        try:
            with open(self.path, "r") as config_file:
                data = json.load(config_file)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            raise ValidationError(f"{self.path} is not valid JSON: {exc}") from exc

        containers = data.get("containers") if isinstance(data, dict) else None
        if not isinstance(containers, dict):
            raise ValidationError(f"{self.path} has no 'containers' mapping")
        return containers

    def load(self) -> Dict[str, RestartPolicy]:
        return {name: RestartPolicy.from_dict(entry) for name, entry in self.load_entries().items()}

    def _policy(self, entries: Dict[str, Any], name: str) -> Optional[RestartPolicy]:
        if name not in entries:
            return None
        try:
            return RestartPolicy.from_dict(entries[name])
        except ValidationError as exc:
            logger.warning("Replacing unreadable auto-restart entry for %s: %s", name, exc)
            return RestartPolicy(enabled=False)

    def put(self, name: str, policy: RestartPolicy) -> None:
        """Write one entry, leaving the others exactly as they are on disk."""
        entries = self.load_entries()
        entries[name] = policy.to_dict()
        self._write(entries)

    def save(self, policies: Dict[str, RestartPolicy]) -> None:
        self._write({name: policy.to_dict() for name, policy in policies.items()})

    def _write(self, entries: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        document = {"containers": entries}
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".autorestart-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as tmp_file:
                json.dump(document, tmp_file, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def enable(self, name: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> RestartPolicy:
        if max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1")
        policy = self._policy(self.load_entries(), name) or RestartPolicy()
        policy.enabled = True
        policy.max_attempts = max_attempts
        self.put(name, policy)
        logger.info("Auto-restart enabled for %s (max %d/day)", name, max_attempts)
        return policy

    def disable(self, name: str) -> bool:
        """Returns False when ``name`` was never configured."""
        policy = self._policy(self.load_entries(), name)
        if policy is None:
            return False
        policy.enabled = False
        self.put(name, policy)
        logger.info("Auto-restart disabled for %s", name)
        return True


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
