"""JSON-lines audit trail of commands and role changes."""

import json
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pangolin_guardian.errors import ValidationError

logger = logging.getLogger(__name__)

TIMEFRAME_PATTERN = re.compile(r"(\d+)(mon|m|h|d)")
_UNITS = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "mon": timedelta(days=30),
}


def parse_timeframe(timeframe: str) -> timedelta:
    """``15m``, ``2h``, ``1d`` or ``1mon`` (30 days) as a timedelta."""
    match = TIMEFRAME_PATTERN.fullmatch((timeframe or "").strip().lower())
    if not match:
        raise ValidationError(
            "Invalid timeframe format. Use 'm' for minutes, 'h' for hours, 'd' for days, "
            "or 'mon' for months (e.g., '15m', '2h', '1d', '1mon')."
        )
    return int(match.group(1)) * _UNITS[match.group(2)]


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AuditLog:
    def __init__(self, command_file: str, role_file: str):
        self.command_file = command_file
        self.role_file = role_file

    def _append(self, path: str, entry: Dict[str, Any]):
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "a") as log_file:
                log_file.write(json.dumps(entry) + "\n")
        except OSError as exc:
            logger.error("Error writing to audit log %s: %s", path, exc)

    def _read(self, path: str) -> List[Dict[str, Any]]:
        entries = []
        try:
            with open(path, "r") as log_file:
                for line in log_file:
                    if not line.strip():
                        continue
                    try:
                        entries.append(json.loads(line))
                    except json.JSONDecodeError:
                        logger.debug("Skipping malformed audit line in %s", path)
        except FileNotFoundError:
            pass
        return entries

    def log_command(self, user_id: int, username: str, command: str, args: Optional[Dict[str, Any]] = None):
        self._append(self.command_file, {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user_id": user_id,
            "username": username,
            "command": command,
            "args": args or {},
        })

    def log_role_change(self, action: str, role: str, user_id: int, admin_id: int):
        self._append(self.role_file, {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "role": role,
            "user_id": user_id,
            "admin_id": admin_id,
        })

    def commands_since(self, window: timedelta, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        cutoff = (now or datetime.now(timezone.utc)) - window
        recent = []
        for entry in self._read(self.command_file):
            try:
                if _parse_time(entry["timestamp"]) >= cutoff:
                    recent.append(entry)
            except (KeyError, TypeError, ValueError):
                continue
        return recent

    def role_changes(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent role changes, newest first."""
        return list(reversed(self._read(self.role_file)))[:limit]
