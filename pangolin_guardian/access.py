"""Admin/dev roles kept in config/config.json and re-read on every check."""

import json
import logging
import os
from typing import List, Optional, Tuple

from pangolin_guardian.errors import ValidationError
from pangolin_guardian.settings import read_config

logger = logging.getLogger(__name__)

ADMIN = "admin"
DEV = "dev"
ROLES = (DEV, ADMIN)
_ROLE_KEYS = {ADMIN: "admins", DEV: "devs"}


class AccessControl:
    def __init__(self, config_path: str):
        self.config_path = config_path

    def members(self) -> Tuple[List[int], List[int]]:
        config = read_config(self.config_path)
        return list(config.get("admins") or []), list(config.get("devs") or [])

    def role_of(self, user_id: int) -> Optional[str]:
        admins, devs = self.members()
        if user_id in admins:
            return ADMIN
        if user_id in devs:
            return DEV
        return None

    def allowed(self, user_id: int, required_role: str = DEV) -> Optional[str]:
        """Admins may do anything; devs only what needs ``dev``."""
        role = self.role_of(user_id)
        if role == ADMIN:
            return ADMIN
        if required_role == DEV and role == DEV:
            return DEV
        return None

    def _update(self, role: str, user_id: int, add: bool) -> bool:
        if role not in ROLES:
            raise ValidationError(f"Unknown role {role!r}")
        config = read_config(self.config_path)
        members = list(config.get(_ROLE_KEYS[role]) or [])
        if add == (user_id in members):
            return False
        if add:
            members.append(user_id)
        else:
            members.remove(user_id)
        config[_ROLE_KEYS[role]] = members
        os.makedirs(os.path.dirname(self.config_path) or ".", exist_ok=True)
        with open(self.config_path, "w") as config_file:
            json.dump(config, config_file, indent=4)
        logger.info("%s %s %s", "Added" if add else "Removed", user_id, role)
        return True

    def add(self, role: str, user_id: int) -> bool:
        """False when the user already had the role."""
        return self._update(role, user_id, add=True)

    def remove(self, role: str, user_id: int) -> bool:
        """False when the user did not have the role."""
        return self._update(role, user_id, add=False)


async def check_permissions(ctx, access: AccessControl, required_role: str = DEV) -> Optional[str]:
    """Check if the user has the required role, telling them when they do not."""
    role = access.allowed(ctx.author.id, required_role)
    if role is None:
        await ctx.respond("❌ You do not have permission to use this command.", ephemeral=True)
    return role
