"""Slash command modules. Every module here is a py-cord extension with a ``setup``."""

import logging
import pkgutil
from typing import List

import discord

from pangolin_guardian.errors import GuardianError

logger = logging.getLogger(__name__)


def discover_extensions() -> List[str]:
    return sorted(
        f"{__name__}.{module.name}"
        for module in pkgutil.iter_modules(__path__)
        if not module.name.startswith("_")
    )


async def container_names(ctx: discord.AutocompleteContext) -> List[str]:
    try:
        containers = await ctx.bot.gateway.list_containers()
    except GuardianError as exc:
        logger.warning("Autocomplete could not list containers: %s", exc)
        return []
    return [container.name for container in containers]


async def stack_container_names(ctx: discord.AutocompleteContext) -> List[str]:
    return list(ctx.bot.settings.stack_containers)


async def backup_names(ctx: discord.AutocompleteContext) -> List[str]:
    return ctx.bot.archiver.list_backups()[:25]
