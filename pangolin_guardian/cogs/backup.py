import logging

import discord
from discord.ext import commands

from pangolin_guardian import branding
from pangolin_guardian.access import ADMIN, DEV, check_permissions
from pangolin_guardian.cogs import backup_names
from pangolin_guardian.confirm import ConfirmState, ask
from pangolin_guardian.errors import GuardianError

logger = logging.getLogger(__name__)


class Backup(commands.Cog):
    backup = discord.SlashCommandGroup("backup", "Back up the Pangolin configuration")
    restorebackup = discord.SlashCommandGroup("restorebackup", "Restore the Pangolin configuration from a backup")

    def __init__(self, bot):
        self.bot = bot

    async def _running_containers(self):
        try:
            containers = await self.bot.gateway.list_containers()
        except GuardianError as exc:
            logger.warning("⚠️ Backing up without a container snapshot: %s", exc)
            return []
        return [
            {"name": container.name, "image": container.image, "status": container.status}
            for container in containers
            if container.running
        ]

    async def _send_list(self, ctx, title: str):
        backups = self.bot.archiver.list_backups()
        embed = self.bot.embed(title)
        if not backups:
            embed.description = "No backups found."
        else:
            embed.description = "\n".join(f"`{name}`" for name in backups)
            embed.set_footer(text=f"{len(backups)} of max {self.bot.archiver.max_backups} backups kept")
        await ctx.respond(embed=embed)

    @backup.command(description="Create a backup of docker-compose.yml and the config directory.")
    async def create(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        await ctx.defer()
        name = await self.bot.archiver.create_backup(await self._running_containers())
        info = self.bot.archiver.backup_info(name)

        embed = self.bot.embed("📦 Backup Created", "success")
        embed.add_field(name="Name", value=f"`{name}`", inline=False)
        embed.add_field(name="Size", value=f"`{info.size_display}`")
        embed.add_field(name="Location", value=f"`{self.bot.archiver.backup_dir}`")
        await ctx.respond(embed=embed)

    @backup.command(name="list", description="List available backups.")
    async def list_backups(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await self._send_list(ctx, "📦 Available Backups")

    @backup.command(description="Show details of a backup.")
    async def info(
        self,
        ctx: discord.ApplicationContext,
        backup: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(backup_names)),
    ):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        info = self.bot.archiver.backup_info(backup)
        embed = self.bot.embed("📦 Backup Details")
        embed.add_field(name="Name", value=f"`{info.name}`", inline=False)
        embed.add_field(
            name="Created",
            value=f"`{branding.local_time(self.bot.settings.timezone_offset, info.created)}`" if info.created else "`Unknown`",
        )
        embed.add_field(name="Size", value=f"`{info.size_display}`")
        await ctx.respond(embed=embed)

    @backup.command(description="Delete a backup.")
    async def delete(
        self,
        ctx: discord.ApplicationContext,
        backup: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(backup_names)),
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        self.bot.archiver.delete_backup(backup)
        await ctx.respond(f"🗑️ Backup `{backup}` deleted.")

    @restorebackup.command(name="list", description="List backups that can be restored.")
    async def list_restorable(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await self._send_list(ctx, "♻️ Restorable Backups")

    @restorebackup.command(description="Restore the configuration from a backup.")
    async def restore(
        self,
        ctx: discord.ApplicationContext,
        backup: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(backup_names)),
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        info = self.bot.archiver.backup_info(backup)
        await ctx.defer()

        prompt = self.bot.embed(f"{branding.EMOJIS['warning']} Confirm Restore", "warning")
        prompt.description = (
            f"**Restore `{info.name}`?**\n\n"
            f"1. The current configuration is saved as a pre-restore backup first\n"
            f"2. `{', '.join(self.bot.archiver.items)}` in `{self.bot.archiver.source_dir}` will be replaced\n"
            f"3. You may need to restart containers after restore"
        )
        state = await ask(ctx, prompt)
        if state is ConfirmState.CANCELLED:
            await ctx.respond("✅ Restore cancelled.")
            return
        if state is ConfirmState.TIMED_OUT:
            await ctx.respond("⌛ Confirmation timed out, nothing was restored.")
            return

        result = await self.bot.archiver.restore_backup(backup)
        embed = self.bot.embed("♻️ Backup Restored", "success")
        embed.add_field(name="Restored", value="\n".join(f"`{item}`" for item in result.restored) or "Nothing", inline=False)
        if result.safety_backup:
            embed.add_field(name="Pre-restore backup", value=f"`{result.safety_backup}`", inline=False)
        embed.add_field(
            name="Next step",
            value="You may need to restart your containers with:\n```docker compose down && docker compose up -d```",
            inline=False,
        )
        await ctx.respond(embed=embed)


def setup(bot):
    bot.add_cog(Backup(bot))
