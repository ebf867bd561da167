import discord
from discord.ext import commands

from pangolin_guardian import branding
from pangolin_guardian.access import ADMIN, DEV, check_permissions
from pangolin_guardian.audit import parse_timeframe
from pangolin_guardian.cogs import container_names, stack_container_names
from pangolin_guardian.errors import ValidationError
from pangolin_guardian.restart_policy import RestartPolicy
from pangolin_guardian.status import Health

HEALTH_LABELS = {
    Health.HEALTHY: f"{branding.EMOJIS['healthy']} Running",
    Health.DEGRADED: f"{branding.EMOJIS['warning']} Unhealthy",
    Health.STOPPED: f"{branding.EMOJIS['error']} Stopped",
    Health.MISSING: f"{branding.EMOJIS['unknown']} Not found",
}


def filter_lines(text: str, needle: str) -> str:
    needle = needle.lower()
    return "\n".join(line for line in text.splitlines() if needle in line.lower())


class Stack(commands.Cog):
    autorestart = discord.SlashCommandGroup("autorestart", "Automatic restart of failed containers")

    def __init__(self, bot):
        self.bot = bot

    @discord.slash_command(description="Health overview of the Pangolin stack.")
    async def stackhealth(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()

        statuses = await self.bot.gateway.stack_status(self.bot.settings.stack_containers)
        healthy = sum(1 for status in statuses.values() if status.health is Health.HEALTHY)
        warning = sum(1 for status in statuses.values() if status.health is Health.DEGRADED)
        critical = len(statuses) - healthy - warning

        overall = "success" if critical == 0 and warning == 0 else "danger" if critical else "warning"
        embed = self.bot.embed("🦔 Pangolin Stack Health", overall)
        embed.description = (
            f"{branding.EMOJIS['healthy']} Healthy: **{healthy}** • "
            f"{branding.EMOJIS['warning']} Warning: **{warning}** • "
            f"{branding.EMOJIS['error']} Critical: **{critical}**"
        )
        for name, status in statuses.items():
            embed.add_field(
                name=branding.format_container_name(name),
                value=(
                    f"{HEALTH_LABELS[status.health]}\n"
                    f"Uptime: `{status.uptime}`\n"
                    f"CPU: `{status.cpu_display}`\n"
                    f"Memory: `{status.memory_display}`"
                ),
                inline=True,
            )
        await ctx.respond(embed=embed)

    @discord.slash_command(description="Fetch logs from a Pangolin stack container.")
    async def pangolinlogs(
        self,
        ctx: discord.ApplicationContext,
        container: discord.Option(str, description="Container", autocomplete=discord.utils.basic_autocomplete(stack_container_names)),
        lines: discord.Option(int, description="Number of lines", min_value=1, max_value=1000, required=False) = 50,
        filter: discord.Option(str, description="Only lines containing this text", required=False) = None,
        since: discord.Option(str, description="Timeframe, e.g. 15m or 2h", required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        window = parse_timeframe(since) if since else None
        await ctx.defer()

        logs = await self.bot.gateway.logs(container, tail=lines, since=window)
        if filter:
            logs = filter_lines(logs, filter)
        if not logs.strip():
            await ctx.respond(f"No logs available for `{container}`" + (f" containing `{filter}`." if filter else "."))
            return

        embed = self.bot.embed(f"📜 Logs: {branding.format_container_name(container)}")
        embed.description = f"Last **{lines}** lines" + (f" in the last {since}" if since else "") + (
            f"\n**Filter:** `{filter}`" if filter else ""
        )
        await ctx.respond(embed=embed, file=branding.text_attachment(logs, f"{container}-logs.txt"))

    @autorestart.command(description="Enable automatic restart for a container.")
    async def enable(
        self,
        ctx: discord.ApplicationContext,
        container: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(container_names)),
        max_attempts: discord.Option(int, description="Restarts allowed per day", min_value=1, max_value=20, required=False) = 3,
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        self.bot.restart_policies.enable(container, max_attempts)
        await ctx.respond(f"✅ Auto-restart enabled for `{container}` with max {max_attempts} attempts per day.")

    @autorestart.command(description="Disable automatic restart for a container.")
    async def disable(
        self,
        ctx: discord.ApplicationContext,
        container: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(container_names)),
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        if self.bot.restart_policies.disable(container):
            await ctx.respond(f"✅ Auto-restart disabled for `{container}`.")
        else:
            await ctx.respond(f"⚠️ Auto-restart was never configured for `{container}`.")

    @autorestart.command(description="Show auto-restart settings.")
    async def status(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        entries = self.bot.restart_policies.load_entries()
        if not entries:
            await ctx.respond("No containers are configured for auto-restart.")
            return

        embed = self.bot.embed("🔄 Auto-Restart Configuration")
        for name, entry in entries.items():
            try:
                policy = RestartPolicy.from_dict(entry)
            except ValidationError as exc:
                embed.add_field(name=branding.format_container_name(name), value=f"⚠️ Unreadable entry: `{exc}`", inline=False)
                continue
            value = (
                f"Status: {'✅ Enabled' if policy.enabled else '❌ Disabled'}\n"
                f"Max Attempts: {policy.max_attempts}\n"
                f"Current Attempts: {policy.attempts}"
            )
            if policy.last_attempt:
                value += f"\nLast Attempt: {branding.local_time(self.bot.settings.timezone_offset, policy.last_attempt)}"
            embed.add_field(name=branding.format_container_name(name), value=value, inline=False)
        await ctx.respond(embed=embed)


def setup(bot):
    bot.add_cog(Stack(bot))
