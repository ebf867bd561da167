from datetime import datetime, timezone

import discord
from discord.ext import commands

from pangolin_guardian import branding
from pangolin_guardian.access import ADMIN, DEV, check_permissions
from pangolin_guardian.audit import parse_timeframe
from pangolin_guardian.metrics import process_rss
from pangolin_guardian.status import format_bytes


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    parts = [f"{value}{unit}" for value, unit in ((days, "d"), (hours, "h"), (minutes, "m")) if value]
    parts.append(f"{seconds}s")
    return " ".join(parts)


class General(commands.Cog):
    roles = discord.SlashCommandGroup("roles", "View and manage Admins and Devs")
    audit = discord.SlashCommandGroup("audit", "Review what was run through the bot")

    def __init__(self, bot):
        self.bot = bot

    @discord.slash_command(description="Check the bot's latency and resource usage.")
    async def ping(self, ctx: discord.ApplicationContext):
        uptime = (datetime.now(timezone.utc) - self.bot.started_at).total_seconds()
        embed = self.bot.embed("🏓 Pong!", "success")
        embed.add_field(name="Gateway Latency", value=f"`{round(self.bot.latency * 1000)} ms`")
        embed.add_field(name="Memory", value=f"`{format_bytes(process_rss())}`")
        embed.add_field(name="Uptime", value=f"`{format_duration(uptime)}`")
        await ctx.respond(embed=embed)

    @roles.command(name="list", description="View current Admins and Devs.")
    async def list_roles(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        admins, devs = self.bot.access.members()
        embed = self.bot.embed("🔹 User Roles")
        embed.add_field(name="👑 Admins", value=", ".join(f"<@{id}>" for id in admins) or "None", inline=False)
        embed.add_field(name="🛠 Devs", value=", ".join(f"<@{id}>" for id in devs) or "None", inline=False)
        await ctx.respond(embed=embed)

    @roles.command(description="Add a user as an Admin or Dev (Admins only).")
    async def add(self, ctx: discord.ApplicationContext,
                  role: discord.Option(str, choices=["dev", "admin"]),
                  user: discord.Member):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        if not self.bot.access.add(role, user.id):
            await ctx.respond(f"✅ `{user.name}` is already a {role}.")
            return
        self.bot.audit.log_role_change("add", role, user.id, ctx.author.id)
        await ctx.respond(f"✅ `{user.name}` has been added as a {role}.")

    @roles.command(description="Remove a user from Admin or Dev role (Admins only).")
    async def remove(self, ctx: discord.ApplicationContext,
                     role: discord.Option(str, choices=["dev", "admin"]),
                     user: discord.Member):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        if not self.bot.access.remove(role, user.id):
            await ctx.respond(f"⚠️ `{user.name}` is not a {role}.")
            return
        self.bot.audit.log_role_change("remove", role, user.id, ctx.author.id)
        await ctx.respond(f"✅ `{user.name}` has been removed from {role}.")

    @audit.command(name="commands", description="Audit command executions within a timeframe.")
    async def command_log(self, ctx: discord.ApplicationContext,
                          timeframe: discord.Option(str, description="e.g. 10m, 2h, 1d or 1mon")):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        entries = self.bot.audit.commands_since(parse_timeframe(timeframe))
        if not entries:
            await ctx.respond(f"No commands executed in the last {timeframe}.")
            return

        lines = [
            f"**{entry['username']}** (`{entry['user_id']}`) ran `/{entry['command']}` "
            f"with `{entry.get('args', {})}` at `{entry['timestamp']}`"
            for entry in entries
        ]
        embed = self.bot.embed(f"📜 Audit Log (Last {timeframe})")
        embed.description = branding.truncate("\n".join(lines), 4000)
        if len(entries) > 20:
            await ctx.respond(embed=embed, file=branding.text_attachment("\n".join(lines), "audit-log.txt"))
        else:
            await ctx.respond(embed=embed)

    @audit.command(name="roles", description="View the role change audit log.")
    async def role_changes(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        changes = self.bot.audit.role_changes(limit=10)
        if not changes:
            await ctx.respond("📜 No role changes recorded yet.")
            return
        await ctx.respond("\n".join(
            f"📌 **{change['action'].capitalize()} {change['role']}** | <@{change['user_id']}> "
            f"by <@{change['admin_id']}> at `{change['timestamp']}`"
            for change in changes
        ))


def setup(bot):
    bot.add_cog(General(bot))
