import asyncio
from typing import List, Optional

import discord
from discord.ext import commands

from pangolin_guardian import branding, cscli
from pangolin_guardian.access import ADMIN, DEV, check_permissions
from pangolin_guardian.confirm import ConfirmState, ask
from pangolin_guardian.errors import NotRunning
from pangolin_guardian.gateway import ExecResult

SERVICE_RESTART = ["service", "crowdsec", "restart"]
RESTART_GRACE = 5
READ_ONLY_ACTIONS = ("list", "inspect")


class CrowdSec(commands.Cog):
    crowdsec = discord.SlashCommandGroup("crowdsec", "CrowdSec security engine")
    decisions = discord.SlashCommandGroup("crowdsec-decisions", "Manage CrowdSec decisions")
    alerts = discord.SlashCommandGroup("crowdsec-alerts", "Review CrowdSec alerts")

    def __init__(self, bot):
        self.bot = bot

    @property
    def container(self) -> str:
        return self.bot.settings.crowdsec_container

    async def _ensure_running(self):
        status = await self.bot.gateway.get_status(self.container)
        if not status.running:
            raise NotRunning(f"CrowdSec container `{self.container}` is not running.")
        return status

    async def run(self, argv: List[str]) -> ExecResult:
        await self._ensure_running()
        result = await self.bot.gateway.exec_in_container(self.container, argv)
        return result.check()

    async def reply(self, ctx, title: str, argv: List[str], filename: str,
                    description: Optional[str] = None, status: str = "crowdsec"):
        result = await self.run(argv)
        embed = self.bot.embed(f"{branding.EMOJIS['crowdsec']} {title}", status)
        embed.description = description or f"`{' '.join(argv)}`"
        if result.exit_code:
            embed.add_field(name="Exit Code", value=f"`{result.exit_code}`")
        await ctx.respond(embed=embed, file=branding.text_attachment(result.output or "No output returned.", filename))

    # /crowdsec

    @crowdsec.command(description="CrowdSec engine status and decision summary.")
    async def status(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        container = await self._ensure_running()
        gateway = self.bot.gateway

        decisions = (await gateway.exec_in_container(self.container, cscli.decisions_list(output="json"))).check()
        bouncers = (await gateway.exec_in_container(self.container, cscli.bouncers("list") + ["-o", "json"])).check()
        counts = cscli.summarize_decisions(decisions.stdout)

        embed = self.bot.embed(f"{branding.EMOJIS['crowdsec']} CrowdSec Status", "success")
        embed.add_field(name="Container", value=f"{branding.EMOJIS['healthy']} Running\nUptime: `{container.uptime}`")
        embed.add_field(name="Resources", value=f"CPU: `{container.cpu_display}`\nMemory: `{container.memory_display}`")
        embed.add_field(
            name="Active Decisions",
            value="\n".join(f"{kind}: **{count}**" for kind, count in sorted(counts.items())) or "None",
            inline=False,
        )
        embed.add_field(name="Bouncers", value=f"**{cscli.count_json_items(bouncers.stdout)}** registered")
        await ctx.respond(embed=embed)

    @crowdsec.command(description="Full cscli metrics output.")
    async def metrics(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        await self.reply(ctx, "CrowdSec Metrics", cscli.metrics(), "crowdsec-metrics.txt")

    @crowdsec.command(description="Central API connection status.")
    async def capi(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        await self.reply(ctx, "CrowdSec Central API", cscli.capi_status(), "crowdsec-capi.txt")

    @crowdsec.command(description="Explain how CrowdSec parses a log line.")
    async def explain(
        self,
        ctx: discord.ApplicationContext,
        log: discord.Option(str, description="Log line to analyse"),
        type: discord.Option(str, description="Log type, e.g. nginx or traefik"),
    ):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        await self.reply(ctx, "CrowdSec Explain", cscli.explain(log, type), "crowdsec-explain.txt")

    @crowdsec.command(description="Restart the CrowdSec service.")
    async def restart(
        self,
        ctx: discord.ApplicationContext,
        force: discord.Option(bool, description="Restart without confirmation", required=False) = False,
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        await ctx.defer()

        if not force:
            prompt = self.bot.embed(f"{branding.EMOJIS['warning']} Restart CrowdSec", "warning")
            prompt.description = (
                "**Are you sure you want to restart the CrowdSec service?**\n\n"
                "Decisions will not be enforced while it restarts."
            )
            state = await ask(ctx, prompt)
            if state is not ConfirmState.CONFIRMED:
                await ctx.respond("✅ CrowdSec restart cancelled." if state is ConfirmState.CANCELLED
                                  else "⌛ Confirmation timed out, CrowdSec was not restarted.")
                return

        method = await self.bot.gateway.restart(self.container, service_command=SERVICE_RESTART)
        await asyncio.sleep(RESTART_GRACE)
        status = await self.bot.gateway.get_status(self.container)

        embed = self.bot.embed(
            f"{branding.EMOJIS['loading']} CrowdSec Restarted",
            "success" if status.running else "danger",
        )
        embed.description = f"Restarted via {method.value} restart."
        embed.add_field(name="State", value=f"`{status.status or status.state}`")
        await ctx.respond(embed=embed)

    # /crowdsec-decisions

    @decisions.command(name="list", description="List active decisions.")
    async def list_decisions(
        self,
        ctx: discord.ApplicationContext,
        ip: discord.Option(str, required=False) = None,
        range: discord.Option(str, description="CIDR range", required=False) = None,
        scenario: discord.Option(str, required=False) = None,
        type: discord.Option(str, choices=list(cscli.DECISION_TYPES), required=False) = None,
        scope: discord.Option(str, required=False) = None,
        value: discord.Option(str, required=False) = None,
        all: discord.Option(bool, description="Include decisions from the Central API", required=False) = False,
        limit: discord.Option(int, min_value=1, required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        argv = cscli.decisions_list(ip=ip, range=range, scenario=scenario, type=type, scope=scope,
                                    value=value, all=all, limit=limit)
        await ctx.defer()
        await self.reply(ctx, "CrowdSec Active Decisions", argv, "crowdsec-decisions.txt")

    @decisions.command(name="add", description="Ban, captcha or whitelist an IP or range.")
    async def add_decision(
        self,
        ctx: discord.ApplicationContext,
        type: discord.Option(str, choices=list(cscli.DECISION_TYPES)),
        value: discord.Option(str, description="IP, range or username"),
        scope: discord.Option(str, choices=list(cscli.DECISION_SCOPES), required=False) = "ip",
        duration: discord.Option(str, description="e.g. 4h, 24h, 7d", required=False) = None,
        reason: discord.Option(str, required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        argv = cscli.decisions_add(type, value, scope=scope, duration=duration, reason=reason)
        await ctx.defer()
        details = (
            f"Type: {type}\nScope: {scope}\nValue: {value}\n"
            f"Duration: {duration or cscli.DEFAULT_DURATION}\nReason: {reason or cscli.DEFAULT_REASON}"
        )
        await self.reply(ctx, "Decision Added", argv, "crowdsec-add-decision.txt", details, "success")

    @decisions.command(name="delete", description="Delete decisions matching a filter.")
    async def delete_decision(
        self,
        ctx: discord.ApplicationContext,
        ip: discord.Option(str, required=False) = None,
        range: discord.Option(str, required=False) = None,
        id: discord.Option(str, description="Decision id", required=False) = None,
        type: discord.Option(str, choices=list(cscli.DECISION_TYPES), required=False) = None,
        scope: discord.Option(str, required=False) = None,
        value: discord.Option(str, required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        argv = cscli.decisions_delete(ip=ip, range=range, id=id, type=type, scope=scope, value=value)
        await ctx.defer()
        await self.reply(ctx, "Decisions Deleted", argv, "crowdsec-delete-decision.txt", status="success")

    # /crowdsec-alerts

    @alerts.command(name="list", description="List recent alerts.")
    async def list_alerts(
        self,
        ctx: discord.ApplicationContext,
        ip: discord.Option(str, required=False) = None,
        scenario: discord.Option(str, required=False) = None,
        since: discord.Option(str, description="e.g. 1h, 24h", required=False) = None,
        limit: discord.Option(int, min_value=1, required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        argv = cscli.alerts_list(ip=ip, scenario=scenario, since=since, limit=limit)
        await ctx.defer()
        await self.reply(ctx, "CrowdSec Alerts", argv, "crowdsec-alerts.txt")

    @alerts.command(name="inspect", description="Show one alert in detail.")
    async def inspect_alert(self, ctx: discord.ApplicationContext, alert_id: discord.Option(str, description="Alert id")):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        argv = cscli.alerts_inspect(alert_id)
        await ctx.defer()
        await self.reply(ctx, f"CrowdSec Alert {alert_id}", argv, f"crowdsec-alert-{alert_id}.txt")

    @alerts.command(name="flush", description="Delete all alerts.")
    async def flush_alerts(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        await ctx.defer()
        await self.reply(ctx, "Alerts Flushed", cscli.alerts_flush(), "crowdsec-alerts-flush.txt", status="success")

    # Single-command groups

    @discord.slash_command(name="crowdsec-bouncers", description="Manage CrowdSec bouncers.")
    async def bouncers(
        self,
        ctx: discord.ApplicationContext,
        action: discord.Option(str, choices=["list", "add", "delete", "prune"]),
        name: discord.Option(str, description="Bouncer name", required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV if action == "list" else ADMIN):
            return
        argv = cscli.bouncers(action, name)
        # `add` prints the new API key
        await ctx.defer(ephemeral=action == "add")
        await self.reply(ctx, f"CrowdSec Bouncers: {action}", argv, "crowdsec-bouncers.txt")

    @discord.slash_command(name="crowdsec-machines", description="Manage CrowdSec machines.")
    async def machines(
        self,
        ctx: discord.ApplicationContext,
        action: discord.Option(str, choices=["list", "add", "delete", "validate", "prune"]),
        name: discord.Option(str, description="Machine name", required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV if action == "list" else ADMIN):
            return
        argv = cscli.machines(action, name)
        await ctx.defer()
        await self.reply(ctx, f"CrowdSec Machines: {action}", argv, "crowdsec-machines.txt")

    @discord.slash_command(name="crowdsec-hub", description="List, update or upgrade the CrowdSec hub.")
    async def hub(
        self,
        ctx: discord.ApplicationContext,
        action: discord.Option(str, choices=["list", "update", "upgrade"]),
    ):
        if not await check_permissions(ctx, self.bot.access, DEV if action == "list" else ADMIN):
            return
        await ctx.defer()
        await self.reply(ctx, f"CrowdSec Hub: {action}", cscli.hub(action), f"crowdsec-hub-{action}.txt")

    @discord.slash_command(name="crowdsec-items", description="Manage parsers, scenarios, collections and AppSec items.")
    async def items(
        self,
        ctx: discord.ApplicationContext,
        kind: discord.Option(str, choices=list(cscli.HUB_ITEM_KINDS)),
        action: discord.Option(str, choices=["list", "inspect", "install", "remove", "upgrade"]),
        names: discord.Option(str, description="Item names, comma or space separated", required=False) = None,
        all: discord.Option(bool, description="Apply remove/upgrade to every item", required=False) = False,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV if action in READ_ONLY_ACTIONS else ADMIN):
            return
        argv = cscli.hub_item(kind, action, names, all=all)
        await ctx.defer()
        await self.reply(ctx, f"CrowdSec {kind}: {action}", argv, f"crowdsec-{kind}-{action}.txt")

    @discord.slash_command(name="crowdsec-allowlists", description="Manage CrowdSec allowlists.")
    async def allowlists(
        self,
        ctx: discord.ApplicationContext,
        action: discord.Option(str, choices=["create", "add", "list", "inspect", "remove", "delete"]),
        name: discord.Option(str, description="Allowlist name", required=False) = None,
        values: discord.Option(str, description="IPs or ranges, comma or space separated", required=False) = None,
        description: discord.Option(str, required=False) = None,
        expiration: discord.Option(str, description="e.g. 7d, or never", required=False) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV if action in READ_ONLY_ACTIONS else ADMIN):
            return
        argv = cscli.allowlists(action, name, values=values, description=description, expiration=expiration)
        await ctx.defer()
        await self.reply(ctx, f"CrowdSec Allowlists: {action}", argv, "crowdsec-allowlists.txt")


def setup(bot):
    bot.add_cog(CrowdSec(bot))
