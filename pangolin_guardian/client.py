import logging
from datetime import datetime, timezone
from typing import Optional

import discord

from pangolin_guardian import branding
from pangolin_guardian.access import AccessControl
from pangolin_guardian.alerts import ChannelAlertSink
from pangolin_guardian.archive import BackupArchiver
from pangolin_guardian.audit import AuditLog
from pangolin_guardian.cogs import discover_extensions
from pangolin_guardian.errors import GuardianError, NotRunning, TransportError
from pangolin_guardian.gateway import ContainerGateway
from pangolin_guardian.metrics import HostMetricsSampler
from pangolin_guardian.monitor import HealthMonitor
from pangolin_guardian.restart_policy import RestartPolicyStore
from pangolin_guardian.settings import Settings
from pangolin_guardian.updates import ExclusionList, UpdateChecker

logger = logging.getLogger(__name__)

TRANSPORT_HINT = (
    "Unable to connect to Docker. Check that the Docker socket is mounted "
    "(`/var/run/docker.sock`) and that the bot has permission to use it."
)
PERMISSION_HINT = "The bot lacks permission for this operation. Check file ownership and Docker group membership."
NOT_RUNNING_HINT = "Start the container first, or check `/stackhealth` for its state."

ACTIVITY_TYPES = {
    "listening": discord.ActivityType.listening,
    "watching": discord.ActivityType.watching,
    "competing": discord.ActivityType.competing,
}


def troubleshooting_hint(error: BaseException) -> Optional[str]:
    if isinstance(error, TransportError):
        return TRANSPORT_HINT
    if isinstance(error, PermissionError):
        return PERMISSION_HINT
    if isinstance(error, NotRunning):
        return NOT_RUNNING_HINT
    return None


class GuardianBot(discord.Bot):
    def __init__(
        self,
        settings: Settings,
        gateway: ContainerGateway,
        archiver: BackupArchiver,
        sampler: HostMetricsSampler,
        restart_policies: RestartPolicyStore,
        access: AccessControl,
        audit: AuditLog,
        monitor: Optional[HealthMonitor] = None,
        **options,
    ):
        if settings.guild_id:
            options.setdefault("debug_guilds", [settings.guild_id])
        super().__init__(**options)
        self.settings = settings
        self.gateway = gateway
        self.archiver = archiver
        self.sampler = sampler
        self.restart_policies = restart_policies
        self.access = access
        self.audit = audit
        self.exclusions = ExclusionList(settings.excluded_containers_file)
        self.updates = UpdateChecker(gateway, self.exclusions)
        self.alerts = ChannelAlertSink(self, settings.alert_channel_id, settings.timezone_offset)
        self.monitor = monitor or HealthMonitor(
            gateway,
            restart_policies,
            self.alerts,
            stack_containers=settings.stack_containers,
            cpu_threshold=settings.cpu_alert_threshold,
            interval=settings.monitor_interval,
        )
        self.started_at = datetime.now(timezone.utc)
        self._monitor_task = None

    def load_commands(self):
        for extension in discover_extensions():
            self.load_extension(extension)
            logger.info("Loaded command module: %s", extension.rsplit(".", 1)[-1])

    def embed(self, title: str, status: str = "info") -> discord.Embed:
        return branding.header_embed(title, status, self.settings.timezone_offset)

    def activity(self) -> Optional[discord.BaseActivity]:
        kind = self.settings.status_type
        message = self.settings.status_message
        if kind == "playing":
            return discord.Game(name=message)
        if kind in ACTIVITY_TYPES:
            return discord.Activity(type=ACTIVITY_TYPES[kind], name=message)
        return None

    async def on_connect(self):
        try:
            await self.sync_commands()
        except discord.Forbidden:
            logger.warning(
                "⚠️ Could not sync commands - Missing permissions. Reinvite the bot with the "
                "applications.commands scope: https://discord.com/api/oauth2/authorize?client_id=%s"
                "&permissions=2147483648&scope=bot%%20applications.commands",
                self.user.id if self.user else "<id>",
            )
        except discord.HTTPException as exc:
            logger.error("⚠️ Error syncing commands: %s", exc)

    async def on_ready(self):
        desired_name = self.settings.bot_name
        if desired_name and self.user.name != desired_name:
            try:
                await self.user.edit(username=desired_name)
                logger.info("✅ Changed bot name to %s", desired_name)
            except discord.HTTPException:
                logger.warning("❌ Rate limit reached! Can't change username right now.")

        await self.change_presence(activity=self.activity())
        logger.info("✅ Logged in as %s, monitoring the Pangolin stack", self.user)

        # on_ready fires again after every reconnect
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = self.loop.create_task(self.monitor.run_forever(self.is_closed))

    async def on_application_command(self, ctx: discord.ApplicationContext):
        args = {option["name"]: option.get("value") for option in ctx.selected_options or []}
        self.audit.log_command(ctx.author.id, ctx.author.name, ctx.command.qualified_name, args)

    async def on_application_command_error(self, context: discord.ApplicationContext, exception: discord.DiscordException):
        error = exception.original if isinstance(exception, discord.ApplicationCommandInvokeError) else exception
        command = context.command.qualified_name if context.command else "unknown"

        if isinstance(error, GuardianError):
            logger.warning("Command /%s failed: %s", command, error)
        else:
            logger.error("Unhandled error in /%s", command, exc_info=error)

        embed = branding.error_embed(f"/{command} failed", error, self.settings.timezone_offset)
        hint = troubleshooting_hint(error)
        if hint:
            embed.add_field(name="Troubleshooting", value=hint, inline=False)
        try:
            await context.respond(embed=embed, ephemeral=True)
        except discord.HTTPException as exc:
            logger.error("Could not report error for /%s: %s", command, exc)
