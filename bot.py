import asyncio
import logging
import sys

from dotenv import load_dotenv

from pangolin_guardian.access import AccessControl
from pangolin_guardian.archive import BackupArchiver
from pangolin_guardian.audit import AuditLog
from pangolin_guardian.client import GuardianBot
from pangolin_guardian.errors import GuardianError
from pangolin_guardian.gateway import ContainerGateway
from pangolin_guardian.health_server import start_health_server
from pangolin_guardian.metrics import HostMetricsSampler
from pangolin_guardian.restart_policy import RestartPolicyStore
from pangolin_guardian.settings import Settings, configure_logging

logger = logging.getLogger("pangolin_guardian")


def build_bot(settings: Settings) -> GuardianBot:
    bot = GuardianBot(
        settings,
        gateway=ContainerGateway.from_env(stats_timeout=settings.stats_timeout),
        archiver=BackupArchiver(settings.backup_dir, settings.pangolin_root_dir),
        sampler=HostMetricsSampler(),
        restart_policies=RestartPolicyStore(settings.auto_restart_config),
        access=AccessControl(settings.config_path),
        audit=AuditLog(settings.audit_log_file, settings.role_audit_file),
    )
    bot.load_commands()
    return bot


async def run(settings: Settings):
    runner = await start_health_server(settings.health_port)
    bot = build_bot(settings)
    try:
        await bot.start(settings.token)
    finally:
        if not bot.is_closed():
            await bot.close()
        await runner.cleanup()


def main():
    load_dotenv()
    try:
        settings = Settings.load()
    except GuardianError as exc:
        configure_logging()
        logger.error("❌ Invalid configuration: %s", exc)
        sys.exit(1)

    configure_logging(settings.log_level)
    logger.info("Starting Pangolin Discord bot")
    try:
        asyncio.run(run(settings))
    except GuardianError as exc:
        logger.error("❌ %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
