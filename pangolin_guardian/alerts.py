import logging
from typing import Optional

import discord

from pangolin_guardian import branding

logger = logging.getLogger(__name__)

ALERT_TITLE = "Pangolin Auto-Healing Alert"


class ChannelAlertSink:
    """Posts monitor alerts to one channel. Failures are logged, never raised."""

    def __init__(self, bot: discord.Client, channel_id: Optional[int], offset_hours: float = 0.0):
        self.bot = bot
        self.channel_id = channel_id
        self.offset_hours = offset_hours

    async def _channel(self):
        channel = self.bot.get_channel(self.channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(self.channel_id)
        return channel

    async def send(self, message: str, status: str = "warning", title: str = ALERT_TITLE) -> bool:
        if not self.channel_id:
            logger.warning("⚠️ Alert channel not configured, dropping alert: %s", message)
            return False
        embed = branding.header_embed(f"{branding.EMOJIS['alert']} {title}", status, self.offset_hours)
        embed.description = message
        try:
            channel = await self._channel()
            await channel.send(embed=embed)
        except (discord.DiscordException, OSError) as exc:
            logger.error("❌ Error sending alert to %s: %s", self.channel_id, exc)
            return False
        return True
