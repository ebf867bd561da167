import io
from datetime import datetime, timedelta, timezone
from typing import Optional

import discord

COLORS = {
    "primary": 0x5865F2,
    "success": 0x00D166,
    "warning": 0xFFA500,
    "danger": 0xED4245,
    "info": 0x3498DB,
    "crowdsec": 0x5865F2,
}

EMOJIS = {
    "healthy": "✅",
    "warning": "⚠️",
    "error": "❌",
    "unknown": "❓",
    "loading": "🔄",
    "secured": "🔒",
    "alert": "🚨",
    "crowdsec": "🛡️",
    "traefik": "🌐",
    "pangolin": "🦔",
    "gerbil": "🐹",
}

CONTAINER_EMOJIS = {
    "pangolin": "🦔",
    "gerbil": "🐹",
    "traefik": "🌐",
    "crowdsec": "🛡️",
}

FOOTER = "Pangolin Stack Monitor"
DISCORD_FIELD_LIMIT = 1024


def format_container_name(name: str) -> str:
    return f"{CONTAINER_EMOJIS.get(name.lower(), '📦')} {name}"


def local_time(offset_hours: float = 0.0, now: Optional[datetime] = None) -> str:
    local_timezone = timezone(timedelta(hours=offset_hours))
    now = now or datetime.now(timezone.utc)
    return now.astimezone(local_timezone).strftime("%I:%M %p - %d/%m/%Y")


def header_embed(title: str, status: str = "info", offset_hours: float = 0.0) -> discord.Embed:
    embed = discord.Embed(title=title, color=COLORS.get(status, COLORS["primary"]))
    embed.set_footer(text=f"{FOOTER} • {local_time(offset_hours)}")
    return embed


def error_embed(title: str, error, offset_hours: float = 0.0) -> discord.Embed:
    embed = header_embed(f"{EMOJIS['error']} {title}", "danger", offset_hours)
    embed.description = f"```{truncate(str(error), 4000)}```"
    return embed


def status_emoji(percent: Optional[float]) -> str:
    if percent is None:
        return EMOJIS["unknown"]
    if percent < 70:
        return EMOJIS["healthy"]
    if percent < 90:
        return EMOJIS["warning"]
    return EMOJIS["error"]


def usage_bar(percent: Optional[float], cells: int = 10) -> str:
    percent = max(0.0, min(100.0, percent or 0.0))
    filled = round(percent / 100 * cells)
    return "█" * filled + "░" * (cells - filled)


def truncate(text: str, limit: int = DISCORD_FIELD_LIMIT - 8) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def text_attachment(text: str, filename: str) -> discord.File:
    return discord.File(io.BytesIO(text.encode("utf-8")), filename=filename)
