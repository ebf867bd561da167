"""Runtime settings merged from config/config.json and the environment."""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from pangolin_guardian.errors import ValidationError

DEFAULT_CONFIG_PATH = "config/config.json"
DEFAULT_STACK = ("pangolin", "gerbil", "traefik", "crowdsec")
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # py-cord is chatty at INFO
    logging.getLogger("discord").setLevel(logging.WARNING)


def _int(env: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{key} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValidationError(f"{key} must be a number, got {raw!r}") from exc


def read_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    try:
        with open(path, "r") as config_file:
            return json.load(config_file)
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{path} is not valid JSON: {exc}") from exc


@dataclass(frozen=True)
class Settings:
    token: str
    config_path: str = DEFAULT_CONFIG_PATH
    bot_name: Optional[str] = None
    status_type: str = "watching"
    status_message: str = "the Pangolin stack"
    guild_id: Optional[int] = None
    alert_channel_id: Optional[int] = None
    timezone_offset: float = 0.0
    stack_containers: Tuple[str, ...] = DEFAULT_STACK
    crowdsec_container: str = "crowdsec"
    cpu_alert_threshold: float = 80.0
    backup_dir: str = "/app/backups"
    pangolin_root_dir: str = "/root"
    auto_restart_config: str = "data/autoRestart.json"
    audit_log_file: str = "data/audit_log.json"
    role_audit_file: str = "data/role_audit.json"
    excluded_containers_file: str = "data/excluded_containers.txt"
    monitor_interval: float = 300.0
    stats_timeout: float = 3.0
    health_port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_path: str = DEFAULT_CONFIG_PATH, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        token = env.get("DISCORD_TOKEN", "").strip()
        if not token:
            raise ValidationError("DISCORD_TOKEN is not set")

        config = read_config(config_path)
        status = config.get("status") or {}
        stack = config.get("stack_containers") or DEFAULT_STACK
        if isinstance(stack, str) or not all(isinstance(name, str) for name in stack):
            raise ValidationError("stack_containers must be a list of container names")

        try:
            timezone_offset = float(config.get("timezone_offset", 0))
            cpu_alert_threshold = float(config.get("cpu_alert_threshold", 80))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid number in {config_path}: {exc}") from exc

        return cls(
            token=token,
            config_path=config_path,
            bot_name=config.get("bot_name"),
            status_type=status.get("type", "watching"),
            status_message=status.get("message", "the Pangolin stack"),
            guild_id=_int(env, "DISCORD_GUILD_ID", None),
            alert_channel_id=_int(env, "ALERT_CHANNEL_ID", config.get("alert_channel_id")),
            timezone_offset=timezone_offset,
            stack_containers=tuple(stack),
            crowdsec_container=config.get("crowdsec_container", "crowdsec"),
            cpu_alert_threshold=cpu_alert_threshold,
            backup_dir=env.get("BACKUP_DIR", "/app/backups"),
            pangolin_root_dir=env.get("PANGOLIN_ROOT_DIR", "/root"),
            auto_restart_config=env.get("AUTO_RESTART_CONFIG", "data/autoRestart.json"),
            audit_log_file=env.get("AUDIT_LOG_FILE", "data/audit_log.json"),
            role_audit_file=env.get("ROLE_AUDIT_FILE", "data/role_audit.json"),
            excluded_containers_file=env.get("EXCLUDED_CONTAINERS_FILE", "data/excluded_containers.txt"),
            monitor_interval=_float(env, "MONITOR_INTERVAL", 300.0),
            stats_timeout=_float(env, "STATS_TIMEOUT", 3.0),
            health_port=_int(env, "HEALTH_PORT", 3000),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )
