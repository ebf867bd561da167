import json

import pytest

from pangolin_guardian.errors import ValidationError
from pangolin_guardian.settings import DEFAULT_STACK, Settings, read_config


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "bot_name": "Pangolin Guardian",
        "status": {"type": "listening", "message": "CrowdSec"},
        "timezone_offset": 2,
        "alert_channel_id": 111,
        "stack_containers": ["pangolin", "gerbil"],
    }))
    return str(path)


class TestSettings:
    def test_load(self, config_path):
        settings = Settings.load(config_path, env={"DISCORD_TOKEN": "abc", "DISCORD_GUILD_ID": "42"})

        assert settings.token == "abc"
        assert settings.guild_id == 42
        assert settings.bot_name == "Pangolin Guardian"
        assert settings.status_type == "listening"
        assert settings.timezone_offset == 2.0
        assert settings.alert_channel_id == 111
        assert settings.stack_containers == ("pangolin", "gerbil")
        assert settings.health_port == 3000

    def test_env_overrides_alert_channel(self, config_path):
        settings = Settings.load(config_path, env={"DISCORD_TOKEN": "abc", "ALERT_CHANNEL_ID": "222"})
        assert settings.alert_channel_id == 222

    def test_defaults_without_config(self, tmp_path):
        settings = Settings.load(str(tmp_path / "missing.json"), env={"DISCORD_TOKEN": "abc"})
        assert settings.stack_containers == DEFAULT_STACK
        assert settings.guild_id is None
        assert settings.monitor_interval == 300.0
        assert settings.excluded_containers_file == "data/excluded_containers.txt"

    def test_missing_token(self, config_path):
        with pytest.raises(ValidationError):
            Settings.load(config_path, env={"DISCORD_TOKEN": "  "})

    @pytest.mark.parametrize("key", ["DISCORD_GUILD_ID", "HEALTH_PORT", "MONITOR_INTERVAL"])
    def test_bad_numbers(self, config_path, key):
        with pytest.raises(ValidationError):
            Settings.load(config_path, env={"DISCORD_TOKEN": "abc", key: "soon"})

    def test_bad_stack_list(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"stack_containers": "pangolin"}))
        with pytest.raises(ValidationError):
            Settings.load(str(path), env={"DISCORD_TOKEN": "abc"})


class TestReadConfig:
    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{")
        with pytest.raises(ValidationError):
            read_config(str(path))
