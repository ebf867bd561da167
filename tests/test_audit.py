import json
from datetime import datetime, timedelta, timezone

import pytest

from pangolin_guardian.audit import AuditLog, parse_timeframe
from pangolin_guardian.errors import ValidationError


class TestParseTimeframe:
    @pytest.mark.parametrize("text,expected", [
        ("15m", timedelta(minutes=15)),
        ("2h", timedelta(hours=2)),
        ("1d", timedelta(days=1)),
        ("1mon", timedelta(days=30)),
        (" 3D ", timedelta(days=3)),
    ])
    def test_units(self, text, expected):
        assert parse_timeframe(text) == expected

    @pytest.mark.parametrize("text", ["", "h", "10", "1w", "1h30m", "-1h"])
    def test_invalid(self, text):
        with pytest.raises(ValidationError):
            parse_timeframe(text)


@pytest.fixture
def audit(tmp_path):
    return AuditLog(str(tmp_path / "data" / "audit_log.json"), str(tmp_path / "data" / "role_audit.json"))


class TestAuditLog:
    def test_commands_since(self, audit):
        now = datetime.now(timezone.utc)
        audit.log_command(1, "alice", "stackhealth")
        audit.log_command(2, "bob", "docker execute", {"container": "crowdsec"})

        entries = audit.commands_since(timedelta(minutes=5), now=now + timedelta(minutes=1))

        assert [entry["command"] for entry in entries] == ["stackhealth", "docker execute"]
        assert entries[1]["args"] == {"container": "crowdsec"}
        assert audit.commands_since(timedelta(minutes=5), now=now + timedelta(hours=1)) == []

    def test_naive_timestamps_and_junk_lines(self, audit, tmp_path):
        path = tmp_path / "data" / "audit_log.json"
        path.parent.mkdir(parents=True)
        lines = [
            json.dumps({"timestamp": "2024-05-02T10:00:00", "command": "ping"}),
            "not json",
            json.dumps({"command": "no timestamp"}),
            "",
        ]
        path.write_text("\n".join(lines))

        entries = audit.commands_since(timedelta(hours=1), now=datetime(2024, 5, 2, 10, 30, tzinfo=timezone.utc))
        assert [entry["command"] for entry in entries] == ["ping"]

    def test_missing_file(self, audit):
        assert audit.commands_since(timedelta(days=1)) == []
        assert audit.role_changes() == []

    def test_role_changes_newest_first(self, audit):
        for user_id in range(12):
            audit.log_role_change("add", "dev", user_id, admin_id=99)

        changes = audit.role_changes(limit=10)

        assert len(changes) == 10
        assert changes[0]["user_id"] == 11
        assert changes[-1]["user_id"] == 2
        assert changes[0]["admin_id"] == 99
