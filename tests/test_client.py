import pytest

from pangolin_guardian.client import NOT_RUNNING_HINT, TRANSPORT_HINT, troubleshooting_hint
from pangolin_guardian.cogs import discover_extensions
from pangolin_guardian.errors import NotRunning, TransportError, ValidationError


class TestTroubleshootingHint:
    @pytest.mark.parametrize("error,hint", [
        (TransportError("connection refused"), TRANSPORT_HINT),
        (NotRunning("crowdsec is not running"), NOT_RUNNING_HINT),
        (ValidationError("bad ip"), None),
    ])
    def test_hints(self, error, hint):
        assert troubleshooting_hint(error) == hint

    def test_permission_error(self):
        assert "permission" in troubleshooting_hint(PermissionError(13, "denied"))


class TestDiscoverExtensions:
    def test_all_command_modules(self):
        assert discover_extensions() == [
            "pangolin_guardian.cogs.backup",
            "pangolin_guardian.cogs.containers",
            "pangolin_guardian.cogs.crowdsec",
            "pangolin_guardian.cogs.general",
            "pangolin_guardian.cogs.stack",
            "pangolin_guardian.cogs.vps",
        ]
