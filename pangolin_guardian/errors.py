"""Error taxonomy shared by the gateway, archiver and command handlers."""

from typing import Optional


class GuardianError(Exception):
    """Base class for every failure the bot reports back to a user."""


class NotFound(GuardianError):
    """A referenced container or backup does not exist."""


class NotRunning(GuardianError):
    """The operation needs a running container."""


class TransportError(GuardianError):
    """The container engine could not be reached."""


class CommandFailed(GuardianError):
    """An exec or shell command ran but reported failure."""

    def __init__(self, message: str, stdout: str = "", stderr: str = "", exit_code: Optional[int] = None):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code


class ValidationError(GuardianError):
    """Malformed user input or configuration."""


class Timeout(GuardianError):
    """A bounded call did not finish in time."""
