class ArkError(Exception):
    """Base error for remote orchestration and store operations."""


class CredentialError(ArkError):
    """Stored credential missing, malformed or undecryptable."""


class SSHConnectionError(ArkError):
    """Could not open or authenticate an SSH session."""


class RemoteCommandError(ArkError):
    """A remote command exited non-zero."""

    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result

    @property
    def failure(self):
        return self.result.failure if self.result is not None else None


class CommandValidationError(ArkError):
    """A user-supplied shell command was rejected."""


class PortAllocationError(ArkError):
    """No free host port in the allowed range."""


class DeployError(ArkError):
    """Deploy, rollback or project lifecycle failure."""


class DatabaseProvisionError(ArkError):
    """Managed database container could not be created or driven."""


class BackupError(ArkError):
    """Backup or restore failure."""


class NotFoundError(ArkError):
    """Referenced record does not exist."""
