"""ccman 错误类型"""


class CcmanError(Exception):
    """Base class for every error raised by ccman."""


class ParseError(CcmanError):
    """File content is not valid in its declared format."""


class ValidationFailed(CcmanError, ValueError):
    """Well-formed but semantically invalid document."""


class ProviderNotFound(CcmanError, ValueError):
    pass


class NameConflict(CcmanError, ValueError):
    pass


class ConfigPathNotFound(CcmanError, ValueError):
    pass


class DecryptionFailed(CcmanError):
    """Wrong password or corrupted data."""

    def __init__(self, message: str = "wrong password or corrupted data"):
        super().__init__(message)


class NothingToSync(CcmanError):
    pass


class RemoteNotFound(CcmanError):
    pass


class RemoteDataInvalid(CcmanError):
    pass


class RemoteError(CcmanError):
    """Transport failure talking to the remote store."""


class BackupRestoreFailed(CcmanError):
    def __init__(self, backup_path, cause: Exception):
        self.backup_path = backup_path
        self.cause = cause
        super().__init__(f"failed to restore {backup_path}: {cause}")


class SyncError(CcmanError):
    """A sync operation failed; the cause is chained."""


class LockTimeout(CcmanError):
    pass
