"""
Exceptions raised by the backup pipeline.

Job-fatal: ConfigurationError, EnumerationError.
Per-database: DumpFailed and the RemoteError family.
"""
from typing import Optional


class BackupError(RuntimeError):
    """
    Base class for all pipeline failures.
    """


class ConfigurationError(BackupError):
    """
    Missing or unsupported configuration. Raised before any database is touched.
    """


class EnumerationError(BackupError):
    """
    The database list could not be retrieved from the server.
    """


class DumpFailed(BackupError):
    """
    The dump tool did not produce a usable artifact.
    """

    def __init__(self, database: str, exit_code: Optional[int],
                 stdout: str = '', stderr: str = '', reason: Optional[str] = None):
        """
        :param database: database that was dumped
        :param exit_code: exit status of the dump tool. None if it never finished.
        :param stdout: captured stdout
        :param stderr: captured stderr
        :param reason: optional human-readable cause
        """
        self.database = database
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        if not reason:
            reason = f'exit code {exit_code}'
            if stderr:
                reason += f': {stderr.strip()}'
        super().__init__(f'Dump of {database} failed ({reason})')


class DumpTimeout(DumpFailed):
    """
    The dump tool exceeded its timeout and was killed.
    """

    def __init__(self, database: str, timeout: float):
        super().__init__(database, None, reason=f'timed out after {timeout}s')
        self.timeout = timeout


class RemoteError(BackupError):
    """
    Base class for remote store failures.
    """


class RemoteAuthError(RemoteError):
    """
    The remote store rejected our credentials or permissions.
    """


class RemoteListError(RemoteError):
    """
    Listing a container failed.
    """


class RemoteUploadError(RemoteError):
    """
    Uploading an artifact failed.
    """


class RemoteDeleteError(RemoteError):
    """
    Deleting a remote entry failed.
    """
