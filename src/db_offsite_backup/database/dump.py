"""
Invokes mysqldump / mongodump for a single database.
"""
import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger

from db_offsite_backup.database.process import ProcessResult, ProcessRunner
from db_offsite_backup.database.profile import ConnectionProfile, EngineKind
from db_offsite_backup.errors import ConfigurationError, DumpFailed, DumpTimeout
from db_offsite_backup.utils.converters import artifact_file_name, logical_name, \
    parse_file_name, strip_extension
from db_offsite_backup.utils.datatypes import BackupArtifact

ALL_DATABASES = '*'


class DumpExecutor:
    """
    Builds the dump command for an engine and runs it.
    All values are passed as separate arguments. Nothing is ever interpolated into a shell line.
    """

    EXTENSIONS = {
        EngineKind.RELATIONAL: ('.sql', 'application/sql'),
        EngineKind.DOCUMENT: ('.gz', 'application/gzip'),
    }

    def __init__(self, runner: Optional[ProcessRunner] = None,
                 mysqldump: str = 'mysqldump', mongodump: str = 'mongodump',
                 mysqldump_args: Optional[Sequence[str]] = None,
                 timeout: Optional[float] = 3600):
        """
        :param runner: process runner
        :param mysqldump: path of mysqldump
        :param mongodump: path of mongodump
        :param mysqldump_args: extra options for mysqldump.
            --single-transaction --routines --triggers by default
        :param timeout: seconds until a dump is killed
        """
        self.runner = runner or ProcessRunner()
        self.mysqldump = mysqldump
        self.mongodump = mongodump
        self.mysqldump_args = list(
            mysqldump_args if mysqldump_args is not None
            else ['--single-transaction', '--routines', '--triggers']
        )
        self.timeout = timeout

    def artifact(self, profile: ConnectionProfile, database: str, staging_dir: Path,
                 timestamp: Optional[datetime] = None) -> BackupArtifact:
        """
        Plan the artifact for a database.
        :param profile: server connection
        :param database: database name
        :param staging_dir: local directory for dumps
        :param timestamp: add a timestamp to the remote name (multi slot retention)
        :return: artifact, not yet created
        """
        extension, mime_type = self.EXTENSIONS[profile.engine]
        return BackupArtifact(
            database=database,
            local_path=Path(staging_dir) / artifact_file_name(database, extension),
            logical_name=logical_name(database),
            remote_name=artifact_file_name(database, extension, timestamp),
            mime_type=mime_type,
        )

    def full_artifact(self, profile: ConnectionProfile, staging_dir: Path,
                      file_name: str) -> BackupArtifact:
        """
        Plan the artifact of a dump of all databases with a fixed name.
        """
        if profile.engine is not EngineKind.RELATIONAL:
            raise ConfigurationError('Full server dumps are only supported for MySQL!')
        if parse_file_name(file_name) is not None:
            # <db>-backup.sql is the name of a single database backup
            raise ConfigurationError(
                f'Full dump name {file_name} collides with per-database backup names. '
                'Use a name that does not end with -backup, e.g. all-databases.sql')
        _, mime_type = self.EXTENSIONS[profile.engine]
        return BackupArtifact(
            database=ALL_DATABASES,
            local_path=Path(staging_dir) / file_name,
            logical_name=strip_extension(file_name),
            remote_name=file_name,
            mime_type=mime_type,
        )

    def build_args(self, profile: ConnectionProfile, database: str,
                   destination: Path) -> List[str]:
        """
        Argument list for the dump tool of the engine.
        :param profile: server connection
        :param database: database name or ALL_DATABASES (MySQL only)
        :param destination: artifact path
        :return: argv without the executable
        """
        match profile.engine:
            case EngineKind.RELATIONAL:
                args = [
                    f'--host={profile.host}',
                    f'--port={profile.effective_port}',
                    f'--user={profile.username}',
                    f'--password={profile.password}',
                    *self.mysqldump_args,
                    f'--result-file={destination}',
                ]
                if database == ALL_DATABASES:
                    args.append('--all-databases')
                else:
                    # -- ends option parsing. A database named --foo stays a name.
                    args += ['--', database]
                return args
            case EngineKind.DOCUMENT:
                if database == ALL_DATABASES:
                    raise ConfigurationError('Full server dumps are only supported for MySQL!')
                args = [f'--host={profile.host}', f'--port={profile.effective_port}']
                if profile.username:
                    args += [
                        f'--username={profile.username}',
                        f'--password={profile.password}',
                        f'--authenticationDatabase={profile.auth_database}',
                    ]
                args += [f'--db={database}', f'--archive={destination}', '--gzip']
                return args
            case _:
                raise ConfigurationError(f'Unsupported database engine: {profile.engine}')

    def command(self, profile: ConnectionProfile) -> str:
        return self.mysqldump if profile.engine is EngineKind.RELATIONAL else self.mongodump

    def dump(self, profile: ConnectionProfile, database: str, destination: Path) -> ProcessResult:
        """
        Dump one database to destination.
        On failure the destination may be missing or partial and must not be used.
        :param profile: server connection
        :param database: database name
        :param destination: artifact path
        :return: process result of the dump tool
        :raises DumpFailed: the tool failed or produced nothing
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        command = self.command(profile)
        args = self.build_args(profile, database, destination)
        logger.info(f'Backing up {profile.engine.value} database {database} to {destination}')
        try:
            result = self.runner.run(command, args, timeout=self.timeout,
                                     secrets=[profile.password])
        except subprocess.TimeoutExpired as e:
            raise DumpTimeout(database, self.timeout) from e
        except OSError as e:
            raise DumpFailed(database, None, reason=f'could not run {command}: {e}') from e

        if result.stdout:
            logger.debug(f'{command} stdout: {result.stdout.strip()}')
        if result.stderr:
            logger.warning(f'{command} stderr: {result.stderr.strip()}')
        if not result.ok:
            raise DumpFailed(database, result.exit_code, result.stdout, result.stderr)
        if not destination.is_file() or os.path.getsize(destination) == 0:
            raise DumpFailed(database, result.exit_code, result.stdout, result.stderr,
                             reason=f'{destination} is missing or empty')
        return result
