"""
Discovers the databases of a server.
"""
import json
import subprocess
from typing import List, Optional

from loguru import logger

from db_offsite_backup.database.process import ProcessResult, ProcessRunner
from db_offsite_backup.database.profile import ConnectionProfile, EngineKind
from db_offsite_backup.errors import ConfigurationError, EnumerationError

LIST_DATABASES_SCRIPT = (
    'print(JSON.stringify(db.adminCommand({listDatabases: 1, nameOnly: true})))'
)
# replacement character left by ProcessRunner for bytes that are not utf-8
UNDECODABLE = '\ufffd'


class DatabaseEnumerator:
    """
    Lists backupable databases by asking the server through its command line client.
    System databases are filtered out. The server's order is preserved.
    """

    def __init__(self, runner: Optional[ProcessRunner] = None,
                 mysql_client: str = 'mysql', mongo_shell: str = 'mongosh',
                 timeout: Optional[float] = 60):
        """
        :param runner: process runner
        :param mysql_client: path of the mysql client binary
        :param mongo_shell: path of mongosh (or the legacy mongo shell)
        :param timeout: seconds until the listing is aborted
        """
        self.runner = runner or ProcessRunner()
        self.mysql_client = mysql_client
        self.mongo_shell = mongo_shell
        self.timeout = timeout

    def list(self, profile: ConnectionProfile) -> List[str]:
        """
        Get all databases that should be backed up.
        :param profile: server connection
        :return: database names in server order. May be empty.
        """
        match profile.engine:
            case EngineKind.RELATIONAL:
                logger.info(f'Retrieving MySQL database list from {profile.host}...')
                names = self._parse_relational(self._execute(
                    profile, self.mysql_client, self.relational_args(profile)))
            case EngineKind.DOCUMENT:
                logger.info(f'Retrieving MongoDB database list from {profile.host}...')
                names = self._parse_document(self._execute(
                    profile, self.mongo_shell, self.document_args(profile)))
            case _:
                raise ConfigurationError(f'Unsupported database engine: {profile.engine}')

        undecodable = [x for x in names if UNDECODABLE in x]
        if undecodable:
            raise EnumerationError(
                f'Database list from {profile.host} contains names that are not valid utf-8: '
                f'{", ".join(repr(x) for x in undecodable)}')

        excluded = profile.engine.system_databases
        databases = []
        for name in names:
            if name in excluded:
                logger.debug(f'Skipping system database {name}')
                continue
            if name not in databases:
                databases.append(name)
        logger.info(f'Found {len(databases)} database(s) to back up: {", ".join(databases)}')
        return databases

    @staticmethod
    def relational_args(profile: ConnectionProfile) -> List[str]:
        return [
            '--batch',
            # no escaping of tabs, newlines or backslashes in names
            '--raw',
            '--skip-column-names',
            f'--host={profile.host}',
            f'--port={profile.effective_port}',
            f'--user={profile.username}',
            f'--password={profile.password}',
            '--execute=SHOW DATABASES',
        ]

    @staticmethod
    def document_args(profile: ConnectionProfile) -> List[str]:
        args = ['--quiet', '--host', profile.host, '--port', str(profile.effective_port)]
        if profile.username:
            args += ['--username', profile.username,
                     '--password', profile.password,
                     '--authenticationDatabase', profile.auth_database]
        args += ['--eval', LIST_DATABASES_SCRIPT]
        return args

    def _execute(self, profile: ConnectionProfile, command: str, args: List[str]) -> ProcessResult:
        try:
            result = self.runner.run(command, args, timeout=self.timeout,
                                     secrets=[profile.password])
        except subprocess.TimeoutExpired as e:
            raise EnumerationError(
                f'Listing databases on {profile.host} timed out after {self.timeout}s') from e
        except OSError as e:
            raise EnumerationError(f'Could not run {command}: {e}') from e
        except UnicodeDecodeError as e:
            raise EnumerationError(f'Output of {command} is not valid utf-8: {e}') from e
        if not result.ok:
            raise EnumerationError(
                f'Listing databases on {profile.host} failed with exit code '
                f'{result.exit_code}: {result.stderr.strip()}')
        return result

    @staticmethod
    def _parse_relational(result: ProcessResult) -> List[str]:
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    @staticmethod
    def _parse_document(result: ProcessResult) -> List[str]:
        # the shell may print banners or warnings before the document
        lines = [x for x in result.stdout.splitlines() if x.strip().startswith('{')]
        if not lines:
            raise EnumerationError(f'Unexpected listDatabases output: {result.stdout.strip()!r}')
        try:
            response = json.loads(lines[-1])
            return [entry['name'] for entry in response['databases']]
        except (ValueError, KeyError, TypeError) as e:
            raise EnumerationError(f'Could not parse listDatabases output: {e}') from e
