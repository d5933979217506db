"""
Drives a backup job: enumerate, dump and upload every database.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from db_offsite_backup.database.dump import DumpExecutor
from db_offsite_backup.database.enumerator import DatabaseEnumerator
from db_offsite_backup.database.profile import ConnectionProfile, EngineKind
from db_offsite_backup.errors import ConfigurationError, DumpFailed, RemoteError
from db_offsite_backup.remote.backends.base import RemoteStore
from db_offsite_backup.remote.uploader import RemoteUploader
from db_offsite_backup.utils.datatypes import BackupArtifact, DatabaseOutcome, JobResult


class BackupOrchestrator:
    """
    Backs up all databases of one server.
    A failing database never stops the others. Only configuration and
    enumeration errors abort the whole job.
    """

    def __init__(self, profile: Optional[ConnectionProfile],
                 enumerator: DatabaseEnumerator,
                 executor: DumpExecutor,
                 uploader: RemoteUploader,
                 store: RemoteStore,
                 container: str,
                 staging_dir: Path,
                 max_workers: int = 1,
                 only: Optional[Iterable[str]] = None):
        """
        :param profile: server connection
        :param enumerator: lists the databases
        :param executor: dumps one database
        :param uploader: uploads one artifact
        :param store: remote store
        :param container: container for the uploads
        :param staging_dir: local directory for dumps
        :param max_workers: databases processed in parallel
        :param only: restrict the job to these databases
        """
        if max_workers < 1:
            raise ValueError('max_workers must be >= 1')
        self.profile = profile
        self.enumerator = enumerator
        self.executor = executor
        self.uploader = uploader
        self.store = store
        self.container = container
        self.staging_dir = Path(staging_dir)
        self.max_workers = max_workers
        self.only = set(only) if only else None

    def _check_profile(self) -> ConnectionProfile:
        if self.profile is None:
            raise ConfigurationError('Database configuration not found!')
        if not isinstance(self.profile.engine, EngineKind):
            raise ConfigurationError(f'Unsupported database driver: {self.profile.engine}')
        return self.profile

    def _prepare_staging(self):
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f'Staging directory {self.staging_dir} is not usable: {e}') from e

    @property
    def _timestamped(self) -> bool:
        return self.uploader.keep > 1

    def run(self) -> JobResult:
        """
        Run the job over all databases.
        :return: outcomes in enumeration order
        :raises ConfigurationError: before anything was touched
        :raises EnumerationError: if the database list is not available
        """
        profile = self._check_profile()
        databases = self.enumerator.list(profile)
        if self.only is not None:
            missing = self.only.difference(databases)
            if missing:
                logger.warning(f'Requested database(s) not found: {", ".join(sorted(missing))}')
            databases = [x for x in databases if x in self.only]

        if not databases:
            logger.warning('No databases to back up.')
            return JobResult()

        self._prepare_staging()
        timestamp = datetime.now() if self._timestamped else None
        artifacts = [self.executor.artifact(profile, x, self.staging_dir, timestamp)
                     for x in databases]

        if self.max_workers == 1:
            outcomes = [self._backup(profile, x) for x in artifacts]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                # map keeps the input order
                outcomes = list(pool.map(lambda x: self._backup(profile, x), artifacts))

        result = JobResult(outcomes)
        self._report_leftovers(result)
        return result

    def run_full(self, file_name: str) -> JobResult:
        """
        Dump all databases of the server into one artifact with a fixed name.
        The upload replaces the previous copy of that name.
        :param file_name: name of the artifact, e.g. all-databases.sql
        :return: a single outcome
        """
        profile = self._check_profile()
        artifact = self.executor.full_artifact(profile, self.staging_dir, file_name)
        self._prepare_staging()
        if artifact.local_path.exists():
            # left over from an earlier failed run. the dump overwrites it
            logger.info(f'Deleting old local backup: {artifact.local_path}')
            artifact.local_path.unlink()
        result = JobResult([self._backup(profile, artifact)])
        self._report_leftovers(result)
        return result

    def _backup(self, profile: ConnectionProfile, artifact: BackupArtifact) -> DatabaseOutcome:
        """
        Dump and upload one database. Never raises.
        """
        outcome = DatabaseOutcome(database=artifact.database)
        try:
            self.executor.dump(profile, artifact.database, artifact.local_path)
            outcome.dumped = True
            outcome.remote_id = self.uploader.upload(self.store, self.container, artifact)
            outcome.uploaded = True
        except DumpFailed as e:
            logger.error(f'Failed to back up {artifact.database}: {e}')
            outcome.error = str(e)
        except RemoteError as e:
            logger.error(f'Upload failed for {artifact.remote_name}: {e}')
            outcome.error = str(e)
        except Exception as e:
            logger.exception(f'Unexpected error while backing up {artifact.database}: {e}')
            outcome.error = f'{type(e).__name__}: {e}'
        if not outcome.uploaded:
            outcome.local_path = artifact.local_path
        return outcome

    @staticmethod
    def _report_leftovers(result: JobResult) -> List[Path]:
        leftovers = result.leftover_artifacts
        if leftovers:
            logger.warning(f'{len(leftovers)} local artifact(s) kept for inspection: '
                           f'{", ".join(str(x) for x in leftovers)}')
        return leftovers
