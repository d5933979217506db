"""
Dumps all databases of a MySQL or MongoDB server and uploads them to a remote store.
"""
import sys
from collections import defaultdict
from pathlib import Path
from typing import Optional, Tuple

import click
from botocore.exceptions import BotoCoreError
from dynaconf import Dynaconf
from loguru import logger

from db_offsite_backup.database.dump import DumpExecutor
from db_offsite_backup.database.enumerator import DatabaseEnumerator
from db_offsite_backup.database.process import ProcessRunner
from db_offsite_backup.database.profile import ConnectionProfile
from db_offsite_backup.errors import ConfigurationError, EnumerationError, RemoteError
from db_offsite_backup.orchestrator import BackupOrchestrator
from db_offsite_backup.remote.backends.base import RemoteStore
from db_offsite_backup.remote.backends.disk import DiskStore
from db_offsite_backup.remote.backends.s3 import S3Store
from db_offsite_backup.remote.uploader import RemoteUploader
from db_offsite_backup.utils.config import RemoteTarget, parse_config
from db_offsite_backup.utils.converters import parse_file_name, strip_extension
from db_offsite_backup.utils.datatypes import JobResult
from db_offsite_backup.utils.logging import setup_console, setup_logging

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_FATAL = 2


class CtxArgs:
    """
    Cache object for arguments between click group and commands.
    """

    def __init__(self, config_folder: Path, settings: Dynaconf, store: RemoteStore):
        self.config_folder = Path(config_folder)
        self.settings = settings
        self.store = store

    @property
    def container(self) -> str:
        return self.settings('remote.container', default='')


def build_store(settings: Dynaconf) -> RemoteStore:
    """
    Create the remote store. Authentication happens once here.
    :param settings: settings
    :return: remote store
    """
    match RemoteTarget(settings('remote.target')):
        case RemoteTarget.S3:
            return S3Store(
                s3_bucket=settings('remote.s3.bucket'),
                s3_endpoint=settings('remote.s3.endpoint', default=None),
                s3_access_key_id=settings('remote.s3.access_key_id', default=None),
                s3_secret_access_key=settings('remote.s3.secret_access_key', default=None),
                region=settings('remote.s3.region', default=None),
                profile=settings('remote.s3.profile', default=None),
                timeout=settings('timeouts.remote', cast=float, default=60),
            )
        case RemoteTarget.DISK:
            return DiskStore(Path(settings('remote.disk.dir')))


def build_orchestrator(args: CtxArgs, profile: ConnectionProfile,
                       workers: Optional[int] = None, keep: Optional[int] = None,
                       only: Optional[Tuple[str, ...]] = None) -> BackupOrchestrator:
    settings = args.settings
    runner = ProcessRunner()
    enumerator = DatabaseEnumerator(
        runner=runner,
        mysql_client=settings('dump.mysql', default='mysql'),
        mongo_shell=settings('dump.mongo_shell', default='mongosh'),
        timeout=settings('timeouts.enumerate', cast=float, default=60),
    )
    executor = DumpExecutor(
        runner=runner,
        mysqldump=settings('dump.mysqldump', default='mysqldump'),
        mongodump=settings('dump.mongodump', default='mongodump'),
        mysqldump_args=settings('dump.mysqldump_args', default=None),
        timeout=settings('timeouts.dump', cast=float, default=3600),
    )
    uploader = RemoteUploader(
        keep=keep if keep is not None else settings('backup.retention', cast=int, default=1)
    )
    return BackupOrchestrator(
        profile=profile,
        enumerator=enumerator,
        executor=executor,
        uploader=uploader,
        store=args.store,
        container=args.container,
        staging_dir=Path(settings('backup.staging_dir')),
        max_workers=workers or settings('backup.max_workers', cast=int, default=1),
        only=only,
    )


def print_summary(result: JobResult):
    """
    Print one line per database and the overall status.
    """
    if len(result) == 0:
        click.secho('No databases found. Nothing to do.', fg='yellow')
        return
    for outcome in result:
        if outcome.succeeded:
            click.secho(f'OK      {outcome.database} -> {outcome.remote_id}', fg='green')
        elif outcome.dumped:
            click.secho(f'UPLOAD  {outcome.database}: {outcome.error} '
                        f'(kept {outcome.local_path})', fg='red')
        else:
            click.secho(f'DUMP    {outcome.database}: {outcome.error}', fg='red')
    failed = len(result.failed)
    if failed:
        click.secho(f'{failed} of {len(result)} backup(s) failed!', fg='red', bold=True,
                    file=sys.stderr)
    else:
        click.secho(f'All {len(result)} backup(s) uploaded.', fg='green', bold=True)


def run_job(args: CtxArgs, full: bool = False, **kwargs) -> int:
    """
    Run a job and map its result to the process exit code.
    """
    try:
        profile = ConnectionProfile.from_settings(args.settings)
        orchestrator = build_orchestrator(args, profile, **kwargs)
        if full:
            result = orchestrator.run_full(
                args.settings('backup.full_dump_name', default='all-databases.sql'))
        else:
            result = orchestrator.run()
    except (ConfigurationError, EnumerationError) as e:
        logger.critical(f'Backup job aborted: {e}')
        return EXIT_FATAL
    print_summary(result)
    return result.exit_code


@click.group()
@click.option(
    '-c',
    '--config-folder',
    help='Folder where the config files are stored. /etc/db-offsite-backup by default.'
         ' Make sure that the user has read and write access to the folder.',
    default='/etc/db-offsite-backup',
)
@click.option('-v', '--verbose', is_flag=True, default=False, help='Debug output.')
@click.pass_context
@click.version_option(package_name='db_offsite_backup')
def main(ctx, config_folder, verbose):
    """
    Back up MySQL and MongoDB databases to S3 or a mounted directory.
    """
    setup_console(verbose)
    try:
        settings = parse_config(Path(config_folder))
        log_dir = settings('logging.dir', default=None)
        if log_dir:
            setup_logging(Path(log_dir), settings('logging.level', default='INFO'))
        store = build_store(settings)
    except (ConfigurationError, ValueError, OSError, BotoCoreError) as e:
        logger.critical(f'Error during config parsing! {e}')
        sys.exit(EXIT_FATAL)
    ctx.obj = CtxArgs(config_folder, settings, store)


@main.command('backup')
@click.option('-w', '--workers', type=click.IntRange(min=1), default=None,
              help='Databases processed in parallel. backup.max_workers by default.')
@click.option('-k', '--keep', type=click.IntRange(min=0), default=None,
              help='Remote backups kept per database. backup.retention by default.')
@click.option('-d', '--database', 'databases', multiple=True,
              help='Only back up this database. Can be given multiple times.')
@click.pass_context
def backup_command(ctx, workers, keep, databases):
    """
    Dump every database of the server and upload it.
    System databases are skipped.
    """
    args: CtxArgs = ctx.obj
    sys.exit(run_job(args, workers=workers, keep=keep, only=databases or None))


@main.command('backup-all')
@click.pass_context
def backup_all_command(ctx):
    """
    Dump the whole MySQL server into a single file and upload it.
    The file name is backup.full_dump_name. The upload replaces the previous copy.
    """
    args: CtxArgs = ctx.obj
    sys.exit(run_job(args, full=True, keep=1))


@main.command('list')
@click.pass_context
def list_command(ctx):
    """
    List all backups in the remote container.
    """
    args: CtxArgs = ctx.obj
    try:
        entries = args.store.list(args.container)
    except RemoteError as e:
        logger.critical(f'Could not list the remote backups: {e}')
        sys.exit(EXIT_FATAL)

    if len(entries) == 0:
        click.secho('None! You have to create a backup first...', fg='red',
                    file=sys.stderr)
        sys.exit(EXIT_PARTIAL_FAILURE)

    groups = defaultdict(list)
    for entry in entries:
        data = parse_file_name(entry.name)
        groups[data['logical_name'] if data else strip_extension(entry.name)].append(entry)

    output = click.style('Listing backups:\n', fg='green', bold=True)
    for name in sorted(groups):
        output += click.style(f'{name}\n', fg='cyan')
        for entry in sorted(groups[name], key=lambda x: x.created_time, reverse=True):
            output += click.style(f'\t{entry.remote_id} @ {entry.timestamp_str}\n', fg='yellow')
    click.echo(output)


if __name__ == '__main__':
    main()
