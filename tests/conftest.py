"""
Shared pytest fixtures.

- fake process runner that answers listing commands and writes dump files
- in-memory remote store
- connection profiles for both engines
"""
import itertools
import subprocess
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from db_offsite_backup.database.process import ProcessResult  # noqa: E402
from db_offsite_backup.database.profile import ConnectionProfile, EngineKind  # noqa: E402
from db_offsite_backup.errors import RemoteDeleteError, RemoteUploadError  # noqa: E402
from db_offsite_backup.remote.backends.base import RemoteStore  # noqa: E402
from db_offsite_backup.utils.datatypes import RemoteEntry  # noqa: E402


class FakeRunner:
    """
    Stands in for ProcessRunner.
    Listing tools print the configured databases. Dump tools write a small file
    to the destination unless the database is marked as failing.
    """

    def __init__(self, databases: Optional[List[str]] = None,
                 failing: Optional[Dict[str, int]] = None,
                 listing_exit_code: int = 0,
                 timeout_on: Optional[str] = None):
        self.databases = databases or []
        self.failing = failing or {}
        self.listing_exit_code = listing_exit_code
        self.timeout_on = timeout_on
        self.calls = []

    def run(self, command, args, timeout=None, secrets=()):
        self.calls.append((command, list(args)))
        if command in ('mysql', 'mongosh'):
            if self.listing_exit_code:
                return ProcessResult(self.listing_exit_code, '', 'Access denied')
            if command == 'mysql':
                return ProcessResult(0, '\n'.join(self.databases) + '\n', '')
            body = ', '.join(f'{{"name": "{x}"}}' for x in self.databases)
            return ProcessResult(0, f'{{"databases": [{body}], "ok": 1}}\n', '')

        database = args[-1] if command == 'mysqldump' else _value(args, '--db=')
        if database == self.timeout_on:
            raise subprocess.TimeoutExpired(command, timeout)
        destination = _value(args, '--result-file=') or _value(args, '--archive=')
        if database in self.failing:
            # a broken dump may leave a partial file behind
            Path(destination).write_text('-- partial')
            return ProcessResult(self.failing[database], '', f'error dumping {database}')
        Path(destination).write_text(f'-- dump of {database}\n')
        return ProcessResult(0, '', '')

    def dumped(self) -> List[str]:
        return [args[-1] if command == 'mysqldump' else _value(args, '--db=')
                for command, args in self.calls if command in ('mysqldump', 'mongodump')]


def _value(args, prefix):
    for arg in args:
        if arg.startswith(prefix):
            return arg[len(prefix):]
    return None


class MemoryStore(RemoteStore):
    """
    Remote store keeping entries in a dict. Creation times increase with every upload.
    """

    def __init__(self):
        self.entries: Dict[str, RemoteEntry] = {}
        self.containers: Dict[str, str] = {}
        self.contents: Dict[str, str] = {}
        self.fail_delete = set()
        self.fail_upload: Dict[str, Exception] = {}
        self.uploads = []
        self.deletes = []
        self._clock = itertools.count()
        self._epoch = datetime(2024, 1, 1)

    def add(self, container: str, name: str, remote_id: Optional[str] = None,
            created_time: Optional[datetime] = None) -> RemoteEntry:
        remote_id = remote_id or f'{container}/{name}'
        entry = RemoteEntry(remote_id, name, created_time or self._now())
        self.entries[remote_id] = entry
        self.containers[remote_id] = container
        return entry

    def _now(self) -> datetime:
        return self._epoch + timedelta(minutes=next(self._clock))

    def names(self) -> List[str]:
        return sorted(x.name for x in self.entries.values())

    def list(self, container: str,
             name_filter: Optional[Callable[[str], bool]] = None) -> List[RemoteEntry]:
        entries = [x for x in self.entries.values()
                   if self.containers[x.remote_id] == container
                   and (name_filter is None or name_filter(x.name))]
        return sorted(entries, key=lambda x: x.created_time)

    def upload(self, container: str, name: str, local_path: Path,
               mime_type: str = 'application/octet-stream') -> str:
        self.uploads.append((container, name, mime_type))
        if name in self.fail_upload:
            raise self.fail_upload[name]
        remote_id = f'{container}/{name}'
        self.entries[remote_id] = RemoteEntry(remote_id, name, self._now())
        self.containers[remote_id] = container
        self.contents[remote_id] = Path(local_path).read_text()
        return remote_id

    def delete(self, remote_id: str) -> None:
        self.deletes.append(remote_id)
        if remote_id in self.fail_delete:
            raise RemoteDeleteError(f'cannot delete {remote_id}')
        self.entries.pop(remote_id, None)


@pytest.fixture
def mysql_profile():
    return ConnectionProfile(engine=EngineKind.RELATIONAL, host='db.local',
                             username='backup', password='s3cret')


@pytest.fixture
def mongo_profile():
    return ConnectionProfile(engine=EngineKind.DOCUMENT, host='mongo.local',
                             username='backup', password='s3cret')


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / 'staging'
    path.mkdir()
    return path


@pytest.fixture
def upload_error():
    return RemoteUploadError('network unreachable')


@pytest.fixture
def tool_script(tmp_path):
    """
    Factory for executable shell scripts standing in for mysql, mysqldump, ...
    """
    def write(name: str, body: str) -> str:
        path = tmp_path / 'bin' / name
        path.parent.mkdir(exist_ok=True)
        path.write_text('#!/bin/sh\n' + body)
        path.chmod(0o755)
        return str(path)
    return write


# writes the dump, then complains in latin-1 on stderr
MYSQLDUMP_LATIN1_WARNING = r"""
for arg in "$@"; do
    case "$arg" in
        --result-file=*) printf '%s\n' '-- dump' > "${arg#--result-file=}" ;;
    esac
done
printf 'Warning: Gr\374\337e\n' >&2
exit 0
"""

posix_only = pytest.mark.skipif(sys.platform == 'win32', reason='needs /bin/sh')
