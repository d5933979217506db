import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from db_offsite_backup.errors import RemoteAuthError, RemoteDeleteError, RemoteListError, \
    RemoteUploadError
from db_offsite_backup.remote.backends.base import RemoteStore
from db_offsite_backup.utils.datatypes import RemoteEntry


class DiskStore(RemoteStore):
    """
    Disk store for backups to a mounted directory (NFS, SMB, a second disk).
    A container is a sub folder of backup_dir. Remote ids are paths relative to backup_dir.
    """

    def __init__(self, backup_dir: Path):
        """
        :param backup_dir: main dir for backups
        """
        if not backup_dir:
            raise ValueError('backup_dir must be provided when using the Disk target')
        self.backup_dir = Path(backup_dir)
        if not os.path.isdir(self.backup_dir):
            raise FileNotFoundError(f'backup_dir {self.backup_dir} does not exist!')

    def _folder(self, container: str) -> Path:
        return self.backup_dir / (container or '').strip('/')

    def list(self, container: str,
             name_filter: Optional[Callable[[str], bool]] = None) -> List[RemoteEntry]:
        folder = self._folder(container)
        if not folder.exists():
            return []
        entries = []
        try:
            for path in folder.iterdir():
                # skip unfinished uploads and sub folders
                if not path.is_file() or path.name.startswith('.'):
                    continue
                if name_filter and not name_filter(path.name):
                    continue
                entries.append(RemoteEntry(
                    remote_id=str(path.relative_to(self.backup_dir)),
                    name=path.name,
                    created_time=datetime.fromtimestamp(path.stat().st_mtime),
                ))
        except PermissionError as e:
            raise RemoteAuthError(f'Permission denied listing {folder}: {e}') from e
        except OSError as e:
            raise RemoteListError(f'Failed to list {folder}: {e}') from e
        return sorted(entries, key=lambda x: x.created_time)

    def upload(self, container: str, name: str, local_path: Path,
               mime_type: str = 'application/octet-stream') -> str:
        folder = self._folder(container)
        target = folder / name
        tmp_name = None
        try:
            folder.mkdir(parents=True, exist_ok=True)
            # copy next to the target and rename, so readers never see half a file
            fd, tmp_name = tempfile.mkstemp(prefix=f'.{name}.', dir=folder)
            os.close(fd)
            shutil.copyfile(local_path, tmp_name)
            os.replace(tmp_name, target)
        except PermissionError as e:
            self._discard(tmp_name)
            raise RemoteAuthError(f'Permission denied writing {target}: {e}') from e
        except OSError as e:
            self._discard(tmp_name)
            raise RemoteUploadError(f'Failed to copy {local_path} to {target}: {e}') from e
        return str(target.relative_to(self.backup_dir))

    @staticmethod
    def _discard(tmp_name: Optional[str]):
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)

    def delete(self, remote_id: str) -> None:
        try:
            os.remove(self.backup_dir / remote_id)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise RemoteDeleteError(f'Could not delete {remote_id}: {e}') from e
