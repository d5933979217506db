"""
Contains classes representing artifacts, remote entries and job results.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional


@dataclass
class BackupArtifact:
    """
    A local dump waiting for upload.
    Owned by the pipeline until the remote store confirmed it, then deleted.
    """
    database: str
    local_path: Path
    logical_name: str
    remote_name: str
    mime_type: str = 'application/octet-stream'
    size_bytes: Optional[int] = None

    def __str__(self):
        return f'Backup {self.remote_name}'

    def refresh_size(self) -> Optional[int]:
        """
        Read the size from disk.
        :return: size in bytes or None if the file is gone
        """
        try:
            self.size_bytes = os.path.getsize(self.local_path)
        except OSError:
            self.size_bytes = None
        return self.size_bytes

    @property
    def size_str(self) -> str:
        if self.size_bytes is None:
            return '? MB'
        return f'{self.size_bytes / 1024 / 1024:.2f} MB'


@dataclass(frozen=True)
class RemoteEntry:
    """
    An object already stored in a remote container.
    """
    remote_id: str
    name: str
    created_time: datetime

    @property
    def timestamp_str(self) -> str:
        """
        creation time as string without seconds
        :return: timestamp as string
        """
        return self.created_time.strftime('%Y-%m-%d %H:%M')


@dataclass
class DatabaseOutcome:
    """
    Result of backing up a single database.
    """
    database: str
    dumped: bool = False
    uploaded: bool = False
    error: Optional[str] = None
    remote_id: Optional[str] = None
    local_path: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.dumped and self.uploaded


@dataclass
class JobResult:
    """
    Ordered outcomes of one job. Order follows the enumeration.
    """
    outcomes: List[DatabaseOutcome] = field(default_factory=list)

    def __len__(self):
        return len(self.outcomes)

    def __iter__(self):
        return iter(self.outcomes)

    @property
    def succeeded(self) -> bool:
        return all(x.succeeded for x in self.outcomes)

    @property
    def failed(self) -> List[DatabaseOutcome]:
        return [x for x in self.outcomes if not x.succeeded]

    @property
    def leftover_artifacts(self) -> List[Path]:
        """
        Local files kept on disk for inspection after a failed upload or dump.
        """
        return [x.local_path for x in self.outcomes
                if not x.uploaded and x.local_path and os.path.exists(x.local_path)]

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1
