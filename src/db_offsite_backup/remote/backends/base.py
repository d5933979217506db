from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from db_offsite_backup.utils.datatypes import RemoteEntry


class RemoteStore(ABC):
    """
    ABC for remote store implementations.
    Implements how to list, upload and delete named blobs in a container.
    Authentication happens once in the constructor.
    """

    @abstractmethod
    def list(self, container: str,
             name_filter: Optional[Callable[[str], bool]] = None) -> List[RemoteEntry]:
        """
        Returns the entries of a container, oldest first.
        :param container: container / folder reference
        :param name_filter: only return entries whose name passes the filter
        :raises RemoteListError:
        """
        pass

    @abstractmethod
    def upload(self, container: str, name: str, local_path: Path,
               mime_type: str = 'application/octet-stream') -> str:
        """
        Upload a local file under name. Replaces an existing object of the same name.
        :return: remote id of the new object
        :raises RemoteAuthError:
        :raises RemoteUploadError:
        """
        pass

    @abstractmethod
    def delete(self, remote_id: str) -> None:
        """
        Removes the remote entry.
        :raises RemoteDeleteError:
        """
        pass
