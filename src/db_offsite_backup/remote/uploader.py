"""
Pushes local artifacts to the remote store.
"""
import os
from typing import Optional

from loguru import logger

from db_offsite_backup.errors import RemoteError
from db_offsite_backup.remote.backends.base import RemoteStore
from db_offsite_backup.remote.retention import RetentionManager
from db_offsite_backup.utils.datatypes import BackupArtifact


class RemoteUploader:
    """
    Rotates old remote copies, uploads the artifact and removes the local file.
    """

    def __init__(self, keep: int = 1, retention: Optional[RetentionManager] = None):
        """
        :param keep: remote backups to keep per logical name.
            1 replaces the previous copy. 0 disables the rotation.
        :param retention: retention manager
        """
        if keep < 0:
            raise ValueError('keep must be >= 0')
        self.keep = keep
        self.retention = retention or RetentionManager()

    def upload(self, store: RemoteStore, container: str, artifact: BackupArtifact) -> str:
        """
        Upload one artifact. The local file is only deleted after a confirmed upload.
        No retry on failure. The artifact stays on disk for inspection.
        :param store: remote store
        :param container: container reference
        :param artifact: artifact to upload
        :return: remote id
        :raises RemoteAuthError:
        :raises RemoteUploadError:
        """
        try:
            self.retention.prune(store, container, artifact.logical_name, self.keep)
        except RemoteError as e:
            # rotation is no precondition for a backup
            logger.error(f'Retention for {artifact.logical_name} skipped: {e}')

        artifact.refresh_size()
        logger.info(f'Uploading {artifact.remote_name} ({artifact.size_str}) '
                    f'to container {container or "/"}...')
        remote_id = store.upload(container, artifact.remote_name, artifact.local_path,
                                 artifact.mime_type)
        logger.info(f'Uploaded: {artifact.remote_name} (ID: {remote_id})')

        try:
            os.remove(artifact.local_path)
            logger.debug(f'Local backup file {artifact.local_path} deleted.')
        except FileNotFoundError:
            pass
        except OSError as e:
            # the upload succeeded. a stale local file is only a warning
            logger.warning(f'Could not delete local file {artifact.local_path}: {e}')
        return remote_id
