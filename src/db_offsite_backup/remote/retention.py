"""
Rotation of remote backups.
"""
from functools import partial
from typing import List

from loguru import logger

from db_offsite_backup.errors import RemoteError
from db_offsite_backup.remote.backends.base import RemoteStore
from db_offsite_backup.utils.converters import matches_logical_name
from db_offsite_backup.utils.datatypes import RemoteEntry


class RetentionManager:
    """
    Keeps at most `keep` remote backups per logical name.
    Runs before an upload, so it makes room for the backup about to arrive.
    Best effort: a failing delete is logged and skipped.
    """

    def prune(self, store: RemoteStore, container: str, logical_name: str,
              keep: int) -> List[RemoteEntry]:
        """
        Remove old backups.
        If we have n >= keep backups, the oldest n - keep + 1 are deleted,
        so that the next upload brings us back to keep.
        keep == 0 disables the rotation.
        :param store: remote store
        :param container: container of the backups
        :param logical_name: identity of the backups, e.g. shop-backup
        :param keep: max backups to keep including the next one
        :return: entries that were deleted
        :raises RemoteListError: if the container could not be listed
        """
        if keep < 0:
            raise ValueError('keep must be >= 0')
        if keep == 0:
            return []

        matches = store.list(container, partial(_matches, logical_name))
        # newest first. the surplus is taken from the tail
        matches.sort(key=lambda x: x.created_time, reverse=True)
        if len(matches) < keep:
            logger.debug(f'{len(matches)} remote backup(s) of {logical_name}. Max {keep}.')
            return []

        surplus = matches[keep - 1:]
        deleted = []
        for entry in reversed(surplus):
            logger.info(f'Deleting old remote backup: {entry.name} ({entry.remote_id}) '
                        f'from {entry.timestamp_str} (Max {keep})')
            try:
                store.delete(entry.remote_id)
            except RemoteError as e:
                logger.error(f'Could not delete remote backup {entry.name}: {e}')
                continue
            deleted.append(entry)
        return deleted


def _matches(logical_name: str, file_name: str) -> bool:
    return matches_logical_name(file_name, logical_name)
