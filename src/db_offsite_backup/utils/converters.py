"""
helpers for converting values from one format to a different one
"""
import re
from datetime import datetime
from typing import Optional

TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S'
LOGICAL_SUFFIX = '-backup'
KNOWN_EXTENSIONS = ('.sql', '.gz')


def parse_timestamp(timestamp: str) -> datetime:
    """
    Convert the given timestamp string to a datetime object.
    Format: TIMESTAMP_FORMAT
    :param timestamp: timestamp to parse
    :return: parsed timestamp
    """
    return datetime.strptime(timestamp, TIMESTAMP_FORMAT)


def format_timestamp(timestamp: datetime) -> str:
    """
    Convert the given datetime object to the correct string.
    :param timestamp: datetime object
    :return: formatted time
    """
    return timestamp.strftime(TIMESTAMP_FORMAT)


def logical_name(database: str) -> str:
    """
    Identity shared by all backups of one database.
    :param database: database name
    :return: e.g. shop-backup
    """
    return f'{database}{LOGICAL_SUFFIX}'


def artifact_file_name(database: str, extension: str,
                       timestamp: Optional[datetime] = None) -> str:
    """
    Build the file name of a backup.
    Without timestamp the name is stable and every upload replaces the last one.
    :param database: database name
    :param extension: e.g. .sql
    :param timestamp: set for multi slot retention
    :return: shop-backup.sql or shop-backup-20240101_120000.sql
    """
    name = logical_name(database)
    if timestamp:
        name += f'-{format_timestamp(timestamp)}'
    return f'{name}{extension}'


def parse_file_name(file_name: str) -> Optional[dict]:
    """
    Parse the given file name.
    <logical_name>[-<timestamp>]<extension>
    :param file_name: name of a remote or local artifact
    :return: Dictionary with keys: logical_name, extension, timestamp (maybe None).
        None if the name is not a backup artifact.
    """
    for extension in KNOWN_EXTENSIONS:
        if file_name.endswith(extension):
            stem = file_name[:-len(extension)]
            break
    else:
        return None
    timestamp = None
    match = re.match(r'^(.+)-(\d{8}_\d{6})$', stem)
    if match:
        try:
            timestamp = parse_timestamp(match.group(2))
            stem = match.group(1)
        except ValueError:
            pass
    if not stem.endswith(LOGICAL_SUFFIX) or stem == LOGICAL_SUFFIX:
        return None
    return {
        'logical_name': stem,
        'extension': extension,
        'timestamp': timestamp,
    }


def matches_logical_name(file_name: str, name: str) -> bool:
    """
    Whether the file is a backup of exactly the given logical name.
    shop-backup matches shop-backup.sql and shop-backup-20240101_120000.sql,
    but not shop-backup-db-backup.sql.
    """
    data = parse_file_name(file_name)
    if data is not None and data['logical_name'] == name:
        return True
    # fixed names configured by the operator, e.g. all-databases.sql
    return strip_extension(file_name) == name


def strip_extension(file_name: str) -> str:
    for extension in KNOWN_EXTENSIONS:
        if file_name.endswith(extension):
            return file_name[:-len(extension)]
    return file_name
