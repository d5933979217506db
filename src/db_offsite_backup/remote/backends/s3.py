from pathlib import Path
from typing import Callable, List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, \
    PartialCredentialsError
from loguru import logger

from db_offsite_backup.errors import RemoteAuthError, RemoteDeleteError, RemoteListError, \
    RemoteUploadError
from db_offsite_backup.remote.backends.base import RemoteStore
from db_offsite_backup.utils.datatypes import RemoteEntry

AUTH_ERROR_CODES = {
    'AccessDenied',
    'AllAccessDisabled',
    'ExpiredToken',
    'InvalidAccessKeyId',
    'InvalidToken',
    'SignatureDoesNotMatch',
    '401',
    '403',
}


def _error_code(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Code', 'Unknown')


class S3Store(RemoteStore):
    """
    S3 (or S3 compatible) store.
    A container is a key prefix inside the bucket. Remote ids are object keys.
    """

    def __init__(self, s3_bucket: str, s3_endpoint: Optional[str] = None,
                 s3_access_key_id: Optional[str] = None,
                 s3_secret_access_key: Optional[str] = None,
                 region: Optional[str] = None,
                 profile: Optional[str] = None,
                 timeout: float = 60):
        """
        :param s3_bucket: bucket name
        :param s3_endpoint: endpoint url. None for AWS.
        :param s3_access_key_id: access key. Uses the default credential chain if unset.
        :param s3_secret_access_key: secret key
        :param region: region name
        :param profile: name of a profile in the shared credentials file
        :param timeout: connect and read timeout for every call
        """
        if not s3_bucket:
            raise ValueError('s3_bucket must be provided when using the S3 target')
        self._s3_bucket = s3_bucket
        self._s3_endpoint = s3_endpoint

        session = boto3.session.Session(
            aws_access_key_id=s3_access_key_id,
            aws_secret_access_key=s3_secret_access_key,
            region_name=region,
            profile_name=profile,
        )
        # clients are thread safe, resources are not. uploads may run in parallel
        self.client = session.client(
            's3',
            endpoint_url=self._s3_endpoint,
            config=Config(connect_timeout=timeout, read_timeout=timeout,
                          retries={'max_attempts': 3}),
        )

    @staticmethod
    def _prefix(container: str) -> str:
        container = (container or '').strip('/')
        return f'{container}/' if container else ''

    def key(self, container: str, name: str) -> str:
        return f'{self._prefix(container)}{name}'

    def list(self, container: str,
             name_filter: Optional[Callable[[str], bool]] = None) -> List[RemoteEntry]:
        prefix = self._prefix(container)
        entries = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self._s3_bucket, Prefix=prefix):
                for obj in page.get('Contents', []):
                    name = obj['Key'][len(prefix):]
                    # only direct children of the container
                    if not name or '/' in name:
                        continue
                    if name_filter and not name_filter(name):
                        continue
                    entries.append(RemoteEntry(remote_id=obj['Key'], name=name,
                                               created_time=obj['LastModified']))
        except ClientError as e:
            code = _error_code(e)
            if code in AUTH_ERROR_CODES:
                raise RemoteAuthError(f'S3 list denied ({code}): {e}') from e
            raise RemoteListError(f'S3 list failed ({code}): {e}') from e
        except (NoCredentialsError, PartialCredentialsError) as e:
            raise RemoteAuthError(f'No usable S3 credentials: {e}') from e
        except BotoCoreError as e:
            raise RemoteListError(f'S3 list failed: {e}') from e
        return sorted(entries, key=lambda x: x.created_time)

    def upload(self, container: str, name: str, local_path: Path,
               mime_type: str = 'application/octet-stream') -> str:
        key = self.key(container, name)
        logger.debug(f'Uploading {local_path} to s3://{self._s3_bucket}/{key}')
        try:
            self.client.upload_file(str(local_path), self._s3_bucket, key,
                                    ExtraArgs={'ContentType': mime_type})
        except ClientError as e:
            code = _error_code(e)
            if code in AUTH_ERROR_CODES:
                raise RemoteAuthError(f'S3 upload of {name} denied ({code}): {e}') from e
            raise RemoteUploadError(f'S3 upload of {name} failed ({code}): {e}') from e
        except S3UploadFailedError as e:
            # the transfer manager wraps the client error into a message
            if any(code in str(e) for code in AUTH_ERROR_CODES if not code.isdigit()):
                raise RemoteAuthError(f'S3 upload of {name} denied: {e}') from e
            raise RemoteUploadError(f'S3 upload of {name} failed: {e}') from e
        except (NoCredentialsError, PartialCredentialsError) as e:
            raise RemoteAuthError(f'No usable S3 credentials: {e}') from e
        except (BotoCoreError, OSError) as e:
            raise RemoteUploadError(f'S3 upload of {name} failed: {e}') from e
        return key

    def delete(self, remote_id: str) -> None:
        logger.debug(f'Deleting s3://{self._s3_bucket}/{remote_id}')
        try:
            self.client.delete_object(Bucket=self._s3_bucket, Key=remote_id)
        except ClientError as e:
            raise RemoteDeleteError(
                f'S3 delete of {remote_id} failed ({_error_code(e)}): {e}') from e
        except BotoCoreError as e:
            raise RemoteDeleteError(f'S3 delete of {remote_id} failed: {e}') from e
