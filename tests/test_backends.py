import os
import time

import boto3
import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError
from botocore.stub import Stubber
from moto import mock_aws

from db_offsite_backup.errors import RemoteAuthError, RemoteDeleteError, RemoteListError, \
    RemoteUploadError
from db_offsite_backup.remote.backends.disk import DiskStore
from db_offsite_backup.remote.backends.s3 import S3Store
from db_offsite_backup.remote.uploader import RemoteUploader
from db_offsite_backup.utils.converters import matches_logical_name
from db_offsite_backup.utils.datatypes import BackupArtifact


@pytest.fixture
def dump_file(tmp_path):
    path = tmp_path / 'shop-backup.sql'
    path.write_text('-- dump of shop')
    return path


@pytest.fixture
def aws_credentials(monkeypatch):
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def s3_store(aws_credentials):
    with mock_aws():
        boto3.client('s3', region_name='us-east-1').create_bucket(Bucket='backups')
        yield S3Store(s3_bucket='backups', region='us-east-1')


class TestDiskStore:
    def test_requires_existing_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DiskStore(tmp_path / 'missing')

    def test_upload_list_delete(self, tmp_path, dump_file):
        remote = tmp_path / 'remote'
        remote.mkdir()
        store = DiskStore(remote)

        remote_id = store.upload('nightly', 'shop-backup.sql', dump_file)

        assert remote_id == os.path.join('nightly', 'shop-backup.sql')
        assert (remote / remote_id).read_text() == '-- dump of shop'
        # no temporary files stay behind
        assert os.listdir(remote / 'nightly') == ['shop-backup.sql']
        (entry,) = store.list('nightly')
        assert entry.name == 'shop-backup.sql'
        assert entry.remote_id == remote_id

        store.delete(remote_id)
        assert store.list('nightly') == []

    def test_list_missing_container(self, tmp_path):
        assert DiskStore(tmp_path).list('nothing-here') == []

    def test_list_sorted_and_filtered(self, tmp_path, dump_file):
        store = DiskStore(tmp_path)
        for i, name in enumerate(['shop-backup-20240102_000000.sql',
                                  'shop-backup-20240101_000000.sql',
                                  'crm-backup.sql']):
            store.upload('c', name, dump_file)
            path = tmp_path / 'c' / name
            os.utime(path, (time.time() - 100 * (3 - i), time.time() - 100 * (3 - i)))

        entries = store.list('c', lambda x: matches_logical_name(x, 'shop-backup'))
        assert [x.name for x in entries] == ['shop-backup-20240102_000000.sql',
                                             'shop-backup-20240101_000000.sql']

    def test_upload_missing_file(self, tmp_path):
        with pytest.raises(RemoteUploadError):
            DiskStore(tmp_path).upload('c', 'x.sql', tmp_path / 'nope.sql')
        assert os.listdir(tmp_path / 'c') == []

    def test_delete_missing_is_fine(self, tmp_path):
        DiskStore(tmp_path).delete('c/gone.sql')

    def test_delete_error(self, tmp_path):
        (tmp_path / 'c' / 'dir.sql').mkdir(parents=True)
        with pytest.raises(RemoteDeleteError):
            DiskStore(tmp_path).delete('c/dir.sql')


class TestS3Store:
    def test_requires_bucket(self, aws_credentials):
        with pytest.raises(ValueError):
            S3Store(s3_bucket='')

    def test_upload_list_delete(self, s3_store, dump_file):
        remote_id = s3_store.upload('nightly', 'shop-backup.sql', dump_file, 'application/sql')
        assert remote_id == 'nightly/shop-backup.sql'

        obj = s3_store.client.get_object(Bucket='backups', Key=remote_id)
        assert obj['Body'].read() == b'-- dump of shop'
        assert obj['ContentType'] == 'application/sql'

        (entry,) = s3_store.list('nightly')
        assert entry.name == 'shop-backup.sql'
        assert entry.remote_id == remote_id

        s3_store.delete(remote_id)
        assert s3_store.list('nightly') == []

    def test_list_only_direct_children(self, s3_store, dump_file):
        s3_store.upload('nightly', 'shop-backup.sql', dump_file)
        s3_store.upload('nightly/archive', 'shop-backup.sql', dump_file)
        s3_store.upload('', 'root-backup.sql', dump_file)

        assert [x.name for x in s3_store.list('nightly')] == ['shop-backup.sql']
        assert [x.name for x in s3_store.list('')] == ['root-backup.sql']

    def test_missing_bucket_upload_fails(self, aws_credentials, dump_file):
        with mock_aws():
            store = S3Store(s3_bucket='does-not-exist', region='us-east-1')
            with pytest.raises(RemoteUploadError) as e:
                store.upload('c', 'shop-backup.sql', dump_file)
            assert not isinstance(e.value, RemoteAuthError)

    def test_uploader_replaces_object(self, s3_store, tmp_path):
        for content in ('first', 'second'):
            path = tmp_path / 'shop-backup.sql'
            path.write_text(content)
            artifact = BackupArtifact('shop', path, 'shop-backup', 'shop-backup.sql')
            RemoteUploader(keep=1).upload(s3_store, 'nightly', artifact)
            assert not path.exists()

        (entry,) = s3_store.list('nightly')
        assert s3_store.client.get_object(
            Bucket='backups', Key=entry.remote_id)['Body'].read() == b'second'

    def test_missing_bucket_list_fails(self, aws_credentials):
        with mock_aws():
            store = S3Store(s3_bucket='does-not-exist', region='us-east-1')
            with pytest.raises(RemoteListError) as e:
                store.list('c')
            assert not isinstance(e.value, RemoteAuthError)

    def test_access_denied_on_list_is_auth_error(self, s3_store):
        with Stubber(s3_store.client) as stubber:
            stubber.add_client_error('list_objects_v2', service_error_code='AccessDenied',
                                     http_status_code=403)
            with pytest.raises(RemoteAuthError):
                s3_store.list('nightly')

    @pytest.mark.parametrize('error', [
        ClientError({'Error': {'Code': 'InvalidAccessKeyId', 'Message': 'unknown key'}},
                    'PutObject'),
        S3UploadFailedError('Failed to upload shop-backup.sql to backups/nightly/shop-backup.sql: '
                            'An error occurred (AccessDenied) when calling the PutObject '
                            'operation: Access Denied'),
    ])
    def test_access_denied_on_upload_is_auth_error(self, s3_store, dump_file, monkeypatch,
                                                   error):
        def upload_file(*args, **kwargs):
            raise error

        monkeypatch.setattr(s3_store.client, 'upload_file', upload_file)
        with pytest.raises(RemoteAuthError):
            s3_store.upload('nightly', 'shop-backup.sql', dump_file)

    @pytest.mark.parametrize('error', [
        ClientError({'Error': {'Code': 'NoSuchBucket', 'Message': 'gone'}}, 'PutObject'),
        S3UploadFailedError('Failed to upload shop-backup.sql to backups/nightly/shop-backup.sql: '
                            'An error occurred (SlowDown) when calling the PutObject '
                            'operation: Please reduce your request rate'),
    ])
    def test_other_upload_errors_are_upload_errors(self, s3_store, dump_file, monkeypatch,
                                                   error):
        def upload_file(*args, **kwargs):
            raise error

        monkeypatch.setattr(s3_store.client, 'upload_file', upload_file)
        with pytest.raises(RemoteUploadError) as e:
            s3_store.upload('nightly', 'shop-backup.sql', dump_file)
        assert not isinstance(e.value, RemoteAuthError)
