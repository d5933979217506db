"""
config handling for dynaconf
"""
import os
from enum import Enum
from importlib.resources import files
from pathlib import Path

from dynaconf import Dynaconf, Validator
from dynaconf.validator import ValidationError

from db_offsite_backup.errors import ConfigurationError


class RemoteTarget(Enum):
    """
    Represents supported remote stores.
    """
    S3 = 'S3'
    DISK = 'Disk'


def parse_config(config_folder: Path) -> Dynaconf:
    """
    Parse config with dynaconf.
    The shipped default.toml is written to the folder on the first run.
    :param config_folder: folder containing default.toml and config.toml
    :return: settings
    :raises ConfigurationError: if the folder is not usable or a value is invalid
    """
    config_folder = Path(config_folder)
    default_config = config_folder / 'default.toml'
    if not os.path.isfile(default_config):
        try:
            config_folder.mkdir(parents=True, exist_ok=True)
            with open(default_config, 'w', encoding='utf-8') as f:
                f.write(files('db_offsite_backup.data').joinpath('default.toml').read_text())
        except OSError as e:
            raise ConfigurationError(
                f'Failed to create default config {default_config}. '
                'Consider creating the folder writeable for this user '
                f'or choose a different path. Error: {e}') from e

    settings = Dynaconf(
        envvar_prefix='DB_BACKUP',
        settings_files=['default.toml', 'config.toml'],
        root_path=str(config_folder),
        merge_enabled=True,
        validators=[
            Validator('database.driver', must_exist=True),
            Validator('database.host', must_exist=True),
            Validator('backup.staging_dir', must_exist=True),
            Validator('backup.retention', cast=int, default=1, gte=0),
            Validator('backup.max_workers', cast=int, default=1, gte=1),
            Validator('remote.target', must_exist=True,
                      is_in=[x.value for x in RemoteTarget]),
            Validator('remote.s3.bucket', must_exist=True, ne='',
                      when=Validator('remote.target', eq=RemoteTarget.S3.value)),
            Validator('remote.disk.dir', must_exist=True,
                      when=Validator('remote.target', eq=RemoteTarget.DISK.value)),
            Validator('timeouts.enumerate', cast=float, default=60),
            Validator('timeouts.dump', cast=float, default=3600),
            Validator('timeouts.remote', cast=float, default=60),
        ]
    )
    try:
        settings.validators.validate()
    except ValidationError as e:
        raise ConfigurationError(f'Invalid configuration: {e}') from e
    return settings
