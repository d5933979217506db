"""
Connection profiles and supported database engines.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from db_offsite_backup.errors import ConfigurationError


class EngineKind(Enum):
    """
    Represents supported database engines.
    """
    RELATIONAL = 'mysql'
    DOCUMENT = 'mongodb'

    @classmethod
    def parse(cls, driver: Optional[str]) -> 'EngineKind':
        """
        Map a configured driver name to an engine.
        :param driver: driver name, e.g. mysql or mongodb
        :return: engine kind
        """
        match (driver or '').strip().lower():
            case 'mysql' | 'mariadb' | 'relational':
                return cls.RELATIONAL
            case 'mongodb' | 'mongo' | 'document':
                return cls.DOCUMENT
            case '':
                raise ConfigurationError('No database driver configured!')
            case _:
                raise ConfigurationError(f'Unsupported database driver: {driver}')

    @property
    def default_port(self) -> int:
        return 3306 if self is EngineKind.RELATIONAL else 27017

    @property
    def system_databases(self) -> frozenset:
        """
        Databases owned by the server itself. Never backed up.
        """
        if self is EngineKind.RELATIONAL:
            return frozenset({'information_schema', 'performance_schema', 'mysql', 'sys'})
        return frozenset({'admin', 'local', 'config'})


@dataclass(frozen=True)
class ConnectionProfile:
    """
    Credentials of the server to back up. Supplied once per job.
    """
    engine: EngineKind
    host: str = 'localhost'
    username: str = ''
    password: str = ''
    port: Optional[int] = None
    auth_database: str = 'admin'

    def __repr__(self):
        # never leak the password into logs or tracebacks
        return (f'ConnectionProfile(engine={self.engine!r}, host={self.host!r}, '
                f'port={self.port!r}, username={self.username!r})')

    @property
    def effective_port(self) -> int:
        return int(self.port) if self.port else self.engine.default_port

    @classmethod
    def from_settings(cls, settings) -> 'ConnectionProfile':
        """
        Build a profile from the database section of the config.
        :param settings: dynaconf settings
        :return: connection profile
        """
        engine = EngineKind.parse(settings('database.driver', default=None))
        host = settings('database.host', default=None)
        if not host:
            raise ConfigurationError('database.host must be configured')
        port = settings('database.port', default=None)
        return cls(
            engine=engine,
            host=host,
            port=int(port) if port else None,
            username=settings('database.username', default=''),
            password=settings('database.password', default=''),
            auth_database=settings('database.auth_database', default='admin'),
        )
