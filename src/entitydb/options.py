import os
import sys
from dataclasses import dataclass, fields
from typing import Any

from entitydb.config import Config
from entitydb.strategy import get_available_dialects, get_strategy_class
from entitydb.strategy import is_supported_dialect

__all__ = ['DatabaseOptions']


def _scriptname() -> str | None:
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else None
    return os.path.splitext(os.path.basename(argv0))[0] if argv0 else None


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `postgresql`, `sqlite`

    Connection pooling options:
    - use_pool: Whether to use connection pooling (default: False)
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)

    Transaction options:
    - unbind_on_begin_failure: Close and release the connection when
      beginning a transaction fails (default: True). When False the
      connection stays bound to the unit of work.
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    echo_sql: bool = True
    unbind_on_begin_failure: bool = True
    # Connection pooling parameters
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or _scriptname() or 'python_console'
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)

    def __str__(self) -> str:
        return (f'{self.drivername}://{self.username or ""}@{self.hostname or ""}'
                f':{self.port or ""}/{self.database or ""}')

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'DatabaseOptions':
        """Build options from a dict, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    @classmethod
    def from_config(cls, config: Config, prefix: str = 'db') -> 'DatabaseOptions':
        """Build options from configuration keys under ``prefix``.

        ``<prefix>.type`` selects the driver and must not be empty.
        """
        drivername = config.get_string(f'{prefix}.type')
        if not drivername:
            raise ValueError(f'{prefix}.type is not configured')
        return cls(
            drivername=drivername,
            hostname=config.get_string(f'{prefix}.host') or None,
            username=config.get_string(f'{prefix}.username') or None,
            password=config.get_string(f'{prefix}.password') or None,
            database=config.get_string(f'{prefix}.database') or None,
            port=config.get_int(f'{prefix}.port'),
            timeout=config.get_int(f'{prefix}.timeout'),
            appname=config.get_string(f'{prefix}.appname') or None,
            echo_sql=config.get_bool(f'{prefix}.echo_sql', True),
            unbind_on_begin_failure=config.get_bool(f'{prefix}.unbind_on_begin_failure', True),
            use_pool=config.get_bool(f'{prefix}.pool.enabled'),
            pool_max_connections=config.get_int(f'{prefix}.pool.max_connections', 5),
            pool_max_idle_time=config.get_int(f'{prefix}.pool.max_idle_time', 300),
            pool_wait_timeout=config.get_int(f'{prefix}.pool.wait_timeout', 30),
        )
