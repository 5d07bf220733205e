"""
Database connection handling with SQLAlchemy.

This module provides:
1. Engine creation and management through a thread-safe registry
   (the engine is the datasource: ``engine.connect()`` acquires a connection)
2. The `ConnectionWrapper` class that wraps SQLAlchemy connections with
   statement execution, statistics and transaction state
3. The `Database` class tying options, engine and entity registry together
4. The `connect()` function for creating a `Database` from options or config
"""
import atexit
import logging
import pathlib
import threading
import time
from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from entitydb.config import Config
from entitydb.entity import EntityRegistry, get_entity_registry
from entitydb.exceptions import ConnectionFailure, DatabaseDisabledError
from entitydb.options import DatabaseOptions
from entitydb.strategy import DatabaseStrategy, get_strategy

if TYPE_CHECKING:
    from entitydb.unit import UnitOfWork

__all__ = [
    'ConnectionWrapper',
    'Database',
    'connect',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    return get_strategy(options.drivername).build_connection_url(options)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = repr(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)
        url = create_url_from_options(options)

        engine_kwargs: dict[str, Any] = {'echo': False}
        engine_kwargs.update(strategy.get_engine_kwargs(options))

        if not options.use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = options.pool_max_connections
            engine_kwargs['pool_recycle'] = options.pool_max_idle_time
            engine_kwargs['pool_timeout'] = options.pool_wait_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True
            engine_kwargs['pool_reset_on_return'] = 'rollback'

        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        @sa.event.listens_for(engine, 'connect')
        def _configure(dbapi_connection: Any, connection_record: Any) -> None:
            strategy.configure_connection(dbapi_connection)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def dumpsql(func):
    """Decorator for logging SQL statements, parameters and timing."""
    @wraps(func)
    def wrapper(self, sql: str, params: tuple = (), *args: Any, **kwargs: Any):
        start = time.time()
        if self.options is None or self.options.echo_sql:
            logger.debug(f'SQL:\n{sql}\nargs: {params}')
        try:
            return func(self, sql, params, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {params}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection object to track calls and execution time

    This class provides a thin wrapper around SQLAlchemy connection objects that:
    1. Rewrites statements into the driver paramstyle before execution
    2. Tracks query execution counts and timing
    3. Tracks whether auto-commit is disabled (an explicit transaction is open)
    4. Supports context manager protocol for explicit resource management
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: DatabaseOptions | None = None) -> None:
        self.sa_connection = sa_connection
        self.options = options
        self._dialect = sa_connection.dialect.name
        self.strategy: DatabaseStrategy = get_strategy(self._dialect)
        self.calls = 0
        self.time = 0.0
        self.in_transaction = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'ConnectionWrapper(dialect={self.dialect!r}, in_transaction={self.in_transaction})'

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self._dialect

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    @dumpsql
    def execute(self, sql: str, params: tuple = (),
                consume: Callable[[sa.engine.CursorResult], Any] | None = None) -> Any:
        """Execute a statement with positional parameters.

        ``consume`` reads whatever is needed from the cursor result before
        it is released; the affected row count is returned by default.
        Outside an explicit transaction the statement is committed at once
        (rolled back on error).
        """
        processed_sql, processed_args = self.strategy.prepare(sql, params)
        try:
            if processed_args:
                result = self.sa_connection.exec_driver_sql(processed_sql, processed_args)
            else:
                result = self.sa_connection.exec_driver_sql(processed_sql)
            value = consume(result) if consume is not None else result.rowcount
            if not self.in_transaction:
                self.sa_connection.commit()
            return value
        except Exception:
            if not self.in_transaction and self.sa_connection.in_transaction():
                self.sa_connection.rollback()
            raise

    def begin(self) -> None:
        """Disable auto-commit: open an explicit transaction.
        """
        if self.sa_connection.in_transaction():
            self.sa_connection.commit()
        self.sa_connection.begin()
        self.in_transaction = True

    def commit(self) -> None:
        self.sa_connection.commit()
        self.in_transaction = False

    def rollback(self) -> None:
        self.sa_connection.rollback()
        self.in_transaction = False

    def close(self) -> None:
        """Close the SQLAlchemy connection, returning it to the pool.

        Work of an open transaction that was not committed is rolled back.
        """
        if self.sa_connection.closed:
            return
        self.sa_connection.close()
        self.in_transaction = False
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per query)')


class Database:
    """Datasource plus entity registry.

    A Database built without options is disabled: every operation of its
    units of work raises DatabaseDisabledError.
    """

    def __init__(self, options: DatabaseOptions | None = None,
                 registry: EntityRegistry | None = None,
                 engine: Engine | None = None) -> None:
        self.options = options
        self._registry = registry
        self._engine = engine

    @classmethod
    def from_config(cls, config: Config, registry: EntityRegistry | None = None,
                    prefix: str = 'db') -> 'Database':
        """Build a Database from configuration, disabled when ``<prefix>.type`` is empty.
        """
        if not config.get_string(f'{prefix}.type'):
            logger.info(f'{prefix}.type is not configured, database support is disabled')
            return cls(None, registry)
        return cls(DatabaseOptions.from_config(config, prefix), registry)

    def __repr__(self) -> str:
        return f'Database({self.options if self.enabled else "disabled"})'

    @property
    def enabled(self) -> bool:
        return self.options is not None

    @property
    def dialect(self) -> str | None:
        return self.options.drivername if self.enabled else None

    @property
    def registry(self) -> EntityRegistry:
        return self._registry if self._registry is not None else get_entity_registry()

    def check_enabled(self) -> None:
        if not self.enabled:
            raise DatabaseDisabledError('Database support is not configured')

    @property
    def engine(self) -> Engine:
        self.check_enabled()
        if self._engine is None:
            self._engine = get_engine_for_options(self.options)
        return self._engine

    def acquire_connection(self) -> ConnectionWrapper:
        """Acquire a new connection from the datasource.
        """
        engine = self.engine
        try:
            sa_connection = engine.connect()
        except Exception as e:
            logger.error(f'Error acquiring connection for {self.options}: {e}')
            raise ConnectionFailure(f'Could not acquire connection: {e}') from e
        logger.debug(f'Acquired connection for {self.options.drivername}')
        return ConnectionWrapper(sa_connection, self.options)

    def unit_of_work(self) -> 'UnitOfWork':
        """Create a new unit of work. Do not share it between threads.
        """
        from entitydb.unit import UnitOfWork
        self.check_enabled()
        return UnitOfWork(self)

    def dispose(self) -> None:
        """Dispose the engine and its pooled connections."""
        if self._engine is not None:
            self._engine.dispose()


def connect(options: DatabaseOptions | Config | dict[str, Any] | str | pathlib.Path,
            registry: EntityRegistry | None = None, **kw: Any) -> Database:
    """Create a Database

    Args:
        options: Can be:
                - DatabaseOptions object
                - Config object (``db.*`` keys)
                - Dictionary of options
                - Path to a YAML configuration file
        registry: Entity registry, the process-wide one by default
        **kw: Additional keyword arguments to override dictionary options

    Returns
        Database object, disabled when a configuration has no ``db.type``
    """
    if isinstance(options, DatabaseOptions):
        return Database(options, registry)
    if isinstance(options, (str, pathlib.Path)):
        options = Config.from_file(options)
    if isinstance(options, Config):
        return Database.from_config(options, registry)
    return Database(DatabaseOptions.from_dict({**options, **kw}), registry)
