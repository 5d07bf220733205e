"""
Unit of work: one connection, one optional transaction, many statements.

A UnitOfWork is the explicit context every statement runs in. It owns at
most one bound connection and must not be shared between threads.

Examples
    uow = db.unit_of_work()
    uow.begin_transaction()
    try:
        uow.update('delete from orders where id = ?', 5)
        uow.update('insert into audit (msg) values (?)', 'deleted 5')
        uow.commit_transaction()
    except Exception:
        uow.rollback_transaction()
        raise

    with db.unit_of_work() as uow:
        orders = uow.query_entity_list(Order, 'select * from orders')
"""
import importlib.resources
import logging
import pathlib
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Self, TypeVar

import pandas as pd

from entitydb.exceptions import ConnectionFailure, DatabaseDisabledError
from entitydb.exceptions import InsertError, QueryError, ScriptError
from entitydb.exceptions import TransactionError, UpdateError
from entitydb.handlers import ArrayHandler, ArrayListHandler, BeanHandler
from entitydb.handlers import BeanListHandler, BeanMapHandler
from entitydb.handlers import ColumnListHandler, CountHandler, DataFrameHandler
from entitydb.handlers import KeyedHandler, MapHandler, MapListHandler
from entitydb.handlers import ResultShaper, ScalarHandler
from entitydb.types import ResultSet

if TYPE_CHECKING:
    from entitydb.connection import ConnectionWrapper, Database

__all__ = ['UnitOfWork', 'read_script_lines']

logger = logging.getLogger(__name__)

T = TypeVar('T')


def read_script_lines(path: str | pathlib.Path, package: str | None = None) -> list[str]:
    """Read the lines of a SQL script.

    With ``package`` the path is resolved as a resource of that package,
    otherwise as a filesystem path.
    """
    if package is not None:
        text = importlib.resources.files(package).joinpath(str(path)).read_text(encoding='utf-8')
    else:
        text = pathlib.Path(path).read_text(encoding='utf-8')
    return text.splitlines()


class UnitOfWork:
    """Connection and transaction scope for a sequence of statements.
    """

    def __init__(self, database: 'Database') -> None:
        self.database = database
        self._connection: ConnectionWrapper | None = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        if self.in_transaction:
            if exc_type is not None:
                self.rollback_transaction()
            else:
                self.commit_transaction()
        self.close()

    def __repr__(self) -> str:
        state = 'in-transaction' if self.in_transaction else 'bound' if self.bound else 'unbound'
        return f'UnitOfWork({state})'

    @property
    def bound(self) -> bool:
        """True when a connection is bound to this unit of work."""
        return self._connection is not None

    @property
    def in_transaction(self) -> bool:
        return self._connection is not None and self._connection.in_transaction

    # Connection and transaction lifecycle

    def get_connection(self) -> 'ConnectionWrapper':
        """Return the bound connection, acquiring and binding one if needed.

        Raises ConnectionFailure when the datasource cannot supply one.
        """
        self.database.check_enabled()
        if self._connection is None:
            self._connection = self.database.acquire_connection()
        return self._connection

    def _unbind(self) -> None:
        conn, self._connection = self._connection, None
        if conn is not None:
            conn.close()

    def begin_transaction(self) -> None:
        """Disable auto-commit on the bound connection.

        Raises TransactionError when a transaction is already open, leaving
        it untouched, or when the connection rejects the mode change.
        """
        conn = self.get_connection()
        if conn.in_transaction:
            raise TransactionError('Nested transactions are not supported')
        try:
            conn.begin()
        except Exception as e:
            logger.error(f'Error beginning transaction: {e}')
            if self.database.options.unbind_on_begin_failure:
                try:
                    self._unbind()
                except Exception as close_error:
                    logger.debug(f'Error closing connection after failed begin: {close_error}')
            raise TransactionError(f'Error beginning transaction: {e}') from e
        logger.debug(f'Started transaction for connection {id(conn)}')

    def _end_transaction(self, action: str) -> None:
        if self._connection is None:
            raise TransactionError(f'No connection bound, nothing to {action}')
        conn = self._connection
        try:
            getattr(conn, action)()
            conn.close()
        except Exception as e:
            logger.error(f'Error on transaction {action}: {e}')
            raise TransactionError(f'Error on transaction {action}: {e}') from e
        finally:
            self._connection = None
            if not conn.closed:
                try:
                    conn.close()
                except Exception as close_error:
                    logger.debug(f'Error closing connection after {action}: {close_error}')

    def commit_transaction(self) -> None:
        """Commit, close and unbind the connection.

        The connection is unbound even when the commit fails.
        """
        self._end_transaction('commit')
        logger.debug('Committed transaction')

    def rollback_transaction(self) -> None:
        """Roll back, close and unbind the connection.

        The connection is unbound even when the rollback fails.
        """
        self._end_transaction('rollback')
        logger.warning('Rolled back the current transaction')

    @contextmanager
    def transaction(self) -> Iterator[Self]:
        """Context manager for running multiple statements in a transaction.

        Examples
            with uow.transaction():
                uow.update('delete from ...', args)
                uow.update('update ...', args)
        """
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback_transaction()
            raise
        self.commit_transaction()

    def close(self) -> None:
        """Release the bound connection. An open transaction is rolled back.
        """
        if self._connection is not None and self._connection.in_transaction:
            logger.warning('Closing unit of work with an open transaction, rolling back')
        self._unbind()

    # Queries

    def _run(self, sql: str, params: tuple, consume: Callable[[Any], Any]) -> Any:
        self.database.check_enabled()
        if self._connection is not None:
            return self._connection.execute(sql, params, consume)
        with self.database.acquire_connection() as conn:
            return conn.execute(sql, params, consume)

    def query(self, sql: str, shaper: ResultShaper, *params: Any) -> Any:
        """Execute a query and shape its rows with ``shaper``.

        Runs on the bound connection, or on a transient one released right
        after the statement when nothing is bound.
        """
        try:
            result = self._run(sql, params, ResultSet.from_cursor_result)
            value = shaper(result)
        except (ConnectionFailure, DatabaseDisabledError):
            raise
        except Exception as e:
            logger.error(f'Error running query: {e}')
            raise QueryError(f'Error running query: {e}') from e
        return value

    def query_entity(self, entity_type: type[T], sql: str, *params: Any) -> T | None:
        """First row as an entity, None when there are no rows.
        """
        field_map = self.database.registry.get(entity_type)
        return self.query(sql, BeanHandler(entity_type, field_map), *params)

    def query_entity_list(self, entity_type: type[T], sql: str, *params: Any) -> list[T]:
        """All rows as entities.
        """
        field_map = self.database.registry.get(entity_type)
        return self.query(sql, BeanListHandler(entity_type, field_map), *params)

    def query_entity_map(self, entity_type: type[T], sql: str, *params: Any) -> dict[Any, T]:
        """Entities keyed by the first column, without column translation.
        """
        return self.query(sql, BeanMapHandler(entity_type), *params)

    def query_array(self, sql: str, *params: Any) -> list[Any]:
        """First row as a list of values, empty when there are no rows.
        """
        return self.query(sql, ArrayHandler(), *params)

    def query_array_list(self, sql: str, *params: Any) -> list[list[Any]]:
        return self.query(sql, ArrayListHandler(), *params)

    def query_map(self, sql: str, *params: Any) -> dict[str, Any] | None:
        """First row as a column-name keyed dict, None when there are no rows.
        """
        return self.query(sql, MapHandler(), *params)

    def query_map_list(self, sql: str, *params: Any) -> list[dict[str, Any]]:
        return self.query(sql, MapListHandler(), *params)

    def query_field(self, sql: str, *params: Any) -> Any:
        """First column of the first row, None when there are no rows.
        """
        return self.query(sql, ScalarHandler(), *params)

    def query_field_list(self, sql: str, *params: Any) -> list[Any]:
        """First column of every row.
        """
        return self.query(sql, ColumnListHandler(), *params)

    def query_field_set(self, sql: str, *params: Any) -> list[Any]:
        """First column of every row without duplicates, in first-occurrence order.
        """
        return list(dict.fromkeys(self.query_field_list(sql, *params)))

    def query_field_map(self, column: str, sql: str, *params: Any) -> dict[Any, dict[str, Any]]:
        """Rows as dicts keyed by the value of ``column``.
        """
        return self.query(sql, KeyedHandler(column), *params)

    def query_count(self, sql: str, *params: Any) -> int:
        """Row count from a ``count(*)`` projection, 0 when there are no rows.
        """
        return self.query(sql, CountHandler(), *params)

    def query_dataframe(self, sql: str, *params: Any) -> pd.DataFrame:
        return self.query(sql, DataFrameHandler(), *params)

    # Writes

    def update(self, sql: str, *params: Any) -> int:
        """Execute an insert, update or delete and return the affected row count.
        """
        conn = self.get_connection()
        try:
            rowcount = conn.execute(sql, params)
        except Exception as e:
            logger.error(f'Error running update: {e}')
            raise UpdateError(f'Error running update: {e}') from e
        return rowcount

    def insert_return_pk(self, sql: str, *params: Any) -> Any:
        """Execute an insert and return the generated key.

        Returns None unless exactly one row was inserted.
        """
        conn = self.get_connection()
        strategy = conn.strategy

        def consume(result: Any) -> Any:
            if result.rowcount != 1:
                return None
            return strategy.generated_key(result)

        try:
            key = conn.execute(strategy.prepare_insert_returning(sql), params, consume)
        except Exception as e:
            logger.error(f'Error running insert: {e}')
            raise InsertError(f'Error running insert: {e}') from e
        return key

    def init_sql(self, path: str | pathlib.Path, package: str | None = None) -> int:
        """Run a SQL script, one statement per line.

        Blank lines and ``--`` comment lines are skipped. The first failing
        statement aborts the script; statements already run are only undone
        when the caller opened a transaction. Returns the number of
        statements run.
        """
        try:
            lines = read_script_lines(path, package)
        except Exception as e:
            logger.error(f'Error reading SQL script {path}: {e}')
            raise ScriptError(f'Error reading SQL script {path}: {e}') from e

        count = 0
        for lineno, line in enumerate(lines, 1):
            sql = line.strip()
            if not sql or sql.startswith('--'):
                continue
            try:
                self.update(sql)
            except UpdateError as e:
                logger.error(f'Error running SQL script {path} at line {lineno}: {sql}')
                raise ScriptError(f'Error running SQL script {path} at line {lineno}: {e}') from e.__cause__
            count += 1
        logger.debug(f'Ran {count} statements from {path}')
        return count

    def field_map(self, entity_type: type) -> Mapping[str, str] | None:
        """Column translation table used for an entity type."""
        return self.database.registry.get(entity_type)
