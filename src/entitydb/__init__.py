"""
Entity mapping and statement execution on top of SQLAlchemy.

All query/update operations can be called either as:
- Module functions: edb.query_entity(uow, Order, sql, *args)
- UnitOfWork methods: uow.query_entity(Order, sql, *args)

Typical start-up:

    import entitydb as edb

    edb.init_entity_registry('myapp.entities')
    db = edb.connect(edb.Config.from_file('app.yaml'))
    with db.unit_of_work() as uow:
        order = uow.query_entity(Order, 'select * from orders where id = ?', 5)
"""
__version__ = '0.1.0'

from pathlib import Path
from typing import Any, TypeVar

from entitydb.config import Config
from entitydb.connection import ConnectionWrapper, Database, connect
from entitydb.entity import EntityRegistry, camel_to_underscore, column
from entitydb.entity import entity, find_entities, get_entity_registry
from entitydb.entity import init_entity_registry
from entitydb.exceptions import ConnectionAcquisitionError, ConnectionFailure
from entitydb.exceptions import DatabaseDisabledError, DatabaseError
from entitydb.exceptions import DbConnectionError, InitializationError
from entitydb.exceptions import InsertError, IntegrityError, OperationalError
from entitydb.exceptions import ProgrammingError, QueryError, ScriptError
from entitydb.exceptions import TransactionError, UpdateError
from entitydb.options import DatabaseOptions
from entitydb.unit import UnitOfWork

T = TypeVar('T')


def query_entity(uow: UnitOfWork, entity_type: type[T], sql: str, *args: Any) -> T | None:
    """Execute a query and return the first row as an entity.
    """
    return uow.query_entity(entity_type, sql, *args)


def query_entity_list(uow: UnitOfWork, entity_type: type[T], sql: str, *args: Any) -> list[T]:
    """Execute a query and return all rows as entities.
    """
    return uow.query_entity_list(entity_type, sql, *args)


def query_entity_map(uow: UnitOfWork, entity_type: type[T], sql: str, *args: Any) -> dict[Any, T]:
    """Execute a query and return entities keyed by the first column.
    """
    return uow.query_entity_map(entity_type, sql, *args)


def query_array(uow: UnitOfWork, sql: str, *args: Any) -> list[Any]:
    """Execute a query and return the first row as a list.
    """
    return uow.query_array(sql, *args)


def query_array_list(uow: UnitOfWork, sql: str, *args: Any) -> list[list[Any]]:
    """Execute a query and return all rows as lists.
    """
    return uow.query_array_list(sql, *args)


def query_map(uow: UnitOfWork, sql: str, *args: Any) -> dict[str, Any] | None:
    """Execute a query and return the first row as a dict.
    """
    return uow.query_map(sql, *args)


def query_map_list(uow: UnitOfWork, sql: str, *args: Any) -> list[dict[str, Any]]:
    """Execute a query and return all rows as dicts.
    """
    return uow.query_map_list(sql, *args)


def query_field(uow: UnitOfWork, sql: str, *args: Any) -> Any:
    """Execute a query and return a single scalar value.
    """
    return uow.query_field(sql, *args)


def query_field_list(uow: UnitOfWork, sql: str, *args: Any) -> list[Any]:
    """Execute a query and return a single column as a list.
    """
    return uow.query_field_list(sql, *args)


def query_field_set(uow: UnitOfWork, sql: str, *args: Any) -> list[Any]:
    """Execute a query and return the distinct values of a single column.
    """
    return uow.query_field_set(sql, *args)


def query_field_map(uow: UnitOfWork, column: str, sql: str, *args: Any) -> dict[Any, dict[str, Any]]:
    """Execute a query and return rows keyed by the value of a column.
    """
    return uow.query_field_map(column, sql, *args)


def query_count(uow: UnitOfWork, sql: str, *args: Any) -> int:
    """Execute a count(*) query and return the count.
    """
    return uow.query_count(sql, *args)


def update(uow: UnitOfWork, sql: str, *args: Any) -> int:
    """Execute an insert, update or delete and return affected row count.
    """
    return uow.update(sql, *args)


delete = update
insert = update


def insert_return_pk(uow: UnitOfWork, sql: str, *args: Any) -> Any:
    """Execute an insert and return the generated key, None unless one row was inserted.
    """
    return uow.insert_return_pk(sql, *args)


def init_sql(uow: UnitOfWork, path: str | Path, package: str | None = None) -> int:
    """Run a SQL script, one statement per line.
    """
    return uow.init_sql(path, package)


__all__ = [
    'connect',
    'Config',
    'ConnectionWrapper',
    'Database',
    'DatabaseOptions',
    'UnitOfWork',
    'EntityRegistry',
    'entity',
    'column',
    'camel_to_underscore',
    'find_entities',
    'init_entity_registry',
    'get_entity_registry',
    'query_entity',
    'query_entity_list',
    'query_entity_map',
    'query_array',
    'query_array_list',
    'query_map',
    'query_map_list',
    'query_field',
    'query_field_list',
    'query_field_set',
    'query_field_map',
    'query_count',
    'update',
    'delete',
    'insert',
    'insert_return_pk',
    'init_sql',
    'DatabaseError',
    'InitializationError',
    'DatabaseDisabledError',
    'ConnectionFailure',
    'ConnectionAcquisitionError',
    'TransactionError',
    'QueryError',
    'UpdateError',
    'InsertError',
    'ScriptError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
]
