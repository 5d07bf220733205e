"""
SQLite-specific strategy implementation.

- qmark placeholders
- date/datetime converters registered on every new connection
- generated keys read from ``cursor.lastrowid``
"""
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from entitydb.strategy.base import DatabaseStrategy, register_strategy
from entitydb.types import AdapterRegistry

if TYPE_CHECKING:
    from entitydb.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        connect_args: dict[str, Any] = {
            'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        }
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    def configure_connection(self, dbapi_connection: Any) -> None:
        AdapterRegistry().sqlite(dbapi_connection)

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        if not options.database:
            raise ValueError('SQLite requires a database path')

    def generated_key(self, result: Any) -> Any:
        key = result.lastrowid
        logger.debug(f'SQLite lastrowid: {key}')
        return key
