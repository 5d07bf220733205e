"""
PostgreSQL-specific strategy implementation.

psycopg has no ``lastrowid``; inserts that need their generated key are
run with ``RETURNING *`` and the first column of the returned row is the key.
"""
import logging
import re
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from entitydb.sql import TokenType, tokenize_sql
from entitydb.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from entitydb.options import DatabaseOptions

logger = logging.getLogger(__name__)

_RETURNING = re.compile(r'\bRETURNING\b', re.IGNORECASE)


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query,
        )

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        if not options.hostname:
            raise ValueError('PostgreSQL requires a hostname')
        if not options.database:
            raise ValueError('PostgreSQL requires a database name')

    def prepare_insert_returning(self, sql: str) -> str:
        """Append ``RETURNING *`` unless the statement already has a RETURNING clause.

        String literals and quoted identifiers are not searched.
        """
        if any(t.type == TokenType.SQL_TEXT and _RETURNING.search(t.text)
               for t in tokenize_sql(sql)):
            return sql
        return f"{sql.rstrip().rstrip(';')} RETURNING *"

    def generated_key(self, result: Any) -> Any:
        if not result.returns_rows:
            return None
        row = result.fetchone()
        return row[0] if row is not None else None
