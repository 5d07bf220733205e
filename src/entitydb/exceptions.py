"""
Database-specific exception classes.

Each operation category raises exactly one exception type, always chained
to the driver or SQLAlchemy error that caused it (``err.__cause__``).
"""
import sqlite3

import psycopg
import sqlalchemy.exc


class DatabaseError(Exception):
    """Base class for all entitydb errors.
    """


class InitializationError(DatabaseError):
    """Entity registry could not be built. The process must not start.
    """


class DatabaseDisabledError(DatabaseError):
    """Database support is switched off by configuration.
    """


class ConnectionFailure(DatabaseError):
    """Error acquiring a connection from the datasource.
    """


ConnectionAcquisitionError = ConnectionFailure


class TransactionError(DatabaseError):
    """Error beginning, committing or rolling back a transaction.
    """


class QueryError(DatabaseError):
    """Error in query syntax, execution or result shaping.
    """


class UpdateError(DatabaseError):
    """Error executing an insert, update or delete statement.
    """


class InsertError(DatabaseError):
    """Error executing an insert that returns its generated key.
    """


class ScriptError(DatabaseError):
    """Error running a SQL script. The failing statement is the cause.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    sqlalchemy.exc.OperationalError,
    sqlalchemy.exc.InterfaceError,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    sqlalchemy.exc.IntegrityError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    psycopg.DatabaseError,
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    sqlalchemy.exc.ProgrammingError,
    )

OperationalError = (
    psycopg.OperationalError,
    sqlite3.OperationalError,
    sqlalchemy.exc.OperationalError,
    )
