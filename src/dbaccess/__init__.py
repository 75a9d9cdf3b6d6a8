"""
Pooled database access for PostgreSQL and SQLite.

Connections come from a fixed-size ConnectionPool (or directly from
`connect`), run queries in auto-commit mode, and open scoped Transactions
with an explicit isolation level. Query results come back as ResultSet /
ResultRow objects or are mapped onto record types such as dataclasses.
"""
__version__ = '0.1.0'

from typing import Any

from dbaccess.connection import Connection
from dbaccess.connector import Connector
from dbaccess.converter import TypeConverter, parse_bool, parse_decimal
from dbaccess.converter import parse_float, parse_int
from dbaccess.dao import AbstractDAO
from dbaccess.exceptions import ConnectionFailure, DataAccessError
from dbaccess.exceptions import DataAccessFailureError, DataAccessTimeoutError
from dbaccess.exceptions import DatabaseError, DbConnectionError
from dbaccess.exceptions import IllegalStateError, IntegrityError
from dbaccess.exceptions import InvariantViolation, OperationalError
from dbaccess.exceptions import PoolConnectionError, PoolTimeout
from dbaccess.exceptions import ProgrammingError
from dbaccess.exceptions import TypeConversionError
from dbaccess.hints import Alias, Ignore, alias, ignore
from dbaccess.options import DEFAULT_BATCH_SIZE, DatabaseOptions
from dbaccess.pool import ConnectionPool, create_pool
from dbaccess.profile import get_profile
from dbaccess.result import ResultRow, ResultSet, UpdateResult
from dbaccess.transaction import IsolationLevel, Savepoint, Transaction
from dbaccess.types import Char


def connect(options: DatabaseOptions | None = None, **kw: Any) -> Connection:
    """Open a single unpooled connection.

    Args:
        options: Can be:
                - DatabaseOptions object
                - Dictionary of options
                - SQLAlchemy URL string
                - None (options given as keyword arguments)
        **kw: Additional keyword arguments to override options

    Returns
        Connection in auto-commit mode; close it when done
    """
    return Connector(options, **kw).connect()


__all__ = [
    'connect',
    'create_pool',
    'Connection',
    'ConnectionPool',
    'Connector',
    'Transaction',
    'IsolationLevel',
    'Savepoint',
    'DatabaseOptions',
    'DEFAULT_BATCH_SIZE',
    'ResultRow',
    'ResultSet',
    'UpdateResult',
    'AbstractDAO',
    'TypeConverter',
    'Char',
    'Alias',
    'Ignore',
    'alias',
    'ignore',
    'get_profile',
    'parse_bool',
    'parse_int',
    'parse_float',
    'parse_decimal',
    'DatabaseError',
    'ConnectionFailure',
    'PoolConnectionError',
    'PoolTimeout',
    'IllegalStateError',
    'InvariantViolation',
    'TypeConversionError',
    'DataAccessError',
    'DataAccessTimeoutError',
    'DataAccessFailureError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
]
