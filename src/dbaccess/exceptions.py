"""
Database access exception classes.
"""
import re
import sqlite3

import psycopg
import sqlalchemy.exc

RETRYABLE_PATTERNS = [
    # SSL/TLS errors
    r'ssl',
    r'tls',
    # Connection drops
    r'connection.*(closed|reset|refused|lost|terminated|broken)',
    r'server closed',
    r'eof detected',
    r'broken pipe',
    # Timeouts
    r'timeout',
    r'timed out',
    # Network issues
    r'could not connect',
    r'no route to host',
    r'network.*(unreachable|error)',
    r'host.*(unreachable|down)',
    # Database unavailable
    r'database.*unavailable',
    r'database is locked',
    r'too many connections',
]

_RETRYABLE_REGEX = re.compile('|'.join(RETRYABLE_PATTERNS), re.IGNORECASE)


def is_retryable_error(exc: BaseException) -> bool:
    """Check if an exception represents a transient error worth retrying.

    Returns True for errors that are likely transient (dropped or refused
    connections, timeouts, network trouble, a busy database) and False for
    errors that will fail again (bad credentials, missing database files,
    syntax errors).

    :param exc: The exception to check.
    :returns: True if the error is likely transient and worth retrying.
    """
    error_msg = str(exc).lower()
    return bool(_RETRYABLE_REGEX.search(error_msg))


class DatabaseError(Exception):
    """Base class for all dbaccess errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing a physical database connection.
    """


class PoolConnectionError(ConnectionFailure):
    """A pool could not open or replace one of its connections.

    The pool stays usable after this error.
    """


class PoolTimeout(DatabaseError):
    """No pooled connection became available within the wait bound.
    """


class IllegalStateError(DatabaseError, RuntimeError):
    """Operation called on an object in the wrong state.

    Raised for queries on a connection with an active transaction, any use
    of a finished transaction, nested transactions and acquiring from a
    closed pool.
    """


class InvariantViolation(DatabaseError):
    """A connection was released to a pool that does not track it as in use.
    """


class TypeConversionError(DatabaseError, TypeError):
    """No conversion rule turns a value into the requested type.
    """

    def __init__(self, member: str, source_type: type, target: object,
                 message: str | None = None) -> None:
        self.member = member
        self.source_type = source_type
        self.target = target
        target_name = getattr(target, '__name__', repr(target))
        super().__init__(message or (
            f'Object could not be converted: {member} is '
            f'{source_type.__name__}, target is {target_name}'))


class DataAccessError(DatabaseError):
    """Base class for errors raised by data access objects.
    """


class DataAccessTimeoutError(DataAccessError):
    """A data access object timed out waiting for a pooled connection.
    """


class DataAccessFailureError(DataAccessError):
    """A data access object failed while talking to the database.
    """


DriverError = (
    psycopg.Error,
    sqlite3.Error,
    )

DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    sqlalchemy.exc.OperationalError,
    sqlalchemy.exc.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    sqlite3.ProgrammingError,
    )

OperationalError = (
    psycopg.OperationalError,
    sqlite3.OperationalError,
    )
