"""
Database cursor wrapper for PostgreSQL and SQLite.

Implements the parts of Python DB-API 2.0 (PEP-249) the query layer uses,
adding placeholder standardization, parameter adaptation and SQL logging.
"""
import logging
import time
from collections.abc import Sequence
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

from dbaccess.converter import adapt_params
from dbaccess.sql import has_placeholders

if TYPE_CHECKING:
    from dbaccess.connection import Connection
    from dbaccess.strategy import DatabaseStrategy

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Decorator for logging SQL queries and parameters."""
    @wraps(func)
    def wrapper(self, operation: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{operation}\nargs: {args}')
        try:
            result = func(self, operation, *args, **kwargs)
            if hasattr(self.dbapi_cursor, 'statusmessage'):
                logger.debug(f'Query result: {self.dbapi_cursor.statusmessage}')
            return result
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{operation}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            self.connwrapper.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


def dumpsql_many(func):
    """Decorator for logging executemany operations."""
    @wraps(func)
    def wrapper(self, operation: str, seq_of_parameters: Sequence, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{operation}\nparams: {len(seq_of_parameters)} rows')
        try:
            return func(self, operation, seq_of_parameters, *args, **kwargs)
        except Exception:
            logger.error(f'Error with executemany:\nSQL:\n{operation}')
            raise
        finally:
            elapsed = time.time() - start
            self.connwrapper.addcall(elapsed)
            logger.debug(f'Executemany time: {elapsed:.4f}s')
    return wrapper


class Cursor:
    """Cursor wrapper delegating to the driver cursor.

    Uses the connection's strategy to convert placeholders (%s vs ?) and
    to recover generated keys.
    """

    def __init__(self, cursor: Any, connection_wrapper: 'Connection',
                 strategy: 'DatabaseStrategy') -> None:
        """Initialize cursor wrapper.

        Args:
            cursor: The underlying database cursor
            connection_wrapper: The Connection that created this cursor
            strategy: Dialect strategy of the connection
        """
        self.dbapi_cursor = cursor
        self.connwrapper = connection_wrapper
        self.strategy = strategy
        self._operation: str = ''

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def description(self) -> Sequence[tuple] | None:
        """Column descriptions for last query."""
        return self.dbapi_cursor.description

    @property
    def rowcount(self) -> int:
        """Number of rows produced/affected by last operation."""
        return self.dbapi_cursor.rowcount

    @property
    def column_names(self) -> tuple[str, ...]:
        """Column names of the last query, in select order."""
        return tuple(col[0] for col in (self.description or ()))

    def close(self) -> None:
        """Close cursor."""
        self.dbapi_cursor.close()

    def fetchall(self) -> list[tuple]:
        if self.description is None:
            return []
        return self.dbapi_cursor.fetchall()

    def _prepare(self, operation: str, params: Sequence[Any]) -> tuple[str, tuple]:
        operation = self.strategy.standardize_sql(operation, has_params=bool(params))
        self._operation = operation
        return operation, adapt_params(params)

    def _execute(self, operation: str, params: tuple) -> None:
        if params and has_placeholders(operation):
            self.dbapi_cursor.execute(operation, params)
        else:
            if params:
                logger.debug('Executed query without placeholders (ignoring args)')
            self.dbapi_cursor.execute(operation)

    @dumpsql
    def execute(self, operation: str, *args: Any) -> int:
        """Execute a database operation with positional parameters.

        Returns
            The driver's row count for the statement
        """
        operation, params = self._prepare(operation, args)
        self._execute(operation, params)
        return self.dbapi_cursor.rowcount

    @dumpsql_many
    def executemany(self, operation: str, seq_of_parameters: Sequence[Sequence[Any]]) -> list[int]:
        """Execute one statement per parameter set.

        Statements run one at a time so each set reports its own count.

        Returns
            Affected row counts, in input order; unknown counts are 0
        """
        counts = []
        for params in seq_of_parameters:
            sql, params = self._prepare(operation, params)
            self._execute(sql, params)
            counts.append(max(self.dbapi_cursor.rowcount, 0))
        return counts

    def generated_keys(self) -> tuple:
        """Keys generated by the last statement.

        Must be read before the row count of a RETURNING statement.
        """
        return self.strategy.fetch_generated_keys(self.dbapi_cursor, self._operation)
