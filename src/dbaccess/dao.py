"""
Data access object base class.

Subclasses describe their work as functions of a pooled Connection (or
Transaction) and use the helpers below to run them and shape the result.
Pool timeouts and database failures surface as DataAccessError subclasses.

Examples
    class FruitDAO(AbstractDAO):

        def names(self) -> tuple[str, ...]:
            return self.value_list(
                lambda cn: cn.query_all('select value from fruit order by id'),
                lambda row: row.get_str('value'))

        def rename(self, fruit_id: int, value: str) -> bool:
            return self.updated(
                lambda cn: cn.execute('update fruit set value = ? where id = ?', value, fruit_id))
"""
import logging
from collections.abc import Callable, Hashable
from types import MappingProxyType
from typing import Any, TypeVar

from dbaccess.connection import Connection
from dbaccess.exceptions import DataAccessFailureError, DataAccessTimeoutError
from dbaccess.exceptions import DbConnectionError, DriverError, PoolTimeout
from dbaccess.pool import ConnectionPool
from dbaccess.result import CaseInsensitiveDict, ResultRow, ResultSet
from dbaccess.transaction import IsolationLevel, Transaction

__all__ = ['AbstractDAO']

logger = logging.getLogger(__name__)

R = TypeVar('R')
K = TypeVar('K', bound=Hashable)
V = TypeVar('V')

ConnectionFunction = Callable[[Connection], R]


class AbstractDAO:
    """Base class for data access objects backed by a ConnectionPool.

    Args:
        pool: Pool that supplies connections
        acquire_timeout: Seconds to wait for a connection; None uses the
            pool's default
    """

    def __init__(self, pool: ConnectionPool, acquire_timeout: float | None = None) -> None:
        self.pool = pool
        self.acquire_timeout = acquire_timeout

    def call(self, fn: Callable[[Connection], R]) -> R:
        """Run `fn` on a pooled connection.

        Raises
            DataAccessTimeoutError: If no connection became available
            DataAccessFailureError: If the database or connection failed
        """
        try:
            return self.pool.with_connection(fn, self.acquire_timeout)
        except PoolTimeout as err:
            raise DataAccessTimeoutError('Fetching an available connection timed out') from err
        except DriverError + DbConnectionError as err:
            logger.debug(f'{type(self).__name__} failed: {err}')
            raise DataAccessFailureError(f'A database error occurred: {err}') from err

    def transaction(self, level: IsolationLevel, fn: Callable[[Transaction], R]) -> R:
        """Run `fn` in a transaction on a pooled connection."""
        return self.call(lambda cn: cn.run_in_transaction(level, fn))

    def row_count(self, fn: ConnectionFunction[ResultSet]) -> int:
        return self.call(fn).row_count

    def updated(self, fn: ConnectionFunction[ResultSet]) -> bool:
        """True if exactly one row was affected."""
        return self.row_count(fn) == 1

    def id(self, fn: ConnectionFunction[ResultSet]) -> Any:
        """Generated key of a statement that affected exactly one row, else None."""
        result = self.call(fn)
        return result.generated_key if result.row_count == 1 else None

    def ids(self, fn: ConnectionFunction[ResultSet]) -> tuple:
        return self.call(fn).generated_keys

    def value(self, fn: ConnectionFunction[ResultRow | None],
              extractor: Callable[[ResultRow], R]) -> R | None:
        """Extract a value from the row `fn` returns; None if it returns none."""
        row = self.call(fn)
        return None if row is None else extractor(row)

    def value_list(self, fn: ConnectionFunction[ResultSet],
                   extractor: Callable[[ResultRow], R]) -> tuple[R, ...]:
        return tuple(extractor(row) for row in self.call(fn))

    def value_set(self, fn: ConnectionFunction[ResultSet],
                  extractor: Callable[[ResultRow], R]) -> frozenset[R]:
        return frozenset(extractor(row) for row in self.call(fn))

    def value_sorted_set(self, fn: ConnectionFunction[ResultSet],
                         extractor: Callable[[ResultRow], R]) -> tuple[R, ...]:
        """Distinct extracted values in ascending order."""
        return tuple(sorted({extractor(row) for row in self.call(fn)}))

    def value_map(self, fn: ConnectionFunction[ResultSet],
                  extractor: Callable[[ResultRow, dict[K, V]], None]) -> MappingProxyType:
        """Build a read-only mapping; `extractor` fills it one row at a time."""
        out: dict[K, V] = {}
        for row in self.call(fn):
            extractor(row, out)
        return MappingProxyType(out)

    def value_sorted_map(self, fn: ConnectionFunction[ResultSet],
                         extractor: Callable[[ResultRow, dict[K, V]], None]) -> MappingProxyType:
        """Like `value_map`, with keys in ascending order."""
        out: dict[K, V] = {}
        for row in self.call(fn):
            extractor(row, out)
        return MappingProxyType(dict(sorted(out.items())))

    def value_case_insensitive_map(self, fn: ConnectionFunction[ResultSet],
                                   extractor: Callable[[ResultRow, dict[str, V]], None]
                                  ) -> CaseInsensitiveDict:
        """Like `value_sorted_map`, with keys compared regardless of case.

        Keys differing only in case collapse to the last one stored.
        """
        out: dict[str, V] = {}
        for row in self.call(fn):
            extractor(row, out)
        return CaseInsensitiveDict(sorted(out.items(), key=lambda item: item[0].casefold()))
