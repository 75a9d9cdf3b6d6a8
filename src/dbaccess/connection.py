"""
Database connection wrapper.

A Connection owns exactly one physical DB-API connection together with its
dialect strategy. Outside a transaction it runs statements in auto-commit
mode; while a transaction is active every query must go through the
Transaction object instead.

The Connection is the primary database client, providing:
- query_row / query_row_as: first row of a query, raw or mapped
- query_all / query_all_as: every row of a query, raw or mapped
- execute: a write statement with its row count and generated keys
- batch_execute / batch_execute_results: one statement, many parameter sets
"""
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Self, TypeVar

from dbaccess import query
from dbaccess.converter import TypeConverter, default_converter
from dbaccess.cursor import Cursor
from dbaccess.exceptions import DriverError, IllegalStateError
from dbaccess.options import DEFAULT_BATCH_SIZE, DatabaseOptions
from dbaccess.result import ResultRow, ResultSet, UpdateResult
from dbaccess.strategy import DatabaseStrategy
from dbaccess.transaction import IsolationLevel, Transaction

__all__ = ['Connection']

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Connection:
    """Wraps a physical connection to track calls and execution time.

    Args:
        dbapi_connection: The raw driver connection (sqlite3 / psycopg)
        strategy: Dialect strategy for the driver
        options: Options the connection was opened with
        converter: Converter used for result mapping
        handle: Object whose `close()` releases the physical connection,
            such as the SQLAlchemy connection proxy; defaults to the raw
            connection itself
    """

    def __init__(self, dbapi_connection: Any, strategy: DatabaseStrategy,
                 options: DatabaseOptions | None = None,
                 converter: TypeConverter | None = None,
                 handle: Any = None) -> None:
        self.dbapi_connection = dbapi_connection
        self.strategy = strategy
        self.options = options
        self.converter = converter or default_converter()
        self._handle = handle if handle is not None else dbapi_connection
        self.current_transaction: Transaction | None = None
        self.calls = 0
        self.time = 0

    def __repr__(self) -> str:
        state = 'in transaction' if self.in_transaction else 'idle'
        return f'Connection({self.dialect}, {state})'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self.strategy.dialect_name

    @property
    def batch_size(self) -> int:
        """Default batch granularity."""
        return self.options.batch_size if self.options else DEFAULT_BATCH_SIZE

    @property
    def in_transaction(self) -> bool:
        return self.current_transaction is not None

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def cursor(self) -> Cursor:
        """Get a wrapped cursor for this connection
        """
        return Cursor(self.dbapi_connection.cursor(), self, self.strategy)

    def _verify_idle(self) -> None:
        if self.current_transaction is not None:
            raise IllegalStateError('Connection has an active transaction; '
                                    'run queries through the transaction')

    def start_transaction(self, level: IsolationLevel = IsolationLevel.READ_COMMITTED) -> Transaction:
        """Open a transaction on this connection.

        Raises
            IllegalStateError: If a transaction is already active
        """
        if self.current_transaction is not None:
            raise IllegalStateError('Nested transactions are not supported')
        self.current_transaction = Transaction(self, level)
        return self.current_transaction

    def run_in_transaction(self, level: IsolationLevel, fn: Callable[[Transaction], T]) -> T:
        """Call `fn` with a new transaction, ending it like a `with` block does.

        `fn` must call `commit()` for its work to persist.
        """
        with self.start_transaction(level) as tx:
            return fn(tx)

    def _detach(self, transaction: Transaction) -> None:
        if self.current_transaction is transaction:
            self.current_transaction = None

    def end_transaction(self) -> None:
        """Abort the active transaction, if any."""
        if self.current_transaction is not None:
            logger.debug(f'Aborting unfinished transaction on connection {id(self)}')
            self.current_transaction.abort()

    def is_closed(self) -> bool:
        return self.strategy.is_closed(self.dbapi_connection)

    def close(self) -> None:
        """Abort any open transaction and close the physical connection.
        """
        try:
            self.end_transaction()
        except DriverError as err:
            logger.debug(f'Error aborting transaction on close: {err}')
        self.current_transaction = None
        try:
            self._handle.close()
        except DriverError as err:
            logger.debug(f'Error closing connection: {err}')
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time/max(1,self.calls):.3f}s per query)')

    def query_row(self, sql: str, *args: Any) -> ResultRow | None:
        """Execute a query and return its first row, or None if it has none.
        """
        self._verify_idle()
        return query.fetch_row(self, sql, *args)

    def query_row_as(self, record_type: type[T], sql: str, *args: Any) -> T | None:
        """Execute a query and map its first row onto `record_type`.
        """
        self._verify_idle()
        row = query.fetch_row(self, sql, *args)
        return None if row is None else row.to_record(record_type)

    def query_all(self, sql: str, *args: Any) -> ResultSet:
        """Execute a query and return every row.
        """
        self._verify_idle()
        return query.fetch_result(self, sql, *args)

    def query_all_as(self, record_type: type[T], sql: str, *args: Any) -> list[T]:
        """Execute a query and map every row onto `record_type`.
        """
        self._verify_idle()
        return query.fetch_records(self, record_type, sql, *args)

    def execute(self, sql: str, *args: Any) -> UpdateResult:
        """Execute a SQL statement and return its affected row count and keys.
        """
        self._verify_idle()
        return query.execute_update(self, sql, *args)

    def batch_execute(self, sql: str, param_sets: Iterable[Sequence[Any]],
                      granularity: int | None = None) -> list[int]:
        """Execute a statement once per parameter set.

        Args:
            sql: Statement with positional placeholders
            param_sets: One parameter sequence per execution
            granularity: Parameter sets per chunk; defaults to the options'
                batch size

        Returns
            Affected row count per parameter set, in input order
        """
        self._verify_idle()
        if granularity is None:
            granularity = self.batch_size
        return query.execute_batch(self, sql, param_sets, granularity)

    def batch_execute_results(self, sql: str,
                              param_sets: Iterable[Sequence[Any]]) -> list[UpdateResult]:
        """Execute a statement once per parameter set, keeping generated keys.
        """
        self._verify_idle()
        return query.execute_batch_results(self, sql, param_sets)
