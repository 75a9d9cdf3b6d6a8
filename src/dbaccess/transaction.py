"""
Transaction handling for pooled connections.

A Transaction is opened with `Connection.start_transaction` and is single
use: once committed or aborted it rejects every call. Opening one switches
the physical connection out of auto-commit and into the requested
isolation level; closing it restores both, whatever happened in between.

Examples
    with cn.start_transaction(IsolationLevel.SERIALIZABLE) as tx:
        tx.execute('delete from ...', args)
        tx.execute('update ...', args)
        tx.commit()
"""
import enum
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self, TypeVar

from dbaccess import query
from dbaccess.exceptions import DriverError, IllegalStateError
from dbaccess.result import ResultRow, ResultSet, UpdateResult

if TYPE_CHECKING:
    from dbaccess.connection import Connection

__all__ = ['IsolationLevel', 'Savepoint', 'Transaction']

logger = logging.getLogger(__name__)

T = TypeVar('T')


class IsolationLevel(enum.Enum):
    READ_UNCOMMITTED = 1
    READ_COMMITTED = 2
    REPEATABLE_READ = 4
    SERIALIZABLE = 8


@dataclass(frozen=True, slots=True)
class Savepoint:
    """Handle for a savepoint set inside a transaction."""
    name: str


class Transaction:
    """A scoped transaction on one Connection.

    Leaving the `with` block without calling `commit()` aborts the
    transaction, whether or not an exception is propagating.
    """

    def __init__(self, connection: 'Connection',
                 level: IsolationLevel = IsolationLevel.READ_COMMITTED) -> None:
        self.connection = connection
        self.level = level
        self.finished = False
        self._savepoints = 0

        strategy = connection.strategy
        raw = connection.dbapi_connection
        self.saved_autocommit = strategy.get_autocommit(raw)
        self.saved_isolation = strategy.get_isolation(raw)
        native = strategy.native_isolation(level)
        try:
            strategy.disable_autocommit(raw)
            strategy.set_isolation(raw, native)
            strategy.begin_transaction(raw, native)
        except BaseException:
            self._restore()
            raise
        logger.debug(f'Started {level.name} transaction for connection {id(connection)}')

    def __repr__(self) -> str:
        state = 'finished' if self.finished else 'active'
        return f'Transaction({self.level.name}, {state})'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None,
                 exc_tb: Any | None) -> None:
        if self.finished:
            return
        if exc_type is None:
            self.abort()
            return
        logger.warning('Rolling back the current transaction')
        try:
            self.abort()
        except DriverError as err:
            logger.warning(f'Rollback failed while handling {exc_type.__name__}: {err}')

    def _verify_unfinished(self) -> None:
        if self.finished:
            raise IllegalStateError('Transaction already finished')

    def _restore(self) -> None:
        strategy = self.connection.strategy
        raw = self.connection.dbapi_connection
        try:
            strategy.set_isolation(raw, self.saved_isolation)
        finally:
            strategy.set_autocommit(raw, self.saved_autocommit)

    def _finish(self, action: Callable[[], None]) -> None:
        """Run the terminal action, then restore connection state and detach."""
        self._verify_unfinished()
        try:
            action()
        finally:
            try:
                self._restore()
            finally:
                self.finished = True
                self.connection._detach(self)

    def _commit(self) -> None:
        raw = self.connection.dbapi_connection
        try:
            raw.commit()
        except DriverError:
            try:
                raw.rollback()
            except DriverError as err:
                logger.debug(f'Rollback after failed commit also failed: {err}')
            raise

    def commit(self) -> None:
        """Commit the transaction and end it."""
        self._finish(self._commit)
        logger.debug(f'Committed transaction for connection {id(self.connection)}')

    def abort(self) -> None:
        """Roll back the transaction and end it."""
        self._finish(self.connection.dbapi_connection.rollback)
        logger.debug(f'Aborted transaction for connection {id(self.connection)}')

    def rollback(self, savepoint: Savepoint | None = None) -> None:
        """Undo work while keeping the transaction open.

        Args:
            savepoint: Roll back to this savepoint; None undoes everything
                since the transaction started
        """
        self._verify_unfinished()
        strategy = self.connection.strategy
        if savepoint is not None:
            self._run(strategy.rollback_to_savepoint_sql(savepoint.name))
            return
        raw = self.connection.dbapi_connection
        raw.rollback()
        strategy.begin_transaction(raw, strategy.native_isolation(self.level))

    def set_savepoint(self, name: str | None = None) -> Savepoint:
        """Set a savepoint; unnamed savepoints get a generated name."""
        self._verify_unfinished()
        if name is None:
            self._savepoints += 1
            name = f'sp_{self._savepoints}'
        self._run(self.connection.strategy.savepoint_sql(name))
        return Savepoint(name)

    def release_savepoint(self, savepoint: Savepoint) -> None:
        self._verify_unfinished()
        self._run(self.connection.strategy.release_savepoint_sql(savepoint.name))

    def _run(self, sql: str) -> None:
        with self.connection.cursor() as cursor:
            cursor.execute(sql)

    def query_row(self, sql: str, *args: Any) -> ResultRow | None:
        self._verify_unfinished()
        return query.fetch_row(self.connection, sql, *args)

    def query_row_as(self, record_type: type[T], sql: str, *args: Any) -> T | None:
        self._verify_unfinished()
        row = query.fetch_row(self.connection, sql, *args)
        return None if row is None else row.to_record(record_type)

    def query_all(self, sql: str, *args: Any) -> ResultSet:
        self._verify_unfinished()
        return query.fetch_result(self.connection, sql, *args)

    def query_all_as(self, record_type: type[T], sql: str, *args: Any) -> list[T]:
        self._verify_unfinished()
        return query.fetch_records(self.connection, record_type, sql, *args)

    def execute(self, sql: str, *args: Any) -> UpdateResult:
        self._verify_unfinished()
        return query.execute_update(self.connection, sql, *args)

    def batch_execute(self, sql: str, param_sets: Iterable[Sequence[Any]],
                      granularity: int | None = None) -> list[int]:
        self._verify_unfinished()
        if granularity is None:
            granularity = self.connection.batch_size
        return query.execute_batch(self.connection, sql, param_sets, granularity)

    def batch_execute_results(self, sql: str,
                              param_sets: Iterable[Sequence[Any]]) -> list[UpdateResult]:
        self._verify_unfinished()
        return query.execute_batch_results(self.connection, sql, param_sets)
