"""
Fixed-size, thread-safe connection pool.

The pool opens all of its connections up front and hands them out one
thread at a time. A connection is always either idle (`available`) or
checked out (`in_use`); both sets are guarded by a single lock, and
threads waiting for a connection block on a condition over that lock.

Examples
    with create_pool(drivername='sqlite', database='app.db') as pool:
        with pool.connection() as cn:
            cn.query_all('select * from fruit')
        with pool.transaction(IsolationLevel.SERIALIZABLE) as tx:
            tx.execute('update fruit set value = ? where id = ?', 'durian', 3)
            tx.commit()
"""
import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Self, TypeVar

from dbaccess.connection import Connection
from dbaccess.connector import Connector
from dbaccess.exceptions import DbConnectionError, DriverError, IllegalStateError
from dbaccess.exceptions import InvariantViolation, PoolConnectionError, PoolTimeout
from dbaccess.options import DatabaseOptions, load_options
from dbaccess.transaction import IsolationLevel, Transaction

__all__ = ['ConnectionPool', 'create_pool']

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ConnectionPool:
    """A bounded registry of live connections shared across threads.

    Args:
        connector: Opens the pool's physical connections
        size: Number of connections, all opened at construction
        wait_timeout: Default seconds `acquire` waits; None waits forever
    """

    def __init__(self, connector: Connector, size: int,
                 wait_timeout: float | None = None) -> None:
        if size < 1:
            raise ValueError('Pool size must be at least 1')
        self.connector = connector
        self.size = size
        self.wait_timeout = wait_timeout
        self._lock = threading.Lock()
        self._available_cond = threading.Condition(self._lock)
        self._available: deque[Connection] = deque()
        self._in_use: set[Connection] = set()
        self._closed = False

        for _ in range(size):
            try:
                self._available.append(self._open())
            except PoolConnectionError:
                self._close_all(list(self._available))
                self._available.clear()
                raise
        logger.debug(f'Opened pool of {size} {connector.strategy.dialect_name} connections')

    def __repr__(self) -> str:
        return (f'ConnectionPool(size={self.size}, available={self.available_count}, '
                f'in_use={self.in_use_count})')

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def available_count(self) -> int:
        with self._lock:
            return len(self._available)

    @property
    def in_use_count(self) -> int:
        with self._lock:
            return len(self._in_use)

    @property
    def total_count(self) -> int:
        with self._lock:
            return len(self._available) + len(self._in_use)

    def _open(self) -> Connection:
        try:
            return self.connector.connect()
        except DbConnectionError as err:
            raise PoolConnectionError(f'Could not open pooled connection: {err}') from err

    @staticmethod
    def _deadline(timeout: float | None) -> float | None:
        if timeout is None or math.isinf(timeout):
            return None
        if timeout < 0:
            raise ValueError('timeout cannot be negative')
        return time.monotonic() + timeout

    def acquire(self, timeout: float | None = None) -> Connection:
        """Check out an idle connection, waiting for one if necessary.

        Args:
            timeout: Seconds to wait; None uses the pool's `wait_timeout`,
                `math.inf` waits forever and 0 fails at once when no
                connection is idle

        Raises
            PoolTimeout: If no connection became idle in time
            PoolConnectionError: If a closed connection could not be replaced
            IllegalStateError: If the pool is closed
        """
        if timeout is None:
            timeout = self.wait_timeout
        deadline = self._deadline(timeout)
        with self._available_cond:
            while True:
                if self._closed:
                    raise IllegalStateError('Connection pool is closed')
                if self._available:
                    cn = self._available.popleft()
                    self._in_use.add(cn)
                    break
                if deadline is None:
                    self._available_cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolTimeout(f'No connection available within {timeout}s')
                self._available_cond.wait(remaining)

        if cn.is_closed():
            cn = self._replace(cn)
        logger.debug(f'Acquired connection {id(cn)}')
        return cn

    def _replace(self, closed: Connection) -> Connection:
        """Swap a closed checked-out connection for a new one."""
        logger.debug(f'Replacing closed connection {id(closed)}')
        try:
            fresh = self._open()
        except PoolConnectionError:
            with self._available_cond:
                if closed in self._in_use:
                    self._in_use.discard(closed)
                    self._available.append(closed)
                    self._available_cond.notify()
            raise
        with self._available_cond:
            self._in_use.discard(closed)
            self._in_use.add(fresh)
        return fresh

    def release(self, connection: Connection) -> None:
        """Return a checked-out connection to the pool.

        Any transaction still open on it is aborted first.

        Raises
            InvariantViolation: If this pool does not track the connection
                as in use
        """
        with self._lock:
            if self._closed:
                logger.debug(f'Pool closed, ignoring release of connection {id(connection)}')
                return
            if connection not in self._in_use:
                raise InvariantViolation('Connection is not in use by this pool')
        try:
            connection.end_transaction()
        except DriverError as err:
            logger.warning(f'Error aborting transaction on release: {err}')
        with self._available_cond:
            if connection in self._in_use:
                self._in_use.discard(connection)
                self._available.append(connection)
                self._available_cond.notify()
        logger.debug(f'Released connection {id(connection)}')

    @contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[Connection]:
        """Check out a connection for the duration of a `with` block."""
        cn = self.acquire(timeout)
        try:
            yield cn
        finally:
            self.release(cn)

    def with_connection(self, fn: Callable[[Connection], T], timeout: float | None = None) -> T:
        """Call `fn` with a checked-out connection and return its result."""
        with self.connection(timeout) as cn:
            return fn(cn)

    @contextmanager
    def transaction(self, level: IsolationLevel = IsolationLevel.READ_COMMITTED,
                    timeout: float | None = None) -> Iterator[Transaction]:
        """Open a transaction on a checked-out connection.

        The transaction aborts unless committed inside the block; the
        connection is released afterwards.
        """
        with self.connection(timeout) as cn, cn.start_transaction(level) as tx:
            yield tx

    def with_transaction(self, level: IsolationLevel, fn: Callable[[Transaction], T],
                         timeout: float | None = None) -> T:
        """Call `fn` with a transaction on a checked-out connection."""
        with self.transaction(level, timeout) as tx:
            return fn(tx)

    def close(self) -> None:
        """Close every connection and wake all waiters.

        Checked-out connections are closed too, without waiting for their
        users. Afterwards `acquire` raises IllegalStateError.
        """
        with self._available_cond:
            if self._closed:
                return
            self._closed = True
            self._available.extend(self._in_use)
            self._in_use.clear()
            connections = list(self._available)
            self._available.clear()
            self._available_cond.notify_all()
        self._close_all(connections)
        logger.debug(f'Closed pool of {len(connections)} connections')

    @staticmethod
    def _close_all(connections: list[Connection]) -> None:
        for cn in connections:
            try:
                cn.close()
            except Exception as e:
                logger.debug(f'Error closing pooled connection: {e}')


def create_pool(options: DatabaseOptions | None = None, **kw: Any) -> ConnectionPool:
    """Create a pool from DatabaseOptions (or anything `load_options` accepts).

    The pool size and default wait come from `pool_size` and
    `pool_wait_timeout`.
    """
    options = load_options(options, **kw)
    return ConnectionPool(Connector(options), options.pool_size, options.pool_wait_timeout)
