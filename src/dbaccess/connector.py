"""
Physical connection factory built on SQLAlchemy.

This module provides:
1. Engine creation and management through a thread-safe registry
2. The `check_connection` retry decorator with exponential backoff
3. The `Connector`, which opens, configures and wraps new physical
   connections for a set of DatabaseOptions

SQLAlchemy is used for URL handling and to open raw DB-API connections;
engines use `NullPool` so SQLAlchemy never pools on our behalf.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import sqlalchemy as sa
from dbaccess.connection import Connection
from dbaccess.converter import TypeConverter
from dbaccess.exceptions import ConnectionFailure, DbConnectionError
from dbaccess.exceptions import is_retryable_error
from dbaccess.options import DatabaseOptions, load_options
from dbaccess.strategy import get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'Connector',
    'check_connection',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')
_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    url = get_strategy(options.drivername).build_connection_url(options)
    if options.url:
        url = url.update_query_dict(sa.make_url(options.url).query)
    return url


def check_connection(func: Callable[..., T] | None = None, *, max_retries: int = 3,
                     retry_delay: float = 1, retry_errors: type | tuple[type, ...] | None = None,
                     retry_backoff: float = 1.5,
                     retry_if: Callable[[BaseException], bool] | None = None,
                     sleep_func: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Connection retry decorator with backoff.

    Decorator that handles connection errors by automatically retrying the operation.
    It has configurable retry parameters and supports exponential backoff.
    `retry_if` narrows which caught errors are retried; others propagate at once.

    Supports both @check_connection and @check_connection() syntax.
    """
    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @wraps(f)
        def inner(*args: Any, **kwargs: Any) -> T:
            error_types = retry_errors if retry_errors is not None else DbConnectionError

            tries = 0
            delay = retry_delay
            while tries < max_retries:
                try:
                    return f(*args, **kwargs)
                except error_types as err:
                    if retry_if is not None and not retry_if(err):
                        raise
                    tries += 1
                    if tries >= max_retries:
                        logger.error(f'Maximum retries ({max_retries}) exceeded: {err}')
                        raise
                    logger.warning(f'Connection error (attempt {tries}/{max_retries}): {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return inner

    if func is None:
        return decorator
    return decorator(func)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    The registry key carries the unmasked URL, so options differing only in
    password get separate engines.
    """
    url = create_url_from_options(options)
    key = f'{url.render_as_string(hide_password=False)}|{options!r}|{sorted(kwargs.items())!r}'

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)

        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(strategy.get_engine_kwargs(options))
        if options.connect_args:
            connect_args = dict(engine_kwargs.get('connect_args', {}))
            connect_args.update(options.connect_args)
            engine_kwargs['connect_args'] = connect_args
        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in list(_engine_registry.values()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class Connector:
    """Opens new physical connections for one set of options.

    Each `connect()` opens a fresh driver connection, configures it for the
    dialect (auto-commit on, type adapters registered) and wraps it in a
    Connection. Attempts that fail with a transient connection error are
    retried with exponential backoff.
    """

    def __init__(self, options: DatabaseOptions | None = None,
                 engine_factory: Callable[..., Engine] = sa.create_engine,
                 sleep_func: Callable[[float], None] = time.sleep, **kw: Any) -> None:
        self.options = load_options(options, **kw)
        self.strategy = get_strategy(self.options.drivername)
        self.converter = TypeConverter(lob_errors=self.options.lob_errors)
        self._engine_factory = engine_factory
        self._sleep_func = sleep_func

    def __repr__(self) -> str:
        return f'Connector({self.options!r})'

    @property
    def engine(self) -> Engine:
        return get_engine_for_options(self.options, engine_factory=self._engine_factory)

    def _open(self) -> Connection:
        handle = self.engine.raw_connection()
        raw = handle.driver_connection
        try:
            self.strategy.configure_connection(raw)
        except Exception:
            handle.close()
            raise
        logger.debug(f'Opened {self.strategy.dialect_name} connection')
        return Connection(raw, self.strategy, self.options, self.converter, handle=handle)

    def connect(self) -> Connection:
        """Open a new configured connection.

        Raises
            ConnectionFailure: If every attempt fails
        """
        opener = check_connection(
            self._open,
            max_retries=self.options.connect_retries,
            retry_delay=self.options.retry_delay,
            retry_backoff=self.options.retry_backoff,
            retry_if=is_retryable_error,
            sleep_func=self._sleep_func)
        try:
            return opener()
        except DbConnectionError as err:
            if isinstance(err, ConnectionFailure):
                raise
            raise ConnectionFailure(f'Could not connect to {self.options.drivername} '
                                    f'database {self.options.database}: {err}') from err

    def with_connection(self, fn: Callable[[Connection], T]) -> T:
        """Open a connection, call `fn` with it and close it afterwards."""
        with self.connect() as cn:
            return fn(cn)
