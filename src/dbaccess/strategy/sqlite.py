"""
SQLite-specific strategy implementation.

SQLite's Python driver exposes transaction control through a single
`isolation_level` attribute:
- `None` means auto-commit (no implicit BEGIN)
- 'DEFERRED', 'IMMEDIATE' or 'EXCLUSIVE' select the BEGIN flavor issued
  before data-modifying statements

SQLite has no isolation levels in the SQL-standard sense, so the standard
levels map onto the BEGIN flavors by how early they take the write lock.
"""
import sqlite3
from typing import TYPE_CHECKING, Any

import dateutil.parser
import sqlalchemy as sa
from dbaccess.sql import is_insert, standardize_placeholders
from dbaccess.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbaccess.options import DatabaseOptions
    from dbaccess.transaction import IsolationLevel


ISOLATION_MAP = {
    'READ_UNCOMMITTED': 'DEFERRED',
    'READ_COMMITTED': 'DEFERRED',
    'REPEATABLE_READ': 'IMMEDIATE',
    'SERIALIZABLE': 'EXCLUSIVE',
}


def convert_date(val: bytes):
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes):
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(val.decode())


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite.

        Pooled connections are handed between threads, one thread at a time.
        """
        connect_args = {
            'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
            'check_same_thread': False,
        }
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register converters for declared date/datetime columns.
        """
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        sqlite3.register_converter('timestamp', convert_datetime)

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for SQLite.
        """
        raw_conn.execute('PRAGMA foreign_keys = ON')
        self.register_type_adapters(raw_conn)
        self.enable_autocommit(raw_conn)

    def get_autocommit(self, raw_conn: Any) -> bool:
        return raw_conn.isolation_level is None

    def set_autocommit(self, raw_conn: Any, enabled: bool) -> None:
        """Toggle auto-commit for SQLite.

        Disabling keeps an explicit BEGIN flavor if one is already set.
        """
        if enabled:
            raw_conn.isolation_level = None
        elif raw_conn.isolation_level is None:
            raw_conn.isolation_level = 'DEFERRED'

    def native_isolation(self, level: 'IsolationLevel') -> str:
        return ISOLATION_MAP[level.name]

    def get_isolation(self, raw_conn: Any) -> str | None:
        return raw_conn.isolation_level

    def set_isolation(self, raw_conn: Any, native: str | None) -> None:
        raw_conn.isolation_level = native

    def begin_transaction(self, raw_conn: Any, native: str) -> None:
        """Begin eagerly so reads and savepoints run inside the transaction.

        The driver would otherwise only BEGIN before a data-modifying
        statement.
        """
        if not raw_conn.in_transaction:
            raw_conn.execute(f'BEGIN {native}')

    def is_closed(self, raw_conn: Any) -> bool:
        """SQLite connections have no closed flag; probe one instead.
        """
        try:
            raw_conn.total_changes
        except sqlite3.ProgrammingError:
            return True
        return False

    def get_placeholder_style(self) -> str:
        """Return SQLite's placeholder marker.
        """
        return '?'

    def standardize_sql(self, sql: str, has_params: bool = False) -> str:
        """Convert PostgreSQL-style placeholders (%s) to SQLite-style (?).
        """
        return standardize_placeholders(sql, dialect='sqlite')

    def fetch_generated_keys(self, cursor: Any, sql: str) -> tuple:
        """Return RETURNING values, or the last inserted rowid for an INSERT.
        """
        if cursor.description is not None:
            return super().fetch_generated_keys(cursor, sql)
        if is_insert(sql) and cursor.rowcount > 0 and cursor.lastrowid:
            return (cursor.lastrowid,)
        return ()
