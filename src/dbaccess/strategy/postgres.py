"""
PostgreSQL-specific strategy implementation (psycopg 3).

psycopg exposes `autocommit` and `isolation_level` as connection
attributes. Both may only be changed while no transaction is in progress,
so callers restore them after the commit or rollback has been issued.
"""
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa
from dbaccess.sql import standardize_placeholders
from dbaccess.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbaccess.options import DatabaseOptions
    from dbaccess.transaction import IsolationLevel


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'database']

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query,
        )

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for PostgreSQL.

        Any transaction left open by dialect initialization is rolled back
        before auto-commit is switched on.
        """
        if raw_conn.info.transaction_status != psycopg.pq.TransactionStatus.IDLE:
            raw_conn.rollback()
        self.enable_autocommit(raw_conn)

    def get_autocommit(self, raw_conn: Any) -> bool:
        return raw_conn.autocommit

    def set_autocommit(self, raw_conn: Any, enabled: bool) -> None:
        raw_conn.autocommit = enabled

    def native_isolation(self, level: 'IsolationLevel') -> psycopg.IsolationLevel:
        return psycopg.IsolationLevel[level.name]

    def get_isolation(self, raw_conn: Any) -> psycopg.IsolationLevel | None:
        return raw_conn.isolation_level

    def set_isolation(self, raw_conn: Any, native: psycopg.IsolationLevel | None) -> None:
        raw_conn.isolation_level = native

    def is_closed(self, raw_conn: Any) -> bool:
        return raw_conn.closed

    def standardize_sql(self, sql: str, has_params: bool = False) -> str:
        """Convert SQLite-style placeholders (?) to PostgreSQL-style (%s).

        psycopg only interprets `%` when parameters are bound, so literals
        are escaped only in that case.
        """
        return standardize_placeholders(sql, dialect='postgresql', escape_percent=has_params)
