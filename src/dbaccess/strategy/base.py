"""
Base strategy interface for dialect-specific connection behavior.

Defines the abstract base class that all dialect strategies inherit from.
A strategy hides the DB-API differences the rest of the package cares about:
how auto-commit and isolation levels are read and written on a raw
connection, how a closed connection is detected, which placeholder marker
the driver expects and how generated keys are recovered after a write.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbaccess.sql import quote_identifier as sql_quote_identifier

if TYPE_CHECKING:
    from dbaccess.options import DatabaseOptions
    from dbaccess.transaction import IsolationLevel

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Args:
            options: DatabaseOptions to validate

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.
        """
        return {}

    @abstractmethod
    def configure_connection(self, raw_conn: Any) -> None:
        """Prepare a freshly opened raw connection for use.

        Leaves the connection in auto-commit mode.

        Args:
            raw_conn: The raw DBAPI connection (not wrapped)
        """

    @abstractmethod
    def get_autocommit(self, raw_conn: Any) -> bool:
        """Return whether auto-commit is enabled on a raw connection.
        """

    @abstractmethod
    def set_autocommit(self, raw_conn: Any, enabled: bool) -> None:
        """Enable or disable auto-commit on a raw connection.
        """

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode on a raw database connection.
        """
        self.set_autocommit(raw_conn, True)

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode on a raw database connection.
        """
        self.set_autocommit(raw_conn, False)

    @abstractmethod
    def native_isolation(self, level: 'IsolationLevel') -> Any:
        """Translate an isolation level to the driver's native value.
        """

    @abstractmethod
    def get_isolation(self, raw_conn: Any) -> Any:
        """Return the driver-native isolation setting of a raw connection.
        """

    @abstractmethod
    def set_isolation(self, raw_conn: Any, native: Any) -> None:
        """Apply a driver-native isolation setting to a raw connection.
        """

    def begin_transaction(self, raw_conn: Any, native: Any) -> None:
        """Open the physical transaction once auto-commit is off.

        Default implementation is a no-op; the driver begins implicitly
        at the first statement.
        """

    @abstractmethod
    def is_closed(self, raw_conn: Any) -> bool:
        """Return whether the physical connection has been closed.
        """

    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register dialect-specific type adapters.
        """

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier.

        Default implementation uses standard SQL double-quote escaping.
        """
        return sql_quote_identifier(identifier, self.dialect_name)

    def savepoint_sql(self, name: str) -> str:
        return f'SAVEPOINT {self.quote_identifier(name)}'

    def rollback_to_savepoint_sql(self, name: str) -> str:
        return f'ROLLBACK TO SAVEPOINT {self.quote_identifier(name)}'

    def release_savepoint_sql(self, name: str) -> str:
        return f'RELEASE SAVEPOINT {self.quote_identifier(name)}'

    def get_placeholder_style(self) -> str:
        """Return the placeholder marker for this database.

        Returns
            str: '%s' for PostgreSQL-style, '?' for SQLite-style
        """
        return '%s'

    def standardize_sql(self, sql: str, has_params: bool = False) -> str:
        """Convert placeholders to this dialect's style.

        Default implementation is a no-op.

        Args:
            sql: SQL string potentially containing placeholders
            has_params: Whether the statement will be executed with parameters
        """
        return sql

    def fetch_generated_keys(self, cursor: Any, sql: str) -> tuple:
        """Collect the keys generated by the statement just executed.

        Default implementation reads the first column of a RETURNING result.
        Must be called before the affected row count is read.

        Args:
            cursor: Cursor the statement was executed on
            sql: The executed statement
        """
        if cursor.description is None:
            return ()
        return tuple(row[0] for row in cursor.fetchall())
