"""
Mock connection utilities for pool, transaction and DAO tests.

Provides connectors that hand out mock Connections and raw driver
connections shaped like psycopg's, so pool and transaction behavior can be
tested without a database.

Usage:
    def test_acquire(mock_connector):
        pool = ConnectionPool(mock_connector, size=2, wait_timeout=0)
"""
from unittest.mock import MagicMock

import psycopg
import pytest
from dbaccess.connection import Connection
from dbaccess.connector import Connector
from dbaccess.strategy import PostgresStrategy


def _create_mock_connection():
    """Create a mock pooled Connection that reports itself open.
    """
    cn = MagicMock(spec=Connection)
    cn.is_closed.return_value = False
    return cn


def _create_mock_connector(connections=None):
    """Create a mock Connector whose `connect()` returns mock Connections.

    Args:
        connections: Optional side effect list for `connect()`; items may be
            Connections or exceptions

    Returns
        Mock connector; `connect.side_effect` can be changed by the test
    """
    connector = MagicMock(spec=Connector)
    connector.strategy = PostgresStrategy()
    if connections is None:
        connector.connect.side_effect = lambda: _create_mock_connection()
    else:
        connector.connect.side_effect = connections
    return connector


def _create_psycopg_raw_connection():
    """Create a mock raw psycopg connection in auto-commit mode.
    """
    raw = MagicMock(spec=psycopg.Connection)
    raw.autocommit = True
    raw.isolation_level = None
    raw.closed = False
    return raw


@pytest.fixture
def mock_connection():
    return _create_mock_connection()


@pytest.fixture
def mock_connector():
    """Connector whose every `connect()` returns a fresh mock Connection."""
    return _create_mock_connector()


@pytest.fixture
def create_mock_connector():
    """Factory fixture for connectors with a scripted `connect()` side effect.

    Example usage:
        def test_failure(create_mock_connector, mock_connection):
            connector = create_mock_connector([mock_connection, ConnectionFailure('down')])
    """
    return _create_mock_connector


@pytest.fixture
def psycopg_raw():
    return _create_psycopg_raw_connection()


@pytest.fixture
def pg_mock_conn(psycopg_raw):
    """Connection over a mock psycopg connection with the real PostgreSQL strategy."""
    return Connection(psycopg_raw, PostgresStrategy())
