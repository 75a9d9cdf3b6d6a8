import sqlite3

import dbaccess as db
import pytest
from dbaccess.connection import Connection
from dbaccess.strategy import SQLiteStrategy

FRUIT_SCHEMA = """
CREATE TABLE fruit (
    id INTEGER PRIMARY KEY,
    value TEXT NOT NULL,
    grp INTEGER NOT NULL DEFAULT 0
)
"""


def stage_fruit(cn):
    cn.execute(FRUIT_SCHEMA)
    cn.batch_execute('INSERT INTO fruit (value, grp) VALUES (?, ?)',
                     [('apple', 1), ('banana', 1), ('durian', 2)])


@pytest.fixture
def memory_conn():
    """Connection over an in-memory SQLite database, built without an engine."""
    strategy = SQLiteStrategy()
    raw = sqlite3.connect(':memory:', check_same_thread=False,
                          detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES)
    strategy.configure_connection(raw)
    cn = Connection(raw, strategy)
    stage_fruit(cn)
    yield cn
    cn.close()


@pytest.fixture
def sqlite_options(tmp_path):
    """Options for a file-based SQLite database in a temporary directory."""
    return db.DatabaseOptions(drivername='sqlite', database=str(tmp_path / 'test.db'),
                              pool_size=3, pool_wait_timeout=5)


@pytest.fixture
def sqlite_pool(sqlite_options):
    """Pool over a file-based SQLite database with the fruit table staged."""
    pool = db.create_pool(sqlite_options)
    pool.with_connection(stage_fruit)
    yield pool
    pool.close()


@pytest.fixture
def sqlite_file_conn(sqlite_options):
    """Unpooled connection to a file-based SQLite database with the fruit table staged."""
    cn = db.connect(sqlite_options)
    stage_fruit(cn)
    yield cn
    cn.close()
