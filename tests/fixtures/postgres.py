import logging

import dbaccess as db
import pytest

logger = logging.getLogger(__name__)

FRUIT_SCHEMA = """
create table fruit (
    id serial primary key,
    value varchar(255) not null,
    grp integer not null default 0
)
"""


@pytest.fixture(scope='session')
def psql_docker(request):
    """Session-scoped PostgreSQL container using testcontainers.

    Testcontainers automatically:
    - Assigns a random available port
    - Waits for the database to be ready
    - Handles cleanup when the session ends

    Tests using it are skipped when Docker is not available.
    """
    testcontainers = pytest.importorskip('testcontainers.postgres')
    container = testcontainers.PostgresContainer(
        image='postgres:16',
        username='postgres',
        password='postgres',
        dbname='test_db',
    )

    try:
        container.start()
    except Exception as e:
        pytest.skip(f'PostgreSQL container unavailable: {e}')

    logger.info(f'PostgreSQL container started at '
                f'{container.get_container_host_ip()}:{container.get_exposed_port(5432)}')

    def finalizer():
        try:
            container.stop()
            logger.info('PostgreSQL container stopped')
        except Exception as e:
            logger.warning(f'Error stopping container: {e}')

    request.addfinalizer(finalizer)
    return container


@pytest.fixture
def postgres_options(psql_docker):
    return db.DatabaseOptions(
        drivername='postgresql',
        hostname=psql_docker.get_container_host_ip(),
        port=int(psql_docker.get_exposed_port(5432)),
        username='postgres',
        password='postgres',
        database='test_db',
        timeout=10,
        pool_size=2,
        pool_wait_timeout=5,
    )


@pytest.fixture
def pg_pool(postgres_options):
    """Pool with a freshly staged fruit table; the table is dropped afterwards."""
    pool = db.create_pool(postgres_options)

    def stage(cn):
        cn.execute('drop table if exists fruit')
        cn.execute(FRUIT_SCHEMA)
        cn.batch_execute('insert into fruit (value, grp) values (%s, %s)',
                         [('apple', 1), ('banana', 1), ('durian', 2)])

    pool.with_connection(stage)
    yield pool
    pool.with_connection(lambda cn: cn.execute('drop table if exists fruit'))
    pool.close()
