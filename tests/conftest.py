import pathlib
import site

import pytest
from dbaccess.profile import ProfileCache

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear the record profile cache before and after each test to ensure test isolation."""
    ProfileCache.get_instance().clear()
    yield
    ProfileCache.get_instance().clear()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
    'tests.fixtures.postgres',
]
