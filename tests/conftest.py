import pytest
from entitydb.connection import dispose_all_engines
from entitydb.entity import reset_entity_registry


@pytest.fixture(autouse=True)
def clear_registries():
    """Reset the process-wide entity registry and engines around each test."""
    reset_entity_registry()
    yield
    reset_entity_registry()
    dispose_all_engines()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
