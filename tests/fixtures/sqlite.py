import pytest
from entitydb import Database, DatabaseOptions, EntityRegistry
from tests.fixtures.entities import AuditEntry, Customer, Order

SCHEMA = [
    """
    CREATE TABLE orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        customer TEXT NOT NULL,
        created_at TEXT,
        order_total REAL
    )
    """,
    """
    CREATE TABLE customer (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        city TEXT
    )
    """,
]

ORDERS = [
    ('Alice', '2024-01-05', 10.5),
    ('Bob', '2024-01-06', 20.0),
    ('Alice', '2024-01-07', 30.25),
]

CUSTOMERS = [
    (1, 'Alice', 'Boston'),
    (2, 'Bob', 'Denver'),
    (3, 'Charlie', 'Boston'),
]


@pytest.fixture
def sqlite_options(tmp_path):
    """Options for a temporary file-based SQLite database."""
    return DatabaseOptions(drivername='sqlite', database=str(tmp_path / 'test.db'))


@pytest.fixture
def sqlite_db(sqlite_options):
    """SQLite database with orders and customers loaded."""
    database = Database(sqlite_options, EntityRegistry.build([Order, Customer, AuditEntry]))

    with database.unit_of_work() as uow:
        for sql in SCHEMA:
            uow.update(sql)
        for row in ORDERS:
            uow.update('INSERT INTO orders (customer, created_at, order_total) VALUES (?, ?, ?)', *row)
        for row in CUSTOMERS:
            uow.update('INSERT INTO customer (id, name, city) VALUES (?, ?, ?)', *row)

    yield database
    database.dispose()


@pytest.fixture
def uow(sqlite_db):
    """Unit of work on the loaded SQLite database."""
    unit = sqlite_db.unit_of_work()
    yield unit
    unit.close()
