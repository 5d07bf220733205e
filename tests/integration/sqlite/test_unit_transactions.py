"""
Writes, scripts and transactions against a file-based SQLite database.
"""
import pathlib

import entitydb as edb
import pytest
from entitydb import InsertError, ScriptError, TransactionError, UpdateError
from tests.fixtures.entities import Customer, Order

FIXTURES = pathlib.Path(__file__).parents[2] / 'fixtures'


def count_customers(database):
    with database.unit_of_work() as other:
        return other.query_count('SELECT count(*) FROM customer')


class TestUpdate:

    def test_delete_returns_affected_rows(self, uow):
        assert uow.update('DELETE FROM customer WHERE name = ?', 'Charlie') == 1
        assert uow.update('DELETE FROM customer WHERE name = ?', 'Charlie') == 0

    def test_update_many_rows(self, uow):
        assert uow.update('UPDATE customer SET city = ? WHERE city = ?', 'Salem', 'Boston') == 2
        assert uow.query_field_set('SELECT city FROM customer ORDER BY id') == ['Salem', 'Denver']

    def test_update_outside_transaction_is_committed(self, sqlite_db, uow):
        """Auto-commit: another unit of work sees the change at once"""
        uow.update('DELETE FROM customer WHERE id = ?', 3)
        assert count_customers(sqlite_db) == 2

    def test_constraint_violation(self, uow):
        with pytest.raises(UpdateError) as exc_info:
            uow.update('INSERT INTO customer (id, name, city) VALUES (?, ?, ?)', 1, 'Alice', 'Boston')
        assert isinstance(exc_info.value.__cause__, edb.IntegrityError)


class TestInsertReturnPk:

    def test_generated_key(self, uow):
        key = uow.insert_return_pk(
            'INSERT INTO orders (customer, created_at, order_total) VALUES (?, ?, ?)',
            'Dana', '2024-02-01', 5.0)
        assert key == 4
        order = uow.query_entity(Order, 'SELECT * FROM orders WHERE id = ?', key)
        assert order.customer == 'Dana'

    def test_no_row_inserted(self, uow):
        key = uow.insert_return_pk(
            'INSERT INTO orders (customer, created_at, order_total) '
            'SELECT customer, created_at, order_total FROM orders WHERE 1 = 0')
        assert key is None
        assert uow.query_count('SELECT count(*) FROM orders') == 3

    def test_multiple_rows_inserted(self, uow):
        key = uow.insert_return_pk(
            'INSERT INTO orders (customer, created_at, order_total) '
            'SELECT customer, created_at, order_total FROM orders')
        assert key is None
        assert uow.query_count('SELECT count(*) FROM orders') == 6

    def test_failure(self, uow):
        with pytest.raises(InsertError):
            uow.insert_return_pk('INSERT INTO missing_table (a) VALUES (?)', 1)


class TestTransactions:

    def test_commit(self, sqlite_db, uow):
        uow.begin_transaction()
        uow.update('INSERT INTO customer (id, name, city) VALUES (?, ?, ?)', 4, 'Dana', 'Austin')
        uow.update('DELETE FROM customer WHERE id = ?', 1)
        uow.commit_transaction()

        assert not uow.bound
        assert sorted(uow.query_field_list('SELECT id FROM customer')) == [2, 3, 4]

    def test_rollback(self, sqlite_db, uow):
        uow.begin_transaction()
        uow.update('DELETE FROM customer')
        assert uow.query_count('SELECT count(*) FROM customer') == 0
        uow.rollback_transaction()

        assert count_customers(sqlite_db) == 3

    def test_uncommitted_changes_invisible_elsewhere(self, sqlite_db, uow):
        uow.begin_transaction()
        uow.update('DELETE FROM customer WHERE id = ?', 1)

        assert count_customers(sqlite_db) == 3
        uow.commit_transaction()
        assert count_customers(sqlite_db) == 2

    def test_transaction_context(self, sqlite_db, uow):
        with pytest.raises(RuntimeError), uow.transaction():
            uow.update('DELETE FROM orders')
            raise RuntimeError('abort')

        assert uow.query_count('SELECT count(*) FROM orders') == 3

        with uow.transaction():
            uow.update('DELETE FROM orders WHERE customer = ?', 'Bob')
        assert uow.query_count('SELECT count(*) FROM orders') == 2

    def test_nested_begin(self, uow):
        uow.begin_transaction()
        with pytest.raises(TransactionError):
            uow.begin_transaction()
        assert uow.in_transaction
        uow.rollback_transaction()

    def test_commit_without_transaction_connection(self, uow):
        with pytest.raises(TransactionError):
            uow.commit_transaction()

    def test_unit_of_work_exit_commits(self, sqlite_db):
        with sqlite_db.unit_of_work() as uow:
            uow.begin_transaction()
            uow.update('DELETE FROM customer WHERE id = ?', 2)
        assert count_customers(sqlite_db) == 2

    def test_close_rolls_back_open_transaction(self, sqlite_db):
        uow = sqlite_db.unit_of_work()
        uow.begin_transaction()
        uow.update('DELETE FROM customer')
        uow.close()
        assert count_customers(sqlite_db) == 3


class TestInitSql:

    def test_runs_script(self, sqlite_db, uow):
        assert uow.init_sql(FIXTURES / 'seed.sql') == 2
        assert count_customers(sqlite_db) == 5

    def test_runs_package_resource(self, uow):
        assert uow.init_sql('seed.sql', 'tests.fixtures') == 2
        customer = uow.query_entity(Customer, 'SELECT * FROM customer WHERE id = ?', 5)
        assert customer == Customer(id=5, name='Eve', city='Miami')

    def test_stops_at_first_failure(self, sqlite_db, uow):
        """First statement stays applied, the third never runs"""
        with pytest.raises(ScriptError) as exc_info:
            uow.init_sql(FIXTURES / 'broken_seed.sql')

        assert 'line 2' in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, edb.IntegrityError)
        assert sorted(uow.query_field_list('SELECT id FROM customer')) == [1, 2, 3, 4]

    def test_failure_in_transaction_can_roll_back(self, sqlite_db, uow):
        uow.begin_transaction()
        with pytest.raises(ScriptError):
            uow.init_sql(FIXTURES / 'broken_seed.sql')
        uow.rollback_transaction()

        assert count_customers(sqlite_db) == 3

    def test_missing_script(self, uow, tmp_path):
        with pytest.raises(ScriptError):
            uow.init_sql(tmp_path / 'missing.sql')


class TestModuleFunctions:

    def test_facade(self, sqlite_db):
        with sqlite_db.unit_of_work() as uow:
            assert edb.query_count(uow, 'SELECT count(*) FROM orders') == 3
            order = edb.query_entity(uow, Order, 'SELECT * FROM orders WHERE id = ?', 2)
            assert order.createdAt == '2024-01-06'
            assert edb.query_field_set(uow, 'SELECT customer FROM orders ORDER BY id') == ['Alice', 'Bob']

            key = edb.insert_return_pk(uow, 'INSERT INTO customer (name, city) VALUES (?, ?)', 'Dana', 'Austin')
            assert key == 4
            assert edb.delete(uow, 'DELETE FROM customer WHERE id = ?', key) == 1
            assert edb.init_sql(uow, FIXTURES / 'seed.sql') == 2

    def test_connect_from_dict(self, sqlite_db, sqlite_options):
        database = edb.connect({'drivername': 'sqlite', 'database': sqlite_options.database},
                               registry=sqlite_db.registry)
        with database.unit_of_work() as uow:
            orders = edb.query_entity_list(uow, Order, 'SELECT * FROM orders ORDER BY id')
        assert [o.total for o in orders] == [10.5, 20.0, 30.25]

    def test_process_wide_registry(self, sqlite_options, sqlite_db):
        """A database without its own registry uses the process-wide one"""
        edb.init_entity_registry(Order)
        database = edb.connect(sqlite_options)
        with database.unit_of_work() as uow:
            order = uow.query_entity(Order, 'SELECT * FROM orders WHERE id = ?', 3)
        assert order.createdAt == '2024-01-07'
