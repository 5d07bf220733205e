"""
Tests for result shapers operating on hand-built result sets.
"""
from dataclasses import dataclass, field

import pandas as pd
import pytest
from entitydb.handlers import ArrayHandler, ArrayListHandler, BeanHandler
from entitydb.handlers import BeanListHandler, BeanMapHandler
from entitydb.handlers import ColumnListHandler, CountHandler, DataFrameHandler
from entitydb.handlers import KeyedHandler, MapHandler, MapListHandler
from entitydb.handlers import ScalarHandler, populate_entity
from entitydb.types import Column, ResultSet
from tests.fixtures.entities import Order


def make_result(names, rows):
    return ResultSet(Column.create_empty_columns(names), [tuple(r) for r in rows])


ORDER_MAP = {'created_at': 'createdAt', 'order_total': 'total'}


@pytest.fixture
def orders():
    return make_result(
        ['id', 'customer', 'created_at', 'order_total'],
        [(1, 'Alice', '2024-01-05', 10.5),
         (2, 'Bob', '2024-01-06', 20.0),
         (3, 'Alice', '2024-01-07', 30.25)])


@pytest.fixture
def empty():
    return make_result(['id', 'customer'], [])


def test_populate_entity_translates_columns():
    """Columns are translated through the field map before matching"""
    order = populate_entity(Order, {'id': 7, 'created_at': '2024-01-05', 'order_total': 1.5},
                            ORDER_MAP)
    assert order == Order(id=7, createdAt='2024-01-05', total=1.5)


def test_populate_entity_without_map_leaves_attribute_unset():
    """An untranslated underscore column does not reach the camel-case attribute"""
    order = populate_entity(Order, {'id': 7, 'created_at': '2024-01-05'})
    assert order.id == 7
    assert order.createdAt is None


def test_populate_entity_case_insensitive_and_ignores_unknown():
    order = populate_entity(Order, {'ID': 1, 'Customer': 'Bob', 'unknown_col': 'x'})
    assert order.id == 1
    assert order.customer == 'Bob'
    assert not hasattr(order, 'unknown_col')


def test_populate_entity_required_and_non_init_fields():
    @dataclass
    class Strict:
        id: int
        label: str
        computed: str = field(init=False, default='')

    obj = populate_entity(Strict, {'id': 3, 'computed': 'set'})
    assert obj.id == 3
    assert obj.label is None
    assert obj.computed == 'set'


def test_populate_plain_class():
    class Plain:
        id: int = None
        userName: str = None

    obj = populate_entity(Plain, {'id': 5, 'user_name': 'ann'}, {'user_name': 'userName'})
    assert isinstance(obj, Plain)
    assert (obj.id, obj.userName) == (5, 'ann')


class TestEntityShapers:

    def test_bean(self, orders):
        order = BeanHandler(Order, ORDER_MAP)(orders)
        assert order == Order(id=1, customer='Alice', createdAt='2024-01-05', total=10.5)

    def test_bean_empty(self, empty):
        assert BeanHandler(Order, ORDER_MAP)(empty) is None

    def test_bean_list(self, orders, empty):
        result = BeanListHandler(Order, ORDER_MAP)(orders)
        assert [o.id for o in result] == [1, 2, 3]
        assert [o.total for o in result] == [10.5, 20.0, 30.25]
        assert BeanListHandler(Order)(empty) == []

    def test_bean_map_keys_on_first_column(self, orders):
        """Keyed map does not translate columns"""
        result = BeanMapHandler(Order)(orders)
        assert list(result) == [1, 2, 3]
        assert result[2].customer == 'Bob'
        assert result[2].createdAt is None

    def test_bean_map_named_key(self, orders):
        result = BeanMapHandler(Order, 'customer')(orders)
        assert list(result) == ['Alice', 'Bob']
        assert result['Alice'].id == 3


class TestRowShapers:

    def test_array(self, orders, empty):
        assert ArrayHandler()(orders) == [1, 'Alice', '2024-01-05', 10.5]
        assert ArrayHandler()(empty) == []

    def test_array_list(self, orders):
        rows = ArrayListHandler()(orders)
        assert len(rows) == 3
        assert rows[1] == [2, 'Bob', '2024-01-06', 20.0]

    def test_map(self, orders, empty):
        assert MapHandler()(orders) == {
            'id': 1, 'customer': 'Alice', 'created_at': '2024-01-05', 'order_total': 10.5}
        assert MapHandler()(empty) is None

    def test_map_list(self, orders, empty):
        rows = MapListHandler()(orders)
        assert [r['customer'] for r in rows] == ['Alice', 'Bob', 'Alice']
        assert MapListHandler()(empty) == []

    def test_keyed(self, orders, empty):
        keyed = KeyedHandler('customer')(orders)
        assert list(keyed) == ['Alice', 'Bob']
        assert keyed['Alice']['id'] == 3
        assert KeyedHandler('customer')(empty) == {}

    def test_keyed_unknown_column(self, orders):
        with pytest.raises(KeyError):
            KeyedHandler('missing')(orders)


class TestValueShapers:

    def test_scalar_first_column(self, orders, empty):
        assert ScalarHandler()(orders) == 1
        assert ScalarHandler()(empty) is None

    def test_scalar_named_column(self, orders):
        assert ScalarHandler('customer')(orders) == 'Alice'
        assert ScalarHandler('CUSTOMER')(orders) == 'Alice'

    def test_scalar_falls_back_to_first_column(self):
        """count(*) projections are labelled differently per backend"""
        result = make_result(['total_count'], [(42,)])
        assert ScalarHandler('count(*)')(result) == 42

    def test_count(self, empty):
        assert CountHandler()(make_result(['count(*)'], [(4,)])) == 4
        assert CountHandler()(make_result(['count'], [('7',)])) == 7
        assert CountHandler()(empty) == 0

    def test_count_non_numeric_first_column(self):
        result = make_result(['label', 'n'], [('total', 3)])
        with pytest.raises(ValueError):
            CountHandler()(result)

    def test_column_list(self, orders, empty):
        assert ColumnListHandler()(orders) == [1, 2, 3]
        assert ColumnListHandler('customer')(orders) == ['Alice', 'Bob', 'Alice']
        assert ColumnListHandler()(empty) == []

    def test_dataframe(self, orders):
        df = DataFrameHandler()(orders)
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ['id', 'customer', 'created_at', 'order_total']
        assert len(df) == 3
        assert df['order_total'].sum() == pytest.approx(60.75)
        assert set(df.attrs['column_types']) == set(df.columns)

    def test_dataframe_empty_keeps_columns(self, empty):
        df = DataFrameHandler()(empty)
        assert df.empty
        assert list(df.columns) == ['id', 'customer']
