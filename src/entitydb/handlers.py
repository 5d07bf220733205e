"""
Result shapers.

A shaper turns the raw :class:`~entitydb.types.ResultSet` of one statement
into the value handed back to the caller. The execution path never knows
which shape was asked for; it only calls ``shaper(result_set)``.
"""
import dataclasses
import logging
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

import pandas as pd

from entitydb.types import Column, ResultSet, RowAdapter

__all__ = [
    'ResultShaper',
    'populate_entity',
    'BeanHandler',
    'BeanListHandler',
    'BeanMapHandler',
    'ArrayHandler',
    'ArrayListHandler',
    'MapHandler',
    'MapListHandler',
    'ScalarHandler',
    'CountHandler',
    'ColumnListHandler',
    'KeyedHandler',
    'DataFrameHandler',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')

ResultShaper = Callable[[ResultSet], Any]


def _attribute_names(cls: type) -> list[str]:
    if dataclasses.is_dataclass(cls):
        return [f.name for f in dataclasses.fields(cls)]
    names: list[str] = []
    for klass in reversed(cls.__mro__):
        names.extend(n for n in getattr(klass, '__annotations__', {}) if n not in names)
    return names


def populate_entity(cls: type[T], data: Mapping[str, Any],
                    field_map: Mapping[str, str] | None = None) -> T:
    """Create an entity instance from a column-keyed row.

    Columns are translated through ``field_map`` first and then matched to
    attribute names case-insensitively. Unmatched columns are ignored.
    """
    attributes = {name.lower(): name for name in _attribute_names(cls)}
    values: dict[str, Any] = {}
    for col, value in data.items():
        name = field_map.get(col, col) if field_map else col
        attr = attributes.get(name.lower())
        if attr is not None:
            values[attr] = value

    if not dataclasses.is_dataclass(cls):
        obj = cls()
        for attr, value in values.items():
            setattr(obj, attr, value)
        return obj

    init_kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        if f.name in values:
            init_kwargs[f.name] = values.pop(f.name)
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            init_kwargs[f.name] = None
    obj = cls(**init_kwargs)
    for attr, value in values.items():
        setattr(obj, attr, value)
    return obj


def _rows_as_dicts(result: ResultSet) -> list[dict[str, Any]]:
    return [RowAdapter.create(result, row).to_dict() for row in result.rows]


class BeanHandler(Generic[T]):
    """First row as an entity instance, None when there are no rows."""

    def __init__(self, cls: type[T], field_map: Mapping[str, str] | None = None):
        self.cls = cls
        self.field_map = field_map

    def __call__(self, result: ResultSet) -> T | None:
        if not result:
            return None
        data = RowAdapter.create(result, result.rows[0]).to_dict()
        return populate_entity(self.cls, data, self.field_map)


class BeanListHandler(Generic[T]):
    """All rows as entity instances."""

    def __init__(self, cls: type[T], field_map: Mapping[str, str] | None = None):
        self.cls = cls
        self.field_map = field_map

    def __call__(self, result: ResultSet) -> list[T]:
        return [populate_entity(self.cls, data, self.field_map)
                for data in _rows_as_dicts(result)]


class BeanMapHandler(Generic[T]):
    """Entity instances keyed by a column value, the first column by default.

    Columns are matched to attributes by name only.
    """

    def __init__(self, cls: type[T], key: str | None = None):
        self.cls = cls
        self.key = key

    def __call__(self, result: ResultSet) -> dict[Any, T]:
        index = 0 if self.key is None else result.column_index(self.key)
        return {row[index]: populate_entity(self.cls, data)
                for row, data in zip(result.rows, _rows_as_dicts(result))}


class ArrayHandler:
    """First row as a list of values, empty when there are no rows."""

    def __call__(self, result: ResultSet) -> list[Any]:
        if not result:
            return []
        return RowAdapter.create(result, result.rows[0]).to_list()


class ArrayListHandler:
    """All rows as lists of values."""

    def __call__(self, result: ResultSet) -> list[list[Any]]:
        return [RowAdapter.create(result, row).to_list() for row in result.rows]


class MapHandler:
    """First row as a column-name keyed dict, None when there are no rows."""

    def __call__(self, result: ResultSet) -> dict[str, Any] | None:
        if not result:
            return None
        return RowAdapter.create(result, result.rows[0]).to_dict()


class MapListHandler:
    """All rows as column-name keyed dicts."""

    def __call__(self, result: ResultSet) -> list[dict[str, Any]]:
        return _rows_as_dicts(result)


class ScalarHandler:
    """One value of the first row, from a named column or the first column."""

    def __init__(self, column: str | None = None):
        self.column = column

    def __call__(self, result: ResultSet) -> Any:
        if not result:
            return None
        index = 0
        if self.column is not None:
            try:
                index = result.column_index(self.column)
            except KeyError:
                logger.debug(f'Column {self.column!r} not in result, using first column')
        return RowAdapter.create(result, result.rows[0]).get_value(index)


class CountHandler:
    """Row count from a ``count(*)`` projection, 0 when there are no rows.

    Raises ValueError when the value read is not a number.
    """

    def __init__(self, column: str = 'count(*)'):
        self.scalar = ScalarHandler(column)

    def __call__(self, result: ResultSet) -> int:
        count = self.scalar(result)
        return int(count) if count is not None else 0


class ColumnListHandler:
    """Values of one column over all rows, the first column by default."""

    def __init__(self, column: str | None = None):
        self.column = column

    def __call__(self, result: ResultSet) -> list[Any]:
        if not result:
            return []
        index = 0 if self.column is None else result.column_index(self.column)
        return [row[index] for row in result.rows]


class KeyedHandler:
    """Rows as column-name keyed dicts, keyed by the value of one column."""

    def __init__(self, column: str):
        self.column = column

    def __call__(self, result: ResultSet) -> dict[Any, dict[str, Any]]:
        if not result:
            return {}
        index = result.column_index(self.column)
        return {row[index]: data for row, data in zip(result.rows, _rows_as_dicts(result))}


class DataFrameHandler:
    """pandas DataFrame with column metadata in ``attrs['column_types']``.

    Always returns a DataFrame, with columns preserved for empty results.
    """

    def __call__(self, result: ResultSet) -> pd.DataFrame:
        if not result:
            df = pd.DataFrame(columns=result.names)
        else:
            df = pd.DataFrame.from_records(result.rows, columns=result.names)
        df.attrs['column_types'] = Column.get_column_types_dict(result.columns)
        return df
