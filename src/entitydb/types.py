"""
Raw tabular results and row adapters.

Every statement that returns rows is reduced to a :class:`ResultSet`
(column metadata plus row tuples) before any result shaping happens.
"""
import datetime
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Self

import dateutil.parser

__all__ = [
    'Column',
    'ResultSet',
    'RowAdapter',
    'convert_date',
    'convert_datetime',
    'AdapterRegistry',
]


class Column:
    """Database column metadata."""

    def __init__(self, name: str, type_code: Any = None,
                 display_size: int | None = None,
                 internal_size: int | None = None,
                 precision: int | None = None,
                 scale: int | None = None,
                 nullable: bool | None = None):
        self.name = name
        self.type_code = type_code
        self.display_size = display_size
        self.internal_size = internal_size
        self.precision = precision
        self.scale = scale
        self.nullable = nullable

    @classmethod
    def from_cursor_description(cls, description_item: Any) -> Self:
        """Create a Column from a DB-API cursor description item.

        psycopg exposes named attributes, sqlite3 plain 7-tuples.
        """
        if hasattr(description_item, 'name'):
            return cls(
                name=description_item.name,
                type_code=getattr(description_item, 'type_code', None),
                display_size=getattr(description_item, 'display_size', None),
                internal_size=getattr(description_item, 'internal_size', None),
                precision=getattr(description_item, 'precision', None),
                scale=getattr(description_item, 'scale', None),
            )
        item = tuple(description_item) + (None,) * 7
        return cls(*item[:6], nullable=None if item[6] is None else bool(item[6]))

    def __repr__(self) -> str:
        return f'Column(name={self.name!r}, type_code={self.type_code!r})'

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'type_code': self.type_code,
            'display_size': self.display_size,
            'internal_size': self.internal_size,
            'precision': self.precision,
            'scale': self.scale,
            'nullable': self.nullable,
        }

    @staticmethod
    def get_names(columns: list[Self]) -> list[str]:
        return [col.name for col in columns]

    @staticmethod
    def get_column_types_dict(columns: list[Self]) -> dict[str, dict]:
        return {col.name: col.to_dict() for col in columns}

    @staticmethod
    def create_empty_columns(names: list[str]) -> list[Self]:
        return [Column(name=name) for name in names]


@dataclass
class ResultSet:
    """Raw tabular result of one statement."""
    columns: list[Column] = field(default_factory=list)
    rows: list[tuple] = field(default_factory=list)

    @classmethod
    def from_cursor_result(cls, result: Any) -> Self:
        """Drain a SQLAlchemy ``CursorResult`` into a ResultSet.
        """
        if not result.returns_rows:
            return cls()
        description = getattr(getattr(result, 'cursor', None), 'description', None)
        if description:
            columns = [Column.from_cursor_description(d) for d in description]
        else:
            columns = Column.create_empty_columns(list(result.keys()))
        rows = [tuple(row) for row in result.fetchall()]
        return cls(columns, rows)

    @property
    def names(self) -> list[str]:
        return Column.get_names(self.columns)

    def column_index(self, name: str) -> int:
        """Position of a column by name, exact match first, then case-insensitive.

        Raises KeyError when no column matches.
        """
        names = self.names
        if name in names:
            return names.index(name)
        lowered = [n.lower() for n in names]
        if name.lower() in lowered:
            return lowered.index(name.lower())
        raise KeyError(f'Column {name!r} not in result {names}')

    def __len__(self) -> int:
        return len(self.rows)

    def __bool__(self) -> bool:
        return bool(self.rows)


class RowAdapter:
    """Row adapter for converting result rows to dictionaries and values."""

    def __init__(self, names: list[str], row: tuple):
        self.names = names
        self.row = row

    def to_dict(self) -> dict[str, Any]:
        """Convert row to a column-name keyed dictionary."""
        return dict(zip(self.names, self.row))

    def to_list(self) -> list[Any]:
        return list(self.row)

    def get_value(self, index: int = 0) -> Any:
        """Get a value from the row, the first column by default."""
        return self.row[index]

    @staticmethod
    def create(result: ResultSet, row: tuple) -> 'RowAdapter':
        return RowAdapter(result.names, row)


# SQLite Adapters - Database value converters

def convert_date(val: bytes) -> datetime.date:
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes) -> datetime.datetime:
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(val.decode())


class AdapterRegistry:
    """Registry for database-specific type adapters."""

    def sqlite(self, connection: sqlite3.Connection) -> None:
        """Register SQLite converters for a connection."""
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        sqlite3.register_converter('timestamp', convert_datetime)
