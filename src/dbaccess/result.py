"""
Query result data model.

- ResultRow: one fetched row, addressable by position or by
  case-insensitive column name, with typed getters
- ResultSet: the rows (or, for writes, the affected count and generated
  keys) produced by one statement
- pandas loaders used by `ResultSet.to_dataframe`
"""
import datetime
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import pandas as pd
import pyarrow as pa
from dbaccess.converter import TypeConverter, default_converter

__all__ = [
    'CaseInsensitiveDict',
    'ResultRow',
    'ResultSet',
    'UpdateResult',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
]

T = TypeVar('T')

_MISSING = object()


class CaseInsensitiveDict(Mapping):
    """Read-only mapping whose string keys match regardless of letter case.

    Keeps the spelling of the last key stored for each case-folded name.
    """

    def __init__(self, items: Mapping | Iterable[tuple[Any, Any]] = ()) -> None:
        self._data: dict[Any, tuple[Any, Any]] = {}
        pairs = items.items() if isinstance(items, Mapping) else items
        for key, value in pairs:
            self._data[self._fold(key)] = (key, value)

    @staticmethod
    def _fold(key: Any) -> Any:
        return key.casefold() if isinstance(key, str) else key

    def __getitem__(self, key: Any) -> Any:
        return self._data[self._fold(key)][1]

    def __contains__(self, key: Any) -> bool:
        return self._fold(key) in self._data

    def __iter__(self) -> Iterator:
        return (key for key, _ in self._data.values())

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f'CaseInsensitiveDict({dict(self.items())!r})'


class ResultRow:
    """One row of a query result.

    Values are read once from the cursor; large objects are drained into
    memory at construction. Column lookup ignores letter case and, when
    a name repeats, resolves to the last column with that name.
    """

    __slots__ = ('_names', '_values', '_index', '_converter')

    def __init__(self, names: Sequence[str], values: Sequence[Any],
                 converter: TypeConverter | None = None) -> None:
        converter = converter or default_converter()
        self._names = tuple(names)
        self._values = tuple(converter.drain(value, name)
                             for name, value in zip(self._names, values))
        self._index = CaseInsensitiveDict((name, pos) for pos, name in enumerate(self._names))
        self._converter = converter

    def __repr__(self) -> str:
        return f'ResultRow({self.to_dict()!r})'

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResultRow):
            return NotImplemented
        return self._names == other._names and self._values == other._values

    # Unhashable: values may be arrays
    __hash__ = None

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._index

    def __getitem__(self, key: int | str | slice) -> Any:
        if isinstance(key, str):
            return self._values[self._index[key]]
        return self._values[key]

    @property
    def column_names(self) -> tuple[str, ...]:
        return self._names

    @property
    def values(self) -> tuple[Any, ...]:
        return self._values

    def keys(self) -> tuple[str, ...]:
        return self._names

    def get(self, key: int | str, default: Any = None) -> Any:
        """Value by position or column name, or `default` if there is none."""
        value = self._lookup(key)
        return default if value is _MISSING else value

    def _lookup(self, key: int | str) -> Any:
        if isinstance(key, str):
            pos = self._index.get(key)
            return _MISSING if pos is None else self._values[pos]
        if -len(self._values) <= key < len(self._values):
            return self._values[key]
        return _MISSING

    def is_null(self, key: int | str) -> bool:
        """True if the column is null or missing."""
        return self.get(key) is None

    def get_as(self, key: int | str, target: type[T] | Any) -> T:
        """Value converted to `target`; a missing column converts like null."""
        value = self.get(key)
        return self._converter.convert(value, target, member=str(key))

    def get_bool(self, key: int | str) -> bool:
        return self.get_as(key, bool)

    def get_int(self, key: int | str) -> int:
        return self.get_as(key, int)

    def get_float(self, key: int | str) -> float:
        return self.get_as(key, float)

    def get_str(self, key: int | str) -> str | None:
        return self.get_as(key, str)

    def get_bytes(self, key: int | str) -> bytes | None:
        return self.get_as(key, bytes)

    def get_datetime(self, key: int | str) -> datetime.datetime | None:
        return self.get_as(key, datetime.datetime)

    def get_date(self, key: int | str) -> datetime.date | None:
        return self.get_as(key, datetime.date)

    def to_dict(self) -> dict[str, Any]:
        """Column name to value; a repeated name keeps its last value."""
        return dict(zip(self._names, self._values))

    def to_record(self, record_type: type[T]) -> T:
        """Map this row onto a new instance of `record_type`."""
        return self._converter.to_record(record_type, self._names, self._values)


@dataclass(frozen=True, slots=True)
class ResultSet:
    """Outcome of one statement.

    Query results carry `rows`; update results carry `rows=None`, the
    affected row count and any generated keys.
    """
    column_names: tuple[str, ...] = ()
    row_count: int = 0
    generated_keys: tuple[Any, ...] = ()
    is_update: bool = False
    rows: tuple[ResultRow, ...] | None = ()

    @classmethod
    def from_rows(cls, column_names: Sequence[str], rows: Sequence[ResultRow]) -> 'ResultSet':
        rows = tuple(rows)
        return cls(column_names=tuple(column_names), row_count=len(rows), rows=rows)

    @classmethod
    def from_update(cls, row_count: int, generated_keys: Sequence[Any] = ()) -> 'ResultSet':
        return cls(row_count=row_count, generated_keys=tuple(generated_keys),
                   is_update=True, rows=None)

    def __iter__(self) -> Iterator[ResultRow]:
        return iter(self.rows or ())

    def __len__(self) -> int:
        return self.row_count

    @property
    def first_row(self) -> ResultRow | None:
        return self.rows[0] if self.rows else None

    @property
    def generated_key(self) -> Any:
        """First generated key, or None when the statement generated none."""
        return self.generated_keys[0] if self.generated_keys else None

    @property
    def rows_affected(self) -> int:
        return self.row_count

    def to_dicts(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self]

    def to_records(self, record_type: type[T]) -> list[T]:
        return [row.to_record(record_type) for row in self]

    def to_dataframe(self, backend: str = 'numpy') -> pd.DataFrame:
        """Export the rows as a DataFrame.

        Args:
            backend: 'numpy' for NumPy-backed columns, 'pyarrow' for
                ArrowDtype columns
        """
        loaders = {
            'numpy': pandas_numpy_data_loader,
            'pyarrow': pandas_pyarrow_data_loader,
        }
        if backend not in loaders:
            raise ValueError(f'backend must be one of: {list(loaders)}')
        return loaders[backend](self.rows or (), self.column_names)


UpdateResult = ResultSet


def pandas_numpy_data_loader(rows: Sequence[ResultRow],
                             column_names: Sequence[str]) -> pd.DataFrame:
    """Standard pandas DataFrame loader using NumPy.

    Always returns a DataFrame, with columns preserved for empty results.
    """
    if not rows:
        return pd.DataFrame(columns=list(column_names))
    return pd.DataFrame.from_records([row.values for row in rows],
                                     columns=list(column_names))


def pandas_pyarrow_data_loader(rows: Sequence[ResultRow],
                               column_names: Sequence[str]) -> pd.DataFrame:
    """PyArrow-based pandas DataFrame loader.

    Always returns a DataFrame, with columns preserved for empty results.
    """
    if not rows:
        return pd.DataFrame(columns=list(column_names))
    columns_data = [pa.array([row[pos] for row in rows]) for pos in range(len(column_names))]
    table = pa.table(columns_data, names=list(column_names))
    return table.to_pandas(types_mapper=pd.ArrowDtype)
