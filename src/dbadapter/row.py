"""Row shapes returned by `Statement.fetch`.

Each fetch mode produces one variant, so callers can dispatch with
``match``::

    match stmt.fetch():
        case Positional(values):
            ...
        case Named(mapping):
            ...
        case None:
            ...  # no more rows

End of data is signalled by ``None`` from `fetch` and by the
`NO_MORE_ROWS` sentinel from `fetch_column`, never by an exception.
"""
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dbadapter.options import FetchMode

from libb import attrdict

__all__ = [
    'Positional',
    'Named',
    'Both',
    'Record',
    'Scalar',
    'FetchedRow',
    'NO_MORE_ROWS',
    'build_row',
]


class _NoMoreRows:
    """Sentinel type for an exhausted cursor in `fetch_column`."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return 'NO_MORE_ROWS'


NO_MORE_ROWS = _NoMoreRows()


@dataclass(frozen=True, slots=True)
class Positional:
    """Values by column position (FetchMode.NUM)."""
    values: tuple

    def __getitem__(self, index: int) -> Any:
        return self.values[index]

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True, slots=True)
class Named:
    """Values by column name (FetchMode.ASSOC)."""
    mapping: dict

    def __getitem__(self, key: str) -> Any:
        return self.mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.mapping)

    def __len__(self) -> int:
        return len(self.mapping)

    def keys(self):
        return self.mapping.keys()

    def get(self, key: str, default: Any = None) -> Any:
        return self.mapping.get(key, default)


@dataclass(frozen=True, slots=True)
class Both:
    """Values addressable by position and by name (FetchMode.BOTH, BOUND).

    Integer keys index positions, string keys index names. Iteration yields
    the positional values.
    """
    values: tuple
    mapping: dict

    def __getitem__(self, key: int | str) -> Any:
        if isinstance(key, int):
            return self.values[key]
        return self.mapping[key]

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def items(self) -> list[tuple[int | str, Any]]:
        """Positional keys followed by named keys."""
        return list(enumerate(self.values)) + list(self.mapping.items())


@dataclass(frozen=True, slots=True)
class Record:
    """Attribute bag keyed by column name (FetchMode.OBJ)."""
    attrs: attrdict = field(default_factory=attrdict)

    def __getattr__(self, name: str) -> Any:
        if name == 'attrs':
            raise AttributeError(name)
        try:
            return self.attrs[name]
        except KeyError:
            raise AttributeError(name) from None

    def __getitem__(self, key: str) -> Any:
        return self.attrs[key]


@dataclass(frozen=True, slots=True)
class Scalar:
    """Single column value (FetchMode.COLUMN)."""
    value: Any


FetchedRow = Positional | Named | Both | Record | Scalar


def build_row(mode: int, values: Sequence, keys: Sequence[str], column: int = 0) -> FetchedRow:
    """Shape one native row for a fetch mode.

    `mode` is a `FetchMode`; BOUND builds the same shape as BOTH.
    """
    values = tuple(values)
    if mode == FetchMode.NUM:
        return Positional(values)
    if mode == FetchMode.ASSOC:
        return Named(dict(zip(keys, values)))
    if mode in {FetchMode.BOTH, FetchMode.BOUND}:
        return Both(values, dict(zip(keys, values)))
    if mode == FetchMode.OBJ:
        return Record(attrdict(zip(keys, values)))
    if mode == FetchMode.COLUMN:
        return Scalar(values[column])
    raise ValueError(f'Unhandled fetch mode {mode!r}')


def as_mapping(row: FetchedRow) -> Mapping:
    """Name-keyed view of any row shape that carries names."""
    if isinstance(row, Named | Both):
        return row.mapping
    if isinstance(row, Record):
        return row.attrs
    raise TypeError(f'{type(row).__name__} has no column names')
