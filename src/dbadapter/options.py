from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import pandas as pd
from dbadapter.drivers import get_available_drivers, get_driver_class
from dbadapter.drivers import is_supported_driver

from libb import ConfigOptions, scriptname

__all__ = [
    'AdapterOptions',
    'CaseFolding',
    'FetchMode',
    'pandas_data_loader',
    'iterdict_data_loader',
]


class FetchMode(IntEnum):
    """Row shape returned by a fetch call.
    """
    ASSOC = 2
    NUM = 3
    BOTH = 4
    OBJ = 5
    BOUND = 6
    COLUMN = 7

    @classmethod
    def coerce(cls, value: 'FetchMode | int | str') -> 'FetchMode':
        """Convert an int or a case-insensitive name to a FetchMode.

        Raises ValueError for anything else.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError(f'Invalid fetch mode {value!r}') from None
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f'Invalid fetch mode {value!r}')
        return cls(value)


class CaseFolding(IntEnum):
    """Case applied to column names in named row shapes.
    """
    NATURAL = 0
    UPPER = 1
    LOWER = 2

    @classmethod
    def coerce(cls, value: 'CaseFolding | int | str') -> 'CaseFolding':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError(f'Invalid case folding {value!r}') from None
        return cls(value)

    def fold(self, key: Any) -> str:
        key = str(key)
        if self is CaseFolding.LOWER:
            return key.lower()
        if self is CaseFolding.UPPER:
            return key.upper()
        return key


def iterdict_data_loader(data: Sequence[dict], columns: Sequence[str], **kwargs) -> list[dict]:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


def pandas_data_loader(data: Sequence[dict], columns: Sequence[str], **kwargs) -> pd.DataFrame:
    """Standard pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return pd.DataFrame(columns=list(columns))
    return pd.DataFrame.from_records(list(data), columns=list(columns))


@dataclass
class AdapterOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`, `sqlite`

    Statement options:
    - case_folding: Case of column names in ASSOC/BOTH/OBJ rows (default: NATURAL)
    - fetch_mode: Default fetch mode for new statements (default: ASSOC)
    - profiler: Whether query profiling starts enabled (default: False)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    case_folding: CaseFolding | int | str = CaseFolding.NATURAL
    fetch_mode: FetchMode | int | str = FetchMode.ASSOC
    profiler: bool = False
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        if not is_supported_driver(self.drivername):
            available = get_available_drivers()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or scriptname() or 'python_console'
        self.case_folding = CaseFolding.coerce(self.case_folding)
        self.fetch_mode = FetchMode.coerce(self.fetch_mode)
        driver_cls = get_driver_class(self.drivername)
        driver_cls.validate_options(self)
        if self.data_loader is None:
            self.data_loader = pandas_data_loader
