"""
Database adapter with prepared statements, fetch modes and query profiling.

Supported drivers: PostgreSQL (psycopg) and SQLite.

All query operations can be called either as:
- Module functions: db.fetch_all(adapter, sql, bind)
- Adapter methods: adapter.fetch_all(sql, bind)

The module functions are facades over the Adapter methods.
"""
__version__ = '0.1.0'

from typing import Any

from dbadapter.adapter import Adapter, Bind, connect
from dbadapter.binding import Slot
from dbadapter.drivers import Driver, ErrorInfo, register_driver
from dbadapter.exceptions import AdapterError, AlreadyEnded, DatabaseError
from dbadapter.exceptions import DriverError, InvalidBindTarget, InvalidFetchMode
from dbadapter.exceptions import NotSupportedError, ParseError, ProfilerError
from dbadapter.exceptions import StatementClosed, StatementError, UnknownHandle
from dbadapter.exceptions import ValidationError
from dbadapter.options import AdapterOptions, CaseFolding, FetchMode
from dbadapter.profiler import Profiler, ProfileStatus, QueryProfile, QueryType
from dbadapter.row import NO_MORE_ROWS, Both, FetchedRow, Named, Positional
from dbadapter.row import Record, Scalar
from dbadapter.statement import Statement, StatementState
from dbadapter.transaction import Transaction as transaction


def execute(adapter: Adapter, sql: str, bind: Bind = None) -> int:
    """Execute a SQL statement and return affected row count.
    """
    return adapter.execute(sql, bind)


delete = execute
insert = execute
update = execute


def query(adapter: Adapter, sql: str, bind: Bind = None) -> Statement:
    """Prepare and execute a statement, returning it for fetching.
    """
    return adapter.query(sql, bind)


def fetch_all(adapter: Adapter, sql: str, bind: Bind = None,
              fetch_mode: FetchMode | int | str | None = None) -> list[FetchedRow]:
    """Execute a query and return every row.
    """
    return adapter.fetch_all(sql, bind, fetch_mode)


def fetch_row(adapter: Adapter, sql: str, bind: Bind = None,
              fetch_mode: FetchMode | int | str | None = None) -> FetchedRow | None:
    """Execute a query and return the first row or None.
    """
    return adapter.fetch_row(sql, bind, fetch_mode)


def fetch_col(adapter: Adapter, sql: str, bind: Bind = None) -> list[Any]:
    """Execute a query and return the first column as a list.
    """
    return adapter.fetch_col(sql, bind)


def fetch_one(adapter: Adapter, sql: str, bind: Bind = None) -> Any:
    """Execute a query and return a single scalar value or None.
    """
    return adapter.fetch_one(sql, bind)


def fetch_frame(adapter: Adapter, sql: str, bind: Bind = None, **kwargs: Any) -> Any:
    """Execute a query and return the rows through the data loader.
    """
    return adapter.fetch_frame(sql, bind, **kwargs)
