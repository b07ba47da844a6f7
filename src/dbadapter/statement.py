"""
Prepared statement lifecycle.

    Statement(adapter, sql)      CONSTRUCTED -> PREPARED
    stmt.bind_value(1, 42)
    stmt.execute()               PREPARED -> EXECUTED
    stmt.fetch()                 row variant, or None at end of data
    stmt.close_cursor()          EXECUTED -> PREPARED
    stmt.close()                 -> CLOSED

The SQL is parsed once at construction; every bind call is validated
against that parse. Each execution is profiled separately when the
adapter's profiler is enabled.
"""
import logging
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from enum import Enum
from functools import wraps
from typing import TYPE_CHECKING, Any, Self

from dbadapter.binding import ColumnBinder, ParameterBinder, Slot
from dbadapter.drivers.base import ErrorInfo
from dbadapter.exceptions import DriverError, InvalidFetchMode, NotSupportedError
from dbadapter.exceptions import ParseError, StatementClosed, StatementError
from dbadapter.options import FetchMode
from dbadapter.profiler import Profiler
from dbadapter.row import NO_MORE_ROWS, FetchedRow, build_row
from dbadapter.sql import NAMED, POSITIONAL, TokenSequence, parse_placeholders

from libb import attrdict

if TYPE_CHECKING:
    from dbadapter.adapter import Adapter

logger = logging.getLogger(__name__)

__all__ = [
    'Statement',
    'StatementState',
]


class StatementState(Enum):
    CONSTRUCTED = 'constructed'
    PREPARED = 'prepared'
    EXECUTED = 'executed'
    CLOSED = 'closed'


def dumpsql(func):
    """Decorator for logging statement execution."""
    @wraps(func)
    def wrapper(self: 'Statement', params: Any = None) -> Any:
        start = time.time()
        logger.debug(f'SQL:\n{self.sql}\nargs: {params}')
        try:
            return func(self, params)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{self.sql}\nargs: {params}')
            raise
        finally:
            elapsed = time.time() - start
            self._adapter.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class Statement:
    """A parsed and prepared SQL statement bound to one adapter.

    Raises ParseError at construction when the SQL uses a placeholder style
    the driver does not support, or mixes ``?`` with ``:name``.
    """

    def __init__(self, adapter: 'Adapter', sql: str) -> None:
        self._adapter = adapter
        self._driver = adapter.driver
        self.state = StatementState.CONSTRUCTED

        positional = self._driver.supports_parameters(POSITIONAL)
        named = self._driver.supports_parameters(NAMED)
        self.tokens: TokenSequence = parse_placeholders(
            sql, positional, named,
            value_quote=self._driver.value_quote,
            identifier_quote=self._driver.identifier_quote)
        if self.tokens.has_positional and self.tokens.has_named:
            raise ParseError('Cannot mix positional and named parameters in one statement')

        self._binder = ParameterBinder(self.tokens, positional, named)
        self._columns = ColumnBinder()
        self._fetch_mode = FetchMode.coerce(adapter.fetch_mode)
        self._profile_handle: int | None = None
        self._profile_owner: Profiler | None = None
        self._last_error: DriverError | None = None
        self._keys: list[str] | None = None

        self._native = self._driver.prepare_native(adapter.get_connection(), self.tokens)
        self.state = StatementState.PREPARED

    def __repr__(self) -> str:
        return f'Statement({self.sql!r}, state={self.state.value})'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FetchedRow]:
        while True:
            row = self.fetch()
            if row is None:
                return
            yield row

    @property
    def sql(self) -> str:
        return self.tokens.sql

    @property
    def fetch_mode(self) -> FetchMode:
        return self._fetch_mode

    @property
    def bound_values(self) -> dict[int | str, Any]:
        """Values the next execution would send, by-reference slots read now.
        """
        return self._binder.resolve()

    def get_adapter(self) -> 'Adapter':
        return self._adapter

    def get_driver_statement(self) -> Any:
        """The driver's native statement object.
        """
        return self._native

    def _check_open(self) -> None:
        if self.state is StatementState.CLOSED:
            raise StatementClosed(f'Statement is closed: {self.sql}')

    # binding

    def bind_param(self, target: int | str, slot: Slot | Callable[[], Any],
                   type: Any = None, length: int | None = None) -> None:
        """Bind a placeholder to a `Slot` (or zero-argument callable) that is
        read again on every execution.
        """
        self._check_open()
        self._binder.bind(target, slot, by_reference=True, type=type, length=length)

    def bind_value(self, target: int | str, value: Any, type: Any = None) -> None:
        """Bind a placeholder to the value as it is now.
        """
        self._check_open()
        self._binder.bind(target, value, type=type)

    def bind_column(self, column: int | str, slot: Slot | Callable[[Any], Any]) -> None:
        """Register an output slot for a result column (1-based position or
        name), written on every BOUND fetch.
        """
        self._check_open()
        self._columns.bind(column, slot)

    # execution

    def _start_profile(self, params: Mapping) -> int | None:
        # handles are only meaningful to the profiler that issued them, and
        # a previous profile evicted by a filter cannot be cloned
        profiler = self._adapter.get_profiler()
        handle = self._profile_handle
        if handle is not None and profiler is self._profile_owner and handle in profiler:
            handle = profiler.query_clone(handle, params=params)
        else:
            handle = profiler.query_start(self.sql, params=params)
        if handle is not None:
            self._profile_handle = handle
            self._profile_owner = profiler
        return handle

    def _end_profile(self, handle: int | None) -> None:
        profiler = self._profile_owner
        if handle is not None and handle in profiler:
            profiler.query_end(handle)

    @dumpsql
    def execute(self, params: Sequence | Mapping | Any | None = None) -> bool:
        """Execute with the bound parameters, or with `params` for this call only.

        A sequence supplies positions 1..n, a mapping supplies names or
        positions. Executing again while a result is open closes the cursor
        first.
        """
        self._check_open()
        if self.state is StatementState.EXECUTED:
            self.close_cursor()

        resolved = self._binder.resolve(params)
        bound = self._binder.bound if params is None else {}
        logger.debug(f'Bound values: {resolved}')

        handle = self._start_profile(resolved)
        try:
            for target, value in resolved.items():
                bp = bound.get(target)
                self._driver.bind_native(self._native, target, value,
                                         type=bp.type if bp else None,
                                         length=bp.length if bp else None)
            self._driver.execute_native(self._native)
        except DriverError as exc:
            self._last_error = exc
            raise
        finally:
            self._end_profile(handle)

        self._last_error = None
        self._keys = None
        self.state = StatementState.EXECUTED
        return True

    # fetching

    def _coerce_mode(self, mode: FetchMode | int | str) -> FetchMode:
        try:
            return FetchMode.coerce(mode)
        except ValueError:
            if self.state is StatementState.EXECUTED:
                self.close_cursor()
            raise InvalidFetchMode(f'Invalid fetch mode {mode!r} specified') from None

    def set_fetch_mode(self, mode: FetchMode | int | str) -> None:
        """Set the default mode for later fetch calls.

        An invalid mode closes the cursor before InvalidFetchMode is raised.
        """
        self._check_open()
        self._fetch_mode = self._coerce_mode(mode)

    def _column_keys(self) -> list[str]:
        if self._keys is None:
            self._keys = [self._adapter.fold_case(name)
                          for name in self._driver.column_metadata(self._native)]
        return self._keys

    def _fetch_values(self) -> tuple | None:
        if self.state is not StatementState.EXECUTED:
            return None
        try:
            return self._driver.fetch_native_row(self._native)
        except DriverError as exc:
            self._last_error = exc
            raise

    def fetch(self, mode: FetchMode | int | str | None = None) -> FetchedRow | None:
        """Next row shaped by `mode` (default: the statement's fetch mode).

        Returns None when no rows remain or nothing has been executed.
        """
        self._check_open()
        mode = self._fetch_mode if mode is None else self._coerce_mode(mode)
        values = self._fetch_values()
        if values is None:
            return None
        row = build_row(mode, values, self._column_keys())
        if mode is FetchMode.BOUND:
            self._columns.assign(row.values, row.mapping)
        return row

    def fetch_column(self, col: int = 0) -> Any:
        """Value of one 0-based column from the next row, or NO_MORE_ROWS.
        """
        self._check_open()
        if self.state is StatementState.EXECUTED:
            width = len(self._column_keys())
            if width and not 0 <= col < width:
                raise StatementError(f'Invalid column index {col}')
        values = self._fetch_values()
        if values is None:
            return NO_MORE_ROWS
        return values[col]

    def fetch_all(self, mode: FetchMode | int | str | None = None,
                  col: int | None = None) -> list:
        """All remaining rows.

        In COLUMN mode, or when `col` is given, returns plain values of that
        column instead of row variants.
        """
        self._check_open()
        mode = self._fetch_mode if mode is None else self._coerce_mode(mode)
        if col is not None or mode is FetchMode.COLUMN:
            values = []
            while True:
                value = self.fetch_column(col or 0)
                if value is NO_MORE_ROWS:
                    return values
                values.append(value)
        rows = []
        while True:
            row = self.fetch(mode)
            if row is None:
                return rows
            rows.append(row)

    def fetch_object(self, cls: Callable[..., Any] = attrdict, **kwargs: Any) -> Any:
        """Next row as an instance of `cls`, one attribute per column.

        `cls` is called with `kwargs`; returns None at end of data.
        """
        self._check_open()
        values = self._fetch_values()
        if values is None:
            return None
        obj = cls(**kwargs)
        for key, value in zip(self._column_keys(), values):
            setattr(obj, key, value)
        return obj

    def fetch_frame(self, **kwargs: Any) -> Any:
        """Remaining rows through the adapter's data loader (a DataFrame by default).
        """
        self._check_open()
        rows = [row.mapping for row in self.fetch_all(FetchMode.ASSOC)]
        columns = self._column_keys() if self.state is StatementState.EXECUTED else []
        return self._adapter.options.data_loader(rows, columns, **kwargs)

    # result metadata

    def column_count(self) -> int:
        self._check_open()
        if self.state is not StatementState.EXECUTED:
            return 0
        return len(self._driver.column_metadata(self._native))

    def row_count(self) -> int:
        """Rows affected by the last execution.
        """
        self._check_open()
        if self.state is not StatementState.EXECUTED:
            return 0
        return self._driver.affected_row_count(self._native)

    def error_code(self) -> Any:
        """Native code of the last failed operation, or None.
        """
        return self._last_error.code if self._last_error is not None else None

    def error_info(self) -> ErrorInfo | None:
        err = self._last_error
        if err is None:
            return None
        return ErrorInfo(err.code, err.native_message, err.offset, err.sqltext)

    def next_rowset(self) -> bool:
        """Advance to the next result set of a multi-statement execution.
        """
        self._check_open()
        if not self._driver.supports_multiple_rowsets:
            raise NotSupportedError(f'{type(self._driver).__name__} does not support multiple rowsets')
        self._keys = None
        return self._driver.next_rowset(self._native)

    def get_attribute(self, name: str) -> Any:
        self._check_open()
        return self._driver.get_attribute(self._native, name)

    def set_attribute(self, name: str, value: Any) -> None:
        self._check_open()
        self._driver.set_attribute(self._native, name, value)

    # cleanup

    def close_cursor(self) -> None:
        """Release the current result so the statement can run again.
        """
        self._check_open()
        if self.state is StatementState.EXECUTED:
            self._driver.close_cursor(self._native)
            self.state = StatementState.PREPARED
        self._keys = None

    def close(self) -> None:
        """Release the native statement. Closing twice is a no-op.
        """
        if self.state is StatementState.CLOSED:
            return
        self._driver.close_native(self._native)
        self.state = StatementState.CLOSED
        logger.debug(f'Closed statement: {self.sql}')

    def __del__(self) -> None:
        # nothing to release if never prepared or already closed
        if getattr(self, '_native', None) is None or self.state is StatementState.CLOSED:
            return
        if self._adapter.is_connected():
            self.close()
