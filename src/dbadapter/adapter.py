"""
Adapter: one database session over one driver.

This module provides:
1. The `connect()` function for creating adapters from options or config
2. The `Adapter` class, which owns the native connection, the options and
   its own `Profiler`, and issues `Statement` objects

Convenience methods:
- query(sql, bind) - Prepare and execute, returning the open Statement
- execute(sql, bind) - Execute and return affected row count
- fetch_all / fetch_row / fetch_col / fetch_assoc / fetch_pairs / fetch_one
- fetch_frame(sql, bind) - Rows through the configured data loader
"""
import logging
from collections.abc import Mapping, Sequence
from dataclasses import fields
from typing import Any, Self

from dbadapter.drivers import Driver, get_driver
from dbadapter.exceptions import AdapterError, InvalidFetchMode, ProfilerError
from dbadapter.exceptions import ValidationError
from dbadapter.options import AdapterOptions, FetchMode
from dbadapter.profiler import Profiler, QueryType
from dbadapter.row import FetchedRow, as_mapping
from dbadapter.sql import quote_identifier, quote_value
from dbadapter.statement import Statement
from dbadapter.transaction import Transaction

from libb import load_options

__all__ = [
    'Adapter',
    'connect',
]

logger = logging.getLogger(__name__)

Bind = Sequence | Mapping | Any | None


class Adapter:
    """Database session: connection, options, profiler and statement factory.

    The native connection is opened lazily on first use (or eagerly by
    `connect()`) and profiled as a CONNECT query.
    """

    def __init__(self, options: AdapterOptions, driver: Driver | None = None,
                 profiler: Profiler | bool | Mapping | None = None) -> None:
        self.options = options
        self.driver = driver if driver is not None else get_driver(options.drivername)
        self._connection: Any = None
        self._fetch_mode = options.fetch_mode
        self._profiler = Profiler(enabled=options.profiler)
        if profiler is not None:
            self.set_profiler(profiler)
        self.in_transaction = False
        self.calls = 0
        self.time = 0.0

    def __repr__(self) -> str:
        return f'Adapter({self.driver.name!r}, database={self.options.database!r})'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    # connection

    def get_connection(self) -> Any:
        """Native connection, opened on first call.
        """
        if self._connection is None:
            with self._profiler.profile('connect', QueryType.CONNECT):
                self._connection = self.driver.connect(self.options)
            logger.debug(f'Connected adapter {self!r}')
        return self._connection

    def is_connected(self) -> bool:
        return self._connection is not None and not getattr(self._connection, 'closed', False)

    def close(self) -> None:
        """Close the native connection, rolling back an open transaction.
        """
        if self._connection is None:
            return
        try:
            if self.in_transaction:
                logger.warning('Closing adapter with an open transaction, rolling back')
                self.rollback()
        finally:
            self.driver.close_connection(self._connection)
            self._connection = None
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')

    def server_version(self) -> str | None:
        return self.driver.server_version(self.get_connection())

    def supports_parameters(self, style: str) -> bool:
        return self.driver.supports_parameters(style)

    # profiler

    def get_profiler(self) -> Profiler:
        return self._profiler

    def set_profiler(self, profiler: Profiler | bool | Mapping) -> Self:
        """Configure profiling.

        Accepts a bool (enable or disable the current profiler), a `Profiler`
        instance to use instead, or a mapping with ``enabled`` and/or
        ``instance`` keys.
        """
        enabled = None
        instance = None
        if isinstance(profiler, Profiler):
            instance = profiler
        elif isinstance(profiler, bool):
            enabled = profiler
        elif isinstance(profiler, Mapping):
            enabled = profiler.get('enabled')
            instance = profiler.get('instance')
            if instance is not None and not isinstance(instance, Profiler):
                raise ProfilerError(f'Profiler instance must be a Profiler, got {type(instance).__name__}')
        else:
            raise ProfilerError(f'Profiler argument must be a bool, mapping or Profiler, got {type(profiler).__name__}')

        if instance is not None:
            self._profiler = instance
        if enabled is not None:
            self._profiler.set_enabled(enabled)
        return self

    # fetch mode and case

    @property
    def fetch_mode(self) -> FetchMode:
        return self._fetch_mode

    def set_fetch_mode(self, mode: FetchMode | int | str) -> None:
        """Default mode for statements created after this call.
        """
        try:
            self._fetch_mode = FetchMode.coerce(mode)
        except ValueError:
            raise InvalidFetchMode(f'Invalid fetch mode {mode!r} specified') from None

    def fold_case(self, key: Any) -> str:
        """Apply the configured case folding to a column name.
        """
        return self.options.case_folding.fold(key)

    # quoting

    def quote(self, value: Any) -> str:
        """Render a value as an SQL literal for this driver.
        """
        return quote_value(value, self.driver.value_quote)

    def quote_into(self, text: str, value: Any, count: int | None = None) -> str:
        """Replace ``?`` in `text` with the quoted value.

        With `count`, only the first `count` occurrences are replaced.
        """
        quoted = self.quote(value)
        if count is None:
            return text.replace('?', quoted)
        return text.replace('?', quoted, count)

    def quote_identifier(self, identifier: str | Sequence[str], alias: str | None = None) -> str:
        """Quote a (possibly dotted) identifier, optionally with ``AS alias``.
        """
        quoted = quote_identifier(identifier, self.driver.identifier_quote)
        if alias is not None:
            quoted = f'{quoted} AS {quote_identifier([alias], self.driver.identifier_quote)}'
        return quoted

    def limit(self, sql: str, count: int, offset: int = 0) -> str:
        return self.driver.limit(sql, count, offset)

    def last_insert_id(self, table: str | None = None, primary_key: str | None = None) -> Any:
        return self.driver.last_insert_id(self.get_connection(), table, primary_key)

    # statements

    def prepare(self, sql: str) -> Statement:
        return Statement(self, sql)

    def query(self, sql: str, bind: Bind = None) -> Statement:
        """Prepare and execute, returning the statement for fetching.
        """
        stmt = self.prepare(sql)
        try:
            stmt.execute(bind)
        except Exception:
            stmt.close()
            raise
        return stmt

    def execute(self, sql: str, bind: Bind = None) -> int:
        """Execute and return the affected row count.
        """
        with self.query(sql, bind) as stmt:
            return stmt.row_count()

    def fetch_all(self, sql: str, bind: Bind = None,
                  fetch_mode: FetchMode | int | str | None = None) -> list[FetchedRow]:
        with self.query(sql, bind) as stmt:
            return stmt.fetch_all(fetch_mode)

    def fetch_row(self, sql: str, bind: Bind = None,
                  fetch_mode: FetchMode | int | str | None = None,
                  strict: bool = False) -> FetchedRow | None:
        """First row of the result, or None when empty.

        With `strict`, anything other than exactly one row raises
        ValidationError.
        """
        with self.query(sql, bind) as stmt:
            if not strict:
                return stmt.fetch(fetch_mode)
            rows = stmt.fetch_all(fetch_mode)
        if len(rows) != 1:
            raise ValidationError(f'Expected one row, got {len(rows)}')
        return rows[0]

    def fetch_col(self, sql: str, bind: Bind = None) -> list:
        """First column of every row.
        """
        with self.query(sql, bind) as stmt:
            return stmt.fetch_all(FetchMode.COLUMN)

    def fetch_assoc(self, sql: str, bind: Bind = None) -> dict[Any, dict]:
        """Rows as name-keyed dicts, indexed by the first column's value.

        Later rows overwrite earlier rows sharing a key.
        """
        with self.query(sql, bind) as stmt:
            rows = stmt.fetch_all(FetchMode.BOTH)
        return {row[0]: dict(as_mapping(row)) for row in rows}

    def fetch_pairs(self, sql: str, bind: Bind = None) -> dict:
        """First column as keys, second column as values.
        """
        with self.query(sql, bind) as stmt:
            rows = stmt.fetch_all(FetchMode.NUM)
        return {row[0]: row[1] for row in rows}

    def fetch_one(self, sql: str, bind: Bind = None, strict: bool = False) -> Any:
        """First column of the first row, or None when empty.

        With `strict`, anything other than exactly one row raises
        ValidationError.
        """
        values = self.fetch_col(sql, bind)
        if strict and len(values) != 1:
            raise ValidationError(f'Expected one row, got {len(values)}')
        return values[0] if values else None

    def fetch_frame(self, sql: str, bind: Bind = None, **kwargs: Any) -> Any:
        """Result through the configured data loader (a DataFrame by default).
        """
        with self.query(sql, bind) as stmt:
            return stmt.fetch_frame(**kwargs)

    # transactions

    def begin_transaction(self) -> Self:
        if self.in_transaction:
            raise AdapterError('Nested transactions are not supported')
        conn = self.get_connection()
        with self._profiler.profile('begin', QueryType.TRANSACTION):
            self.driver.begin(conn)
        self.in_transaction = True
        logger.debug(f'Started transaction for {self!r}')
        return self

    def commit(self) -> Self:
        if not self.in_transaction:
            raise AdapterError('No transaction in progress')
        try:
            with self._profiler.profile('commit', QueryType.TRANSACTION):
                self.driver.commit(self.get_connection())
        finally:
            self.in_transaction = False
        logger.debug(f'Committed transaction for {self!r}')
        return self

    def rollback(self) -> Self:
        if not self.in_transaction:
            raise AdapterError('No transaction in progress')
        try:
            with self._profiler.profile('rollback', QueryType.TRANSACTION):
                self.driver.rollback(self.get_connection())
        finally:
            self.in_transaction = False
        logger.debug(f'Rolled back transaction for {self!r}')
        return self

    def transaction(self) -> Transaction:
        """Context manager running the enclosed block in a transaction.
        """
        return Transaction(self)


@load_options(cls=AdapterOptions)
def connect(options: AdapterOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Adapter:
    """Connect to a database and return an Adapter.

    Args:
        options: Can be:
                - AdapterOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        Connected Adapter
    """
    if isinstance(options, AdapterOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=AdapterOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    adapter = Adapter(options)
    adapter.get_connection()
    return adapter
