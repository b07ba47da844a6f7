"""
Driver capability interface.

A driver is the per-engine collaborator the statement core calls into:
connect, prepare a native statement, bind, execute, fetch native rows and
report native errors. The core never touches a native client directly.

Drivers register themselves by name:

    @register_driver('sqlite')
    class SQLiteDriver(DbapiDriver):
        ...

`DbapiDriver` implements the DB-API 2.0 flow shared by the bundled drivers.
Connections are opened through SQLAlchemy engines (see `dbadapter.engine`)
and used through the raw driver connection.
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbadapter.binding import native_parameters
from dbadapter.engine import get_engine_for_options
from dbadapter.exceptions import AdapterError, DriverError, NotSupportedError
from dbadapter.sql import ANSI_IDENTIFIER_QUOTE, ANSI_VALUE_QUOTE, NAMED
from dbadapter.sql import POSITIONAL, QuoteStyle, TokenSequence

if TYPE_CHECKING:
    from dbadapter.options import AdapterOptions

logger = logging.getLogger(__name__)

# Registry of driver name -> driver class
# Defined here to avoid circular imports (concrete drivers import from base)
_DRIVER_REGISTRY: dict[str, type['Driver']] = {}


def register_driver(name: str):
    """Decorator to register a driver class under a driver name.

    Usage:
        @register_driver('postgresql')
        class PostgresDriver(DbapiDriver):
            ...
    """
    def decorator(cls: type['Driver']) -> type['Driver']:
        cls.name = name
        _DRIVER_REGISTRY[name] = cls
        return cls
    return decorator


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Native error details: code, message and, for syntax errors, the
    0-based offset into `sqltext` where the server stopped.
    """
    code: Any
    message: str
    offset: int | None = None
    sqltext: str | None = None


class Driver(ABC):
    """Base class for database drivers.
    """

    name: str = ''
    value_quote: QuoteStyle = ANSI_VALUE_QUOTE
    identifier_quote: QuoteStyle = ANSI_IDENTIFIER_QUOTE
    parameter_styles: frozenset[str] = frozenset({POSITIONAL, NAMED})
    native_errors: tuple[type[BaseException], ...] = ()
    statement_attributes: frozenset[str] = frozenset()
    supports_multiple_rowsets: bool = False

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of option field names that must be set for this driver.
        """

    @classmethod
    def validate_options(cls, options: 'AdapterOptions') -> None:
        """Raise ValueError if any required field is None or 0.
        """
        for name in cls.get_required_options():
            if not getattr(options, name):
                raise ValueError(f'field {name} cannot be None or 0')

    def supports_parameters(self, style: str) -> bool:
        """Whether SQL may use `style` ('positional' or 'named') placeholders.
        """
        return style in self.parameter_styles

    @contextmanager
    def translate_errors(self, sql: str | None = None) -> Iterator[None]:
        """Re-raise native client errors as DriverError with the native
        exception chained.
        """
        try:
            yield
        except self.native_errors as exc:
            raise DriverError.from_info(self.native_error_info(exc, sql)) from exc

    def native_error_info(self, exc: BaseException, sql: str | None) -> ErrorInfo:
        return ErrorInfo(None, str(exc).strip())

    # connection level

    @abstractmethod
    def connect(self, options: 'AdapterOptions') -> Any:
        """Open a native connection.
        """

    @abstractmethod
    def close_connection(self, conn: Any) -> None:
        """Release a native connection.
        """

    @abstractmethod
    def begin(self, conn: Any) -> None:
        """Start an explicit transaction.
        """

    @abstractmethod
    def commit(self, conn: Any) -> None:
        """Commit the explicit transaction and resume autocommit.
        """

    @abstractmethod
    def rollback(self, conn: Any) -> None:
        """Roll back the explicit transaction and resume autocommit.
        """

    @abstractmethod
    def last_insert_id(self, conn: Any, table: str | None = None,
                       primary_key: str | None = None) -> Any:
        """Id generated by the most recent insert on this connection.
        """

    @abstractmethod
    def server_version(self, conn: Any) -> str | None:
        """Server version string, or None when it cannot be determined.
        """

    def limit(self, sql: str, count: int, offset: int = 0) -> str:
        """Append a row-limiting clause to a SELECT statement.
        """
        count, offset = int(count), int(offset)
        if count <= 0:
            raise AdapterError(f"LIMIT argument count={count} is not valid")
        if offset < 0:
            raise AdapterError(f"LIMIT argument offset={offset} is not valid")
        sql = f'{sql} LIMIT {count}'
        if offset > 0:
            sql = f'{sql} OFFSET {offset}'
        return sql

    # statement level

    @abstractmethod
    def prepare_native(self, conn: Any, tokens: TokenSequence) -> Any:
        """Allocate a native statement for parsed SQL.
        """

    @abstractmethod
    def bind_native(self, native: Any, target: int | str, value: Any,
                    type: Any = None, length: int | None = None) -> None:
        """Bind one value for the next execution.
        """

    @abstractmethod
    def execute_native(self, native: Any) -> None:
        """Execute with the values bound since the previous execution.
        """

    @abstractmethod
    def fetch_native_row(self, native: Any) -> tuple | None:
        """Next row as a tuple, or None at end of data.
        """

    @abstractmethod
    def column_metadata(self, native: Any) -> list[str]:
        """Result column names in order; empty for result-less statements.
        """

    @abstractmethod
    def affected_row_count(self, native: Any) -> int:
        """Rows affected by the last execution.
        """

    @abstractmethod
    def close_cursor(self, native: Any) -> None:
        """Release result resources, keeping the native statement usable.
        """

    @abstractmethod
    def close_native(self, native: Any) -> None:
        """Release the native statement.
        """

    def next_rowset(self, native: Any) -> bool:
        raise NotSupportedError(f'{type(self).__name__} does not support multiple rowsets')

    def get_attribute(self, native: Any, name: str) -> Any:
        raise NotSupportedError(f'Statement attribute {name!r} is not supported')

    def set_attribute(self, native: Any, name: str, value: Any) -> None:
        raise NotSupportedError(f'Statement attribute {name!r} is not supported')


@dataclass
class DbapiConnection:
    """SQLAlchemy connection and the raw DB-API connection beneath it.
    """
    sa_connection: sa.engine.Connection
    dbapi_connection: Any

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed


@dataclass
class DbapiStatement:
    """Native statement state for DB-API drivers.

    The cursor is opened on first execution and released by `close_cursor`.
    """
    connection: DbapiConnection
    sql: str
    tokens: TokenSequence
    params: dict[int | str, Any] = field(default_factory=dict)
    attributes: dict[str, Any] = field(default_factory=dict)
    cursor: Any = None
    closed: bool = False


class DbapiDriver(Driver):
    """Shared implementation for DB-API 2.0 clients.

    Connections run in autocommit mode; `begin` switches autocommit off until
    the matching `commit` or `rollback`.
    """

    statement_attributes = frozenset({'arraysize'})

    @abstractmethod
    def build_connection_url(self, options: 'AdapterOptions') -> sa.URL:
        """SQLAlchemy URL for these options.
        """

    def get_engine_kwargs(self, options: 'AdapterOptions') -> dict[str, Any]:
        """Extra create_engine kwargs for this driver.
        """
        return {}

    def configure_connection(self, dbapi_connection: Any) -> None:
        """Put a fresh raw connection into autocommit mode.
        """

    @abstractmethod
    def native_sql(self, tokens: TokenSequence) -> str:
        """Render parsed SQL in the client's paramstyle.
        """

    def connect(self, options: 'AdapterOptions') -> DbapiConnection:
        engine = get_engine_for_options(options, self)
        try:
            sa_connection = engine.connect()
        except sa.exc.DBAPIError as exc:
            raise DriverError.from_info(self.native_error_info(exc.orig, None)) from exc
        dbapi_connection = sa_connection.connection.driver_connection
        with self.translate_errors():
            self.configure_connection(dbapi_connection)
        logger.debug(f'Opened {self.name} connection to {options.database}')
        return DbapiConnection(sa_connection, dbapi_connection)

    def close_connection(self, conn: DbapiConnection) -> None:
        if not conn.closed:
            conn.sa_connection.close()

    def prepare_native(self, conn: DbapiConnection, tokens: TokenSequence) -> DbapiStatement:
        return DbapiStatement(conn, self.native_sql(tokens), tokens)

    def bind_native(self, native: DbapiStatement, target: int | str, value: Any,
                    type: Any = None, length: int | None = None) -> None:
        native.params[target] = value

    def execute_native(self, native: DbapiStatement) -> None:
        values, native.params = native.params, {}
        params = native_parameters(native.tokens, values)
        if native.cursor is None:
            with self.translate_errors(native.sql):
                native.cursor = native.connection.dbapi_connection.cursor()
            if 'arraysize' in native.attributes:
                native.cursor.arraysize = native.attributes['arraysize']
        with self.translate_errors(native.sql):
            if params is None:
                native.cursor.execute(native.sql)
            else:
                native.cursor.execute(native.sql, params)

    def fetch_native_row(self, native: DbapiStatement) -> tuple | None:
        if native.cursor is None or native.cursor.description is None:
            return None
        with self.translate_errors(native.sql):
            row = native.cursor.fetchone()
        return None if row is None else tuple(row)

    def column_metadata(self, native: DbapiStatement) -> list[str]:
        if native.cursor is None or native.cursor.description is None:
            return []
        return [desc[0] for desc in native.cursor.description]

    def affected_row_count(self, native: DbapiStatement) -> int:
        if native.cursor is None:
            return 0
        return native.cursor.rowcount

    def close_cursor(self, native: DbapiStatement) -> None:
        if native.cursor is not None:
            with self.translate_errors(native.sql):
                native.cursor.close()
            native.cursor = None

    def close_native(self, native: DbapiStatement) -> None:
        self.close_cursor(native)
        native.params = {}
        native.closed = True

    def get_attribute(self, native: DbapiStatement, name: str) -> Any:
        if name not in self.statement_attributes:
            return super().get_attribute(native, name)
        if native.cursor is not None:
            return getattr(native.cursor, name)
        return native.attributes.get(name)

    def set_attribute(self, native: DbapiStatement, name: str, value: Any) -> None:
        if name not in self.statement_attributes:
            super().set_attribute(native, name, value)
        native.attributes[name] = value
        if native.cursor is not None:
            setattr(native.cursor, name, value)
