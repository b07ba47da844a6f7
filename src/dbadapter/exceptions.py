"""
Exception classes for the adapter, statement and profiler layers.

Native driver exceptions (sqlite3, psycopg) are never raised to callers
directly. Drivers wrap them in `DriverError` with the native exception
chained as ``__cause__``.
"""
from typing import Any


class DatabaseError(Exception):
    """Base class for all dbadapter errors.
    """

    def has_chained_exception(self) -> bool:
        """Check if a more specific exception is nested inside this one.
        """
        return self.chained_exception is not None

    @property
    def chained_exception(self) -> BaseException | None:
        return self.__cause__


class AdapterError(DatabaseError):
    """Invalid adapter configuration or usage.
    """


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class StatementError(DatabaseError):
    """Base class for statement lifecycle errors.
    """


class ParseError(StatementError):
    """Malformed placeholder usage or a placeholder style the driver does not support.
    """


class InvalidBindTarget(StatementError):
    """Bind call references a position or name absent from the statement.
    """


class InvalidFetchMode(StatementError):
    """Unknown fetch mode passed to set_fetch_mode() or fetch().
    """


class StatementClosed(StatementError):
    """Operation attempted on a closed statement.
    """


class NotSupportedError(StatementError, NotImplementedError):
    """Optional statement feature the active driver does not implement.
    """


class ProfilerError(DatabaseError):
    """Error operating on a query profile handle.
    """


class UnknownHandle(ProfilerError, KeyError):
    """Profile handle was never allocated or has been evicted.
    """

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ''


class AlreadyEnded(ProfilerError):
    """Profile has already been ended.
    """


class DriverError(DatabaseError):
    """Failure surfaced by the native database client.

    Carries the native error code and message. Syntax errors that report an
    offset also carry the statement text, rendered with a ``*`` marker at
    the failing position.
    """

    def __init__(self, message: str, code: Any = None, offset: int | None = None,
                 sqltext: str | None = None) -> None:
        self.code = code
        self.native_message = message
        self.offset = offset
        self.sqltext = sqltext
        super().__init__(self._render())

    def _render(self) -> str:
        text = f'{self.code} {self.native_message}' if self.code else str(self.native_message)
        if self.offset is not None and self.sqltext is not None:
            text = f'{text} {self.sqltext[:self.offset]}*{self.sqltext[self.offset:]}'
        return text

    @classmethod
    def from_info(cls, info: 'Any') -> 'DriverError':
        """Build from a driver `ErrorInfo`.
        """
        return cls(info.message, code=info.code, offset=info.offset, sqltext=info.sqltext)


__all__ = [
    'DatabaseError',
    'AdapterError',
    'ValidationError',
    'StatementError',
    'ParseError',
    'InvalidBindTarget',
    'InvalidFetchMode',
    'StatementClosed',
    'NotSupportedError',
    'ProfilerError',
    'UnknownHandle',
    'AlreadyEnded',
    'DriverError',
]
