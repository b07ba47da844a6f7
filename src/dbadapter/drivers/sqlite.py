"""
SQLite driver.

Uses the standard library `sqlite3` client through SQLAlchemy's pysqlite
dialect. Both placeholder styles are native to sqlite3 (qmark and named),
so SQL is passed through unchanged.
"""
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbadapter.drivers.base import DbapiConnection, DbapiDriver, ErrorInfo
from dbadapter.drivers.base import register_driver
from dbadapter.sql import TokenSequence, rewrite_placeholders

if TYPE_CHECKING:
    from dbadapter.options import AdapterOptions

logger = logging.getLogger(__name__)


@register_driver('sqlite')
class SQLiteDriver(DbapiDriver):
    """SQLite-specific driver operations.
    """

    native_errors = (sqlite3.Error,)

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def build_connection_url(self, options: 'AdapterOptions') -> sa.URL:
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'AdapterOptions') -> dict[str, Any]:
        connect_args: dict[str, Any] = {
            'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
        }
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    def configure_connection(self, dbapi_connection: sqlite3.Connection) -> None:
        dbapi_connection.isolation_level = None

    def native_sql(self, tokens: TokenSequence) -> str:
        return rewrite_placeholders(tokens, positional='?', named=':{name}')

    def native_error_info(self, exc: BaseException, sql: str | None) -> ErrorInfo:
        code = getattr(exc, 'sqlite_errorname', None)
        return ErrorInfo(code, str(exc))

    def begin(self, conn: DbapiConnection) -> None:
        with self.translate_errors('BEGIN'):
            conn.dbapi_connection.execute('BEGIN')

    def commit(self, conn: DbapiConnection) -> None:
        with self.translate_errors('COMMIT'):
            conn.dbapi_connection.commit()

    def rollback(self, conn: DbapiConnection) -> None:
        with self.translate_errors('ROLLBACK'):
            conn.dbapi_connection.rollback()

    def last_insert_id(self, conn: DbapiConnection, table: str | None = None,
                       primary_key: str | None = None) -> int:
        """Rowid of the last inserted row; table and key are ignored.
        """
        with self.translate_errors('SELECT last_insert_rowid()'):
            return conn.dbapi_connection.execute('SELECT last_insert_rowid()').fetchone()[0]

    def server_version(self, conn: DbapiConnection) -> str:
        return sqlite3.sqlite_version
