"""
PostgreSQL driver.

Uses psycopg 3 through SQLAlchemy's `postgresql+psycopg` dialect. psycopg
expects pyformat placeholders, so `?` becomes ``%s`` and ``:name`` becomes
``%(name)s``; literal ``%`` is doubled only when the statement carries
parameters. Syntax errors report ``diag.statement_position`` as the error
offset into the SQL sent to the server.
"""
import logging
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa
from dbadapter.drivers.base import DbapiConnection, DbapiDriver, DbapiStatement
from dbadapter.drivers.base import ErrorInfo, register_driver
from dbadapter.sql import TokenSequence, quote_identifier, rewrite_placeholders

if TYPE_CHECKING:
    from dbadapter.options import AdapterOptions

logger = logging.getLogger(__name__)


@register_driver('postgresql')
class PostgresDriver(DbapiDriver):
    """PostgreSQL-specific driver operations.
    """

    native_errors = (psycopg.Error,)
    supports_multiple_rowsets = True

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port', 'timeout']

    def build_connection_url(self, options: 'AdapterOptions') -> sa.URL:
        query = {'application_name': options.appname}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query,
        )

    def configure_connection(self, dbapi_connection: psycopg.Connection) -> None:
        if dbapi_connection.info.transaction_status != psycopg.pq.TransactionStatus.IDLE:
            dbapi_connection.rollback()
        dbapi_connection.autocommit = True

    def native_sql(self, tokens: TokenSequence) -> str:
        if not tokens.targets:
            return tokens.sql
        return rewrite_placeholders(tokens, positional='%s', named='%({name})s',
                                    escape_percent=True)

    def native_error_info(self, exc: BaseException, sql: str | None) -> ErrorInfo:
        diag = getattr(exc, 'diag', None)
        message = (diag.message_primary if diag is not None else None) or str(exc).strip()
        offset = None
        if diag is not None and diag.statement_position and sql is not None:
            offset = int(diag.statement_position) - 1
        return ErrorInfo(getattr(exc, 'sqlstate', None), message, offset,
                         sql if offset is not None else None)

    def begin(self, conn: DbapiConnection) -> None:
        """Leave autocommit; the transaction opens with the next statement.
        """
        with self.translate_errors('BEGIN'):
            conn.dbapi_connection.autocommit = False

    def commit(self, conn: DbapiConnection) -> None:
        with self.translate_errors('COMMIT'):
            conn.dbapi_connection.commit()
            conn.dbapi_connection.autocommit = True

    def rollback(self, conn: DbapiConnection) -> None:
        with self.translate_errors('ROLLBACK'):
            conn.dbapi_connection.rollback()
            conn.dbapi_connection.autocommit = True

    def last_insert_id(self, conn: DbapiConnection, table: str | None = None,
                       primary_key: str | None = None) -> Any:
        """Current value of the table's serial sequence, or `lastval()`.

        With a table name, the sequence is assumed to be named
        ``<table>_<primary_key>_seq`` (primary key defaults to ``id``).
        """
        if table:
            sequence = quote_identifier(f'{table}_{primary_key or "id"}_seq',
                                        self.identifier_quote)
            sql, params = 'SELECT currval(%s::regclass)', (sequence,)
        else:
            sql, params = 'SELECT lastval()', None
        with self.translate_errors(sql):
            return conn.dbapi_connection.execute(sql, params).fetchone()[0]

    def server_version(self, conn: DbapiConnection) -> str:
        version = conn.dbapi_connection.info.server_version
        major, minor = divmod(version, 10000)
        return f'{major}.{minor}'

    def next_rowset(self, native: DbapiStatement) -> bool:
        if native.cursor is None:
            return False
        with self.translate_errors(native.sql):
            return bool(native.cursor.nextset())
