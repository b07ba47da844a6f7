"""
Transaction context manager.
"""
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dbadapter.adapter import Adapter, Bind
    from dbadapter.row import FetchedRow

logger = logging.getLogger(__name__)


class Transaction:
    """Context manager for running multiple commands in a transaction.

    Begins on enter, commits on a clean exit and rolls back when the block
    raises; the exception is re-raised. Nested transactions on the same
    adapter are not supported.

    Examples
        with Transaction(adapter) as tx:
            tx.execute('delete from ...', args)
            tx.execute('update from ...', args)
    """

    def __init__(self, adapter: 'Adapter') -> None:
        self.adapter = adapter

    def __enter__(self) -> 'Transaction':
        self.adapter.begin_transaction()
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        if exc_type is not None:
            logger.warning('Rolling back the current transaction')
            self.adapter.rollback()
        else:
            self.adapter.commit()

    def execute(self, sql: str, bind: 'Bind' = None) -> int:
        """Execute SQL within transaction context"""
        return self.adapter.execute(sql, bind)

    def fetch_all(self, sql: str, bind: 'Bind' = None, fetch_mode: Any = None) -> list['FetchedRow']:
        return self.adapter.fetch_all(sql, bind, fetch_mode)

    def fetch_one(self, sql: str, bind: 'Bind' = None) -> Any:
        return self.adapter.fetch_one(sql, bind)
