import dbadapter as db
import pytest
from dbadapter import QueryType

pytestmark = pytest.mark.postgres


def test_transaction_commit(pg_conn):
    with db.transaction(pg_conn) as tx:
        tx.execute('INSERT INTO test_table (name, value) VALUES (?, ?)', ['Hannah', 90])
        tx.execute('UPDATE test_table SET value = ? WHERE name = ?', [25, 'Bob'])

    assert db.fetch_one(pg_conn, "SELECT value FROM test_table WHERE name = 'Bob'") == 25
    assert db.fetch_one(pg_conn, "SELECT value FROM test_table WHERE name = 'Hannah'") == 90


def test_transaction_rollback(pg_conn):
    with pytest.raises(db.DriverError), db.transaction(pg_conn) as tx:
        tx.execute('UPDATE test_table SET value = ? WHERE name = ?', [999, 'Bob'])
        tx.execute('INSERT INTO test_table (name, value) VALUES (?, ?)', ['Alice', 100])

    assert not pg_conn.in_transaction
    assert db.fetch_one(pg_conn, "SELECT value FROM test_table WHERE name = 'Bob'") == 20


def test_uncommitted_changes_isolated(pg_conn, pg_second_conn):
    other = pg_second_conn
    with db.transaction(pg_conn) as tx:
        tx.execute("UPDATE test_table SET value = 11 WHERE name = 'Alice'")
        assert db.fetch_one(other, "SELECT value FROM test_table WHERE name = 'Alice'") == 10
    assert db.fetch_one(other, "SELECT value FROM test_table WHERE name = 'Alice'") == 11


def test_autocommit_outside_transaction(pg_conn, pg_second_conn):
    db.insert(pg_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', ['Ian', 95])
    assert db.fetch_one(pg_second_conn, "SELECT value FROM test_table WHERE name = 'Ian'") == 95


def test_close_rolls_back_open_transaction(pg_conn, pg_second_conn):
    pg_second_conn.begin_transaction()
    db.execute(pg_second_conn, 'DELETE FROM test_table')
    pg_second_conn.close()
    assert not pg_second_conn.in_transaction
    assert db.fetch_one(pg_conn, 'SELECT COUNT(*) FROM test_table') == 6


def test_transactions_profiled(pg_conn):
    pg_conn.set_profiler(True)
    with db.transaction(pg_conn) as tx:
        tx.execute("UPDATE test_table SET value = 1 WHERE name = 'Fiona'")
    profiler = pg_conn.get_profiler()
    assert [p.query for p in profiler.get_query_profiles(QueryType.TRANSACTION).values()] == ['begin', 'commit']
    assert profiler.get_total_num_queries(QueryType.UPDATE) == 1
