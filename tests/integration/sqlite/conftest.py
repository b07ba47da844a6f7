"""
Fixtures for SQLite-specific integration tests.
"""
import dbadapter as db
import pytest


@pytest.fixture
def sqlite_file_db(tmp_path):
    """File-based SQLite database for tests that need a second connection."""
    path = str(tmp_path / 'test.db')

    conn = db.connect({
        'drivername': 'sqlite',
        'database': path
    })

    create_table = """
    CREATE TABLE test_table (
        id INTEGER PRIMARY KEY,
        name TEXT UNIQUE,
        value INTEGER
    )
    """
    db.execute(conn, create_table)

    insert_data = """
    INSERT INTO test_table (name, value) VALUES
    ('Alice', 10),
    ('Bob', 20),
    ('Charlie', 30)
    """
    db.execute(conn, insert_data)

    yield conn, path

    conn.close()
