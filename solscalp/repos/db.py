"""Database initialization and connection management.

Runs migrations on first boot, provides the connection factory.  The SQL
files ship inside the package (``solscalp/repos/migrations``).
"""

import pathlib
import sqlite3

from solscalp.errors import PersistenceError


_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent / "migrations"


def _read_migration(name: str) -> str:
    try:
        return (_MIGRATION_DIR / name).read_text(encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Migration {name} not available: {exc}") from exc


def init_db(db_path: str) -> None:
    """Initialize the database by running all migration scripts.

    Runs the initial schema if the tables don't exist, then applies any
    incremental migrations that haven't been applied yet.  Creates the
    parent directory of *db_path* when needed.

    Args:
        db_path: Path to the SQLite database file.

    Raises:
        PersistenceError: the database or a migration file is unavailable.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(db_path)
        try:
            cur = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='trading_plans'"
            )
            if cur.fetchone() is None:
                conn.executescript(_read_migration("001_initial_schema.sql"))

            _apply_migration_002(conn)
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise PersistenceError(f"Could not initialize database {db_path}: {exc}") from exc


def _apply_migration_002(conn: sqlite3.Connection) -> None:
    """Add the breakeven-stop and partial-profit columns if missing."""
    columns = [
        row[1]
        for row in conn.execute("PRAGMA table_info(trading_plans)").fetchall()
    ]
    if "breakeven_trigger_percent" not in columns:
        conn.executescript(_read_migration("002_add_breakeven_and_partial_profit.sql"))


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with row-factory enabled.

    Callers are responsible for closing the connection.
    """
    try:
        conn = sqlite3.connect(db_path)
    except sqlite3.Error as exc:
        raise PersistenceError(f"Could not open database {db_path}: {exc}") from exc
    conn.row_factory = sqlite3.Row
    return conn
