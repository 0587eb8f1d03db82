import re
import sqlite3
from pathlib import Path

IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def get_conn(db_path: str):
    # Owner rows must pre-exist, so a missing database file is an error rather than a new empty file.
    conn = sqlite3.connect(f"{Path(db_path).resolve().as_uri()}?mode=rw", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def check_identifier(name: str) -> str:
    if not IDENTIFIER_RE.fullmatch(name or ""):
        raise ValueError(f"invalid_sql_identifier: {name!r}")
    return name


def describe_owner_table(db_path: str, table: str, url_column: str, id_column: str) -> dict:
    """Probe the owner table without touching any rows."""
    out = {
        "database_exists": Path(db_path).is_file(),
        "table_exists": False,
        "url_column_exists": False,
        "id_column_exists": False,
        "row_count": None,
    }
    if not out["database_exists"]:
        return out

    check_identifier(table)
    conn = get_conn(db_path)
    try:
        columns = [row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]
        out["table_exists"] = bool(columns)
        out["url_column_exists"] = url_column in columns
        out["id_column_exists"] = id_column in columns
        if columns:
            out["row_count"] = conn.execute(f"SELECT COUNT(1) FROM {table}").fetchone()[0]
    finally:
        conn.close()
    return out
