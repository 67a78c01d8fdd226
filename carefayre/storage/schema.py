"""SQLite schema for marketplace storage.

Each table stores the full record as a JSON ``data`` payload next to a
handful of indexed columns used for lookups. This module owns:
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Indexed and unique columns per table
- Database initialization (init_db)
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Indexed lookup columns per table; values are copied from the record payload
TABLE_COLUMNS = {
    "care_requests": ("creator_id", "status"),
    "bids": ("care_request_id", "bidder_id", "status"),
    "jobs": ("care_request_id", "customer_id", "agency_id", "status"),
    "job_state_transitions": ("job_id",),
    "contracts": ("job_id",),
    "timesheets": ("job_id", "week_starting", "status"),
    "payments": ("job_id", "timesheet_id", "status"),
    "notifications": ("recipient_id", "is_read"),
    "agency_profiles": ("user_id",),
    "customer_profiles": ("user_id",),
    "app_settings": (),
}

# At most one row may carry a given non-null value in these columns
UNIQUE_COLUMNS = {
    "contracts": ("job_id",),
    "payments": ("timesheet_id",),
    "agency_profiles": ("user_id",),
    "customer_profiles": ("user_id",),
}

ALLOWED_TABLES = frozenset(TABLE_COLUMNS)


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If the table is not in the allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


def validate_column(table: str, column: str) -> str:
    if column != "id" and column not in TABLE_COLUMNS[validate_table_name(table)]:
        raise ValueError(f"Invalid column for {table}: {column}")
    return column


def _table_sql(table: str) -> str:
    columns = ["id TEXT PRIMARY KEY"]
    unique = UNIQUE_COLUMNS.get(table, ())
    for column in TABLE_COLUMNS[table]:
        columns.append(f"{column} TEXT UNIQUE" if column in unique else f"{column} TEXT")
    columns.append("data TEXT NOT NULL")
    return f"CREATE TABLE IF NOT EXISTS {table} (\n    " + ",\n    ".join(columns) + "\n);"


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they do not exist."""
    conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)")
    for table in sorted(ALLOWED_TABLES):
        conn.execute(_table_sql(table))
        for column in TABLE_COLUMNS[table]:
            if column in UNIQUE_COLUMNS.get(table, ()):
                continue
            conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_{column} ON {table}({column})")
    conn.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    logger.debug(f"Schema initialized (version {SCHEMA_VERSION})")
