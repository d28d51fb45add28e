from enum import Enum
from os import environ

import psycopg2

from coordinates import TARGET_SRID
from errors import PersistenceFailure

TABLE_NAME = "crime_incidents"


def db_params_from_env(env=None):
    """Collect connection parameters from the environment."""
    env = environ if env is None else env
    return {
        "database": env.get("DELITOS_DB", "delitos"),
        "user": env.get("DELITOS_DB_USER", "postgres"),
        "password": env.get("DELITOS_DB_PW"),
        "host": env.get("DELITOS_DB_HOST", "localhost"),
        "port": env.get("DELITOS_DB_PORT", "5432"),
    }


def connect_db(db_params):
    """Create and return a database connection."""
    return psycopg2.connect(**db_params)


def _execute(cursor, action, query, params=None):
    try:
        cursor.execute(query, params)
    except psycopg2.Error as error:
        raise PersistenceFailure(f"Failed to {action}: {error}") from error


def schema_exists(cursor):
    """Return True when the incidents table is present."""
    _execute(cursor, "inspect schema", f"SELECT to_regclass('public.{TABLE_NAME}');")
    return cursor.fetchone()[0] is not None


def drop_schema(cursor):
    """Drop the incidents table if it exists."""
    _execute(cursor, "drop schema", f"DROP TABLE IF EXISTS {TABLE_NAME};")


def create_schema(cursor, drop_if_exists=False):
    """Create the incidents table with its unique key and spatial index."""
    if drop_if_exists:
        drop_schema(cursor)
    _execute(cursor, "create schema", f"""
    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
        object_id INTEGER PRIMARY KEY,
        category_code INTEGER NOT NULL,
        category_label TEXT NOT NULL,
        occurred_at TIMESTAMP NOT NULL,
        occurred_date DATE NOT NULL,
        occurred_time TIME NOT NULL,
        occurred_year INTEGER NOT NULL,
        occurred_month INTEGER NOT NULL,
        occurred_day INTEGER NOT NULL,
        location GEOGRAPHY(Point, {TARGET_SRID}) NOT NULL
    );
    """)
    _execute(cursor, "create spatial index", f"""
    CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_location
    ON {TABLE_NAME} USING GIST (location);
    """)


def delete_all_incidents(cursor):
    """Delete every stored incident before a full reload."""
    _execute(cursor, "clear incidents", f"DELETE FROM {TABLE_NAME};")


def count_incidents(cursor):
    """Return total rows currently stored."""
    _execute(cursor, "count incidents", f"SELECT COUNT(*) FROM {TABLE_NAME};")
    return cursor.fetchone()[0]


UPSERT_QUERY = f"""
INSERT INTO {TABLE_NAME} (
    object_id, category_code, category_label, occurred_at, occurred_date,
    occurred_time, occurred_year, occurred_month, occurred_day, location
) VALUES (
    %s, %s, %s, %s, %s, %s, %s, %s, %s, ST_GeogFromText(%s)
)
ON CONFLICT (object_id) DO UPDATE SET
    category_code = EXCLUDED.category_code,
    category_label = EXCLUDED.category_label,
    occurred_at = EXCLUDED.occurred_at,
    occurred_date = EXCLUDED.occurred_date,
    occurred_time = EXCLUDED.occurred_time,
    occurred_year = EXCLUDED.occurred_year,
    occurred_month = EXCLUDED.occurred_month,
    occurred_day = EXCLUDED.occurred_day,
    location = EXCLUDED.location
RETURNING (xmax = 0) AS inserted;
"""


def incident_row_tuple(record):
    """Build the parameter tuple for one incident upsert."""
    return (
        record.object_id,
        record.category_code,
        record.category_label,
        record.occurred_at,
        record.occurred_date,
        record.occurred_time,
        record.occurred_year,
        record.occurred_month,
        record.occurred_day,
        f"SRID={TARGET_SRID};{record.location.wkt}",
    )


def upsert_incident(cursor, record):
    """Insert or overwrite one incident; return True when the row is new."""
    _execute(cursor, f"save incident {record.object_id}", UPSERT_QUERY, incident_row_tuple(record))
    return bool(cursor.fetchone()[0])


class Outcome(Enum):
    NEW = "N"
    UPDATED = "U"


class ReconciliationEngine:
    """Decides NEW vs UPDATED for each record and keeps the run's counts."""

    def __init__(self, cursor, clear_first):
        self.cursor = cursor
        self.clear_first = clear_first
        self.new_count = 0
        self.updated_count = 0

    @property
    def processed(self):
        return self.new_count + self.updated_count

    def prepare(self):
        if self.clear_first:
            delete_all_incidents(self.cursor)

    def reconcile(self, record):
        if upsert_incident(self.cursor, record):
            self.new_count += 1
            return Outcome.NEW
        self.updated_count += 1
        return Outcome.UPDATED


def ensure_load_runs_table(cursor):
    """Create the load audit table if it does not already exist."""
    _execute(cursor, "inspect load_runs", "SELECT to_regclass('public.load_runs');")
    if cursor.fetchone()[0] is not None:
        return
    _execute(cursor, "create load_runs", """
    CREATE TABLE IF NOT EXISTS load_runs (
        id BIGSERIAL PRIMARY KEY,
        source_file TEXT NOT NULL,
        srid INTEGER,
        force_delete BOOLEAN NOT NULL DEFAULT TRUE,
        total_count INTEGER,
        new_count INTEGER,
        updated_count INTEGER,
        status TEXT NOT NULL,
        error_message TEXT,
        started_at TIMESTAMPTZ NOT NULL,
        finished_at TIMESTAMPTZ NOT NULL
    );
    """)


def record_load_run(
    cursor,
    *,
    source_file,
    srid,
    force_delete,
    status,
    started_at,
    finished_at,
    summary=None,
    error_message=None,
):
    """Insert one load audit row."""
    counts = (None, None, None) if summary is None else (
        summary.total,
        summary.new_count,
        summary.updated_count,
    )
    _execute(
        cursor,
        "record load run",
        """
        INSERT INTO load_runs (
            source_file, srid, force_delete, total_count, new_count, updated_count,
            status, error_message, started_at, finished_at
        ) VALUES (
            %s, %s, %s, %s, %s, %s, %s, %s, %s, %s
        );
        """,
        (
            source_file,
            srid,
            force_delete,
            *counts,
            status,
            error_message,
            started_at,
            finished_at,
        ),
    )
