#!/usr/bin/env python3

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from os import environ
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from coordinates import TARGET_SRID, resolve, resolve_target
from errors import (
    AttributesUnavailable,
    IncidentLoadError,
    MissingSourceCRS,
    UnsupportedGeometryType,
)
from incident_mapping import map_feature
from incident_store import (
    TABLE_NAME,
    ReconciliationEngine,
    connect_db,
    count_incidents,
    create_schema,
    db_params_from_env,
    ensure_load_runs_table,
    record_load_run,
    schema_exists,
)
from shapefile_source import open_source

# Load environment variables from .env file
load_dotenv()


@dataclass(frozen=True)
class LoadSummary:
    total: int
    new_count: int
    updated_count: int


def validate_source(source):
    """Reject sources that are not point shapefiles with attributes."""
    if not source.is_point_type:
        raise UnsupportedGeometryType(
            f"Error processing shapefile: Shape not of Point type ({source.shape_type})"
        )
    if not source.attributes_available:
        raise AttributesUnavailable("Error processing shapefile: Attributes not available")


def progress_line(outcome, feature, record, srid):
    return (
        f"[{outcome.value}] [{record.object_id}] "
        f"SRID:{srid} {feature.geometry.wkt} => SRID:{TARGET_SRID} {record.location.wkt}"
    )


def transform_and_load_shapefile(
    conn, shapefile, srid, force_delete=True, opener=open_source, before_commit=None
):
    """Reproject, normalize and upsert every feature of ``shapefile``.

    All writes happen in the single transaction of ``conn``. It is committed
    once every feature has been stored and rolled back on the first error, so
    the incidents table is either fully updated or left untouched.

    With ``force_delete`` the table is emptied first; otherwise rows are
    upserted by object_id.

    ``before_commit(cursor, summary)`` runs inside the same transaction, just
    before the commit; an error there rolls the whole load back.
    """
    if srid is None:
        raise MissingSourceCRS("Error processing shapefile: SRID must be specified")
    source_crs = resolve(srid)
    target_crs = resolve_target()

    with opener(shapefile, srid) as source:
        validate_source(source)
        print(f"Shapefile contains {source.size} records.")

        cursor = conn.cursor()
        engine = ReconciliationEngine(cursor, clear_first=force_delete)
        try:
            if force_delete:
                print("Deleting ALL existing records")
            engine.prepare()

            print("Traversing shapefile features...")
            for feature in source:
                record = map_feature(feature, source_crs, target_crs)
                outcome = engine.reconcile(record)
                print(progress_line(outcome, feature, record, srid))

            summary = LoadSummary(engine.processed, engine.new_count, engine.updated_count)
            if before_commit is not None:
                before_commit(cursor, summary)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    print(f"TOTAL: {summary.total}  [N] => {summary.new_count}  [U] => {summary.updated_count}")
    return summary


def log_failed_load(db_params, source_file, srid, force_delete, started_at, error_message):
    """Persist failure metadata after the main transaction rolls back."""
    failure_conn = connect_db(db_params)
    try:
        failure_cursor = failure_conn.cursor()
        ensure_load_runs_table(failure_cursor)
        record_load_run(
            failure_cursor,
            source_file=source_file,
            srid=srid,
            force_delete=force_delete,
            status="failed",
            error_message=error_message,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        failure_conn.commit()
        failure_cursor.close()
    finally:
        failure_conn.close()


def build_parser():
    parser = argparse.ArgumentParser(description="Crime incident shapefile loader")
    parser.add_argument("shapefile", help="Path to the .shp file")
    parser.add_argument(
        "--srid",
        type=int,
        default=environ.get("DELITOS_SOURCE_SRID"),
        help="EPSG code of the shapefile coordinates (default: $DELITOS_SOURCE_SRID)",
    )
    parser.add_argument(
        "--keep-existing",
        action="store_true",
        help="Upsert by OBJECTID instead of deleting all rows before loading",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help=f"Create the {TABLE_NAME} table if it does not exist",
    )
    parser.add_argument(
        "--drop-schema",
        action="store_true",
        help=f"Drop and recreate the {TABLE_NAME} table before loading",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    force_delete = not args.keep_existing
    source_file = str(Path(args.shapefile).resolve())
    started_at = datetime.now(timezone.utc)
    db_params = db_params_from_env()

    conn = connect_db(db_params)
    try:
        cursor = conn.cursor()
        ensure_load_runs_table(cursor)
        if args.create_schema or args.drop_schema:
            if args.drop_schema:
                print(f"Recreating table {TABLE_NAME}...")
            elif not schema_exists(cursor):
                print(f"Creating table {TABLE_NAME}...")
            create_schema(cursor, drop_if_exists=args.drop_schema)
        conn.commit()
        cursor.close()

        def record_completed_run(cursor, summary):
            print(f"Table {TABLE_NAME} now holds {count_incidents(cursor)} rows.")
            record_load_run(
                cursor,
                source_file=source_file,
                srid=args.srid,
                force_delete=force_delete,
                status="completed",
                summary=summary,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )

        print(f"Loading {source_file}...")
        transform_and_load_shapefile(
            conn,
            args.shapefile,
            args.srid,
            force_delete=force_delete,
            before_commit=record_completed_run,
        )
        # Refresh table stats after bulk writes so spatial queries keep using the index.
        try:
            analyze_cursor = conn.cursor()
            analyze_cursor.execute(f"ANALYZE {TABLE_NAME};")
            conn.commit()
            analyze_cursor.close()
        except psycopg2.Error as analyze_error:
            print(f"ANALYZE failed (data load still committed): {analyze_error}")

        print("Load completed successfully.")
        return 0

    except (IncidentLoadError, psycopg2.Error) as e:
        print(f"An error occurred: {e}")
        conn.rollback()
        try:
            log_failed_load(db_params, source_file, args.srid, force_delete, started_at, str(e))
        except (IncidentLoadError, psycopg2.Error) as log_error:
            print(f"Failed to write load_runs failure entry: {log_error}")
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
