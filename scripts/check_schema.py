#!/usr/bin/env python3
import os
import sys


WAITLIST_TABLE = os.getenv("WAITLIST_TABLE", "waitlist_entries").strip() or "waitlist_entries"

REQUIRED_COLUMNS = {
    "id",
    "email",
    "qualifier",
    "use_case",
    "source_url",
    "landing_path",
    "ip_address",
    "user_agent",
    "referrer",
    "accept_language",
    "origin",
    "host",
    "screen_size",
    "viewport_size",
    "platform",
    "timezone",
    "timezone_offset_minutes",
    "color_scheme",
    "reduced_motion",
    "cookie_enabled",
    "do_not_track",
    "device_memory_gb",
    "hardware_concurrency",
    "max_touch_points",
    "cf_country",
    "cf_region",
    "cf_region_code",
    "cf_city",
    "cf_postal_code",
    "cf_continent",
    "cf_timezone",
    "cf_colo",
    "cf_asn",
    "cf_as_organization",
    "cf_latitude",
    "cf_longitude",
    "cf_metro_code",
    "cf_bot_score",
    "cf_tls_version",
    "cf_http_protocol",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "metadata_json",
    "created_at",
    "updated_at",
}

REQUIRED_INDEXES = {
    "idx_waitlist_entries_created",
    "idx_waitlist_entries_ip_created",
    "idx_waitlist_entries_qualifier_created",
}


def _fail(message: str) -> None:
    print(f"[schema-check] FAIL: {message}")
    raise SystemExit(1)


def main() -> None:
    database_url = os.getenv("SUPABASE_DB_URL", "").strip()
    if not database_url:
        _fail("SUPABASE_DB_URL is required (Postgres connection URL).")

    try:
        import psycopg
    except Exception as exc:  # pragma: no cover - runtime dependency check
        _fail(f"psycopg is required: {exc}")

    missing: list[str] = []

    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT column_name, is_nullable
                FROM information_schema.columns
                WHERE table_schema = 'public' AND table_name = %s
                """,
                (WAITLIST_TABLE,),
            )
            columns = {row[0]: row[1] for row in cur.fetchall()}
            if not columns:
                _fail(f"table:{WAITLIST_TABLE}")

            for column in REQUIRED_COLUMNS:
                if column not in columns:
                    missing.append(f"column:{WAITLIST_TABLE}.{column}")

            cur.execute(
                """
                SELECT indexname, indexdef
                FROM pg_indexes
                WHERE schemaname = 'public' AND tablename = %s
                """,
                (WAITLIST_TABLE,),
            )
            indexes = {row[0]: row[1] for row in cur.fetchall()}
            for index_name in REQUIRED_INDEXES:
                if index_name not in indexes:
                    missing.append(f"index:{index_name}")
            if not any("UNIQUE" in definition and "(email)" in definition for definition in indexes.values()):
                missing.append(f"unique:{WAITLIST_TABLE}.email")

    if missing:
        _fail(", ".join(sorted(missing)))

    if "ip_hash" not in columns:
        ip_hash_state = "absent"
    elif columns["ip_hash"] == "NO":
        ip_hash_state = "present, NOT NULL"
    else:
        ip_hash_state = "present, nullable"
    print(f"[schema-check] OK: {WAITLIST_TABLE} columns, indexes and email uniqueness are present.")
    print(f"[schema-check] ip_hash column: {ip_hash_state}")


if __name__ == "__main__":
    sys.exit(main())
