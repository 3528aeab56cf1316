"""Database helpers for the worker."""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import psycopg2
from psycopg2 import extras, pool

from dermclinics.core.config import get_settings
from dermclinics.etl.open_now import refresh_open_now
from dermclinics.etl.transform import with_display_defaults
from dermclinics.models import Clinic

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None

_JSON_COLUMNS = ("accessibility_options", "parking_options", "payment_options", "photos", "opening_hours")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS clinics (
    place_id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    formatted_address TEXT,
    city TEXT,
    state_code TEXT,
    postal_code TEXT,
    lat DOUBLE PRECISION,
    lng DOUBLE PRECISION,
    primary_type TEXT,
    types TEXT[],
    rating REAL,
    user_rating_count INTEGER,
    phone TEXT,
    international_phone_number TEXT,
    website TEXT,
    google_maps_uri TEXT,
    business_status TEXT,
    accessibility_options JSONB,
    parking_options JSONB,
    payment_options JSONB,
    price_level SMALLINT,
    photos JSONB,
    opening_hours JSONB,
    open_now BOOLEAN NOT NULL DEFAULT FALSE,
    last_fetched_at DATE NOT NULL,
    rejected_at DATE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS clinics_state_city_idx ON clinics (state_code, city);
ALTER TABLE clinics ADD COLUMN IF NOT EXISTS rejected_at DATE;
CREATE INDEX IF NOT EXISTS clinics_last_fetched_idx ON clinics (last_fetched_at);
"""

# Incoming NULLs never overwrite stored values; freshness fields always do.
_UPSERT_CLINIC = """
INSERT INTO clinics (
    place_id,
    display_name,
    formatted_address,
    city,
    state_code,
    postal_code,
    lat,
    lng,
    primary_type,
    types,
    rating,
    user_rating_count,
    phone,
    international_phone_number,
    website,
    google_maps_uri,
    business_status,
    accessibility_options,
    parking_options,
    payment_options,
    price_level,
    photos,
    opening_hours,
    open_now,
    last_fetched_at,
    updated_at
) VALUES (
    %(place_id)s,
    %(display_name)s,
    %(formatted_address)s,
    %(city)s,
    %(state_code)s,
    %(postal_code)s,
    %(lat)s,
    %(lng)s,
    %(primary_type)s,
    %(types)s,
    %(rating)s,
    %(user_rating_count)s,
    %(phone)s,
    %(international_phone_number)s,
    %(website)s,
    %(google_maps_uri)s,
    %(business_status)s,
    %(accessibility_options)s,
    %(parking_options)s,
    %(payment_options)s,
    %(price_level)s,
    %(photos)s,
    %(opening_hours)s,
    %(open_now)s,
    %(last_fetched_at)s,
    NOW()
)
ON CONFLICT (place_id) DO UPDATE SET
    display_name = COALESCE(NULLIF(EXCLUDED.display_name, ''), clinics.display_name),
    formatted_address = COALESCE(EXCLUDED.formatted_address, clinics.formatted_address),
    city = COALESCE(EXCLUDED.city, clinics.city),
    state_code = COALESCE(EXCLUDED.state_code, clinics.state_code),
    postal_code = COALESCE(EXCLUDED.postal_code, clinics.postal_code),
    lat = COALESCE(EXCLUDED.lat, clinics.lat),
    lng = COALESCE(EXCLUDED.lng, clinics.lng),
    primary_type = COALESCE(EXCLUDED.primary_type, clinics.primary_type),
    types = COALESCE(EXCLUDED.types, clinics.types),
    rating = COALESCE(EXCLUDED.rating, clinics.rating),
    user_rating_count = COALESCE(EXCLUDED.user_rating_count, clinics.user_rating_count),
    phone = COALESCE(EXCLUDED.phone, clinics.phone),
    international_phone_number = COALESCE(EXCLUDED.international_phone_number, clinics.international_phone_number),
    website = COALESCE(EXCLUDED.website, clinics.website),
    google_maps_uri = COALESCE(EXCLUDED.google_maps_uri, clinics.google_maps_uri),
    business_status = COALESCE(EXCLUDED.business_status, clinics.business_status),
    accessibility_options = COALESCE(EXCLUDED.accessibility_options, clinics.accessibility_options),
    parking_options = COALESCE(EXCLUDED.parking_options, clinics.parking_options),
    payment_options = COALESCE(EXCLUDED.payment_options, clinics.payment_options),
    price_level = COALESCE(EXCLUDED.price_level, clinics.price_level),
    photos = COALESCE(EXCLUDED.photos, clinics.photos),
    opening_hours = COALESCE(EXCLUDED.opening_hours, clinics.opening_hours),
    open_now = EXCLUDED.open_now,
    last_fetched_at = EXCLUDED.last_fetched_at,
    rejected_at = NULL,
    updated_at = NOW();
"""

_SELECT_COLUMNS = """
    place_id, display_name, formatted_address, city, state_code, postal_code, lat, lng,
    primary_type, types, rating, user_rating_count, phone, international_phone_number,
    website, google_maps_uri, business_status, accessibility_options, parking_options,
    payment_options, price_level, photos, opening_hours, open_now, last_fetched_at
"""


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


def ensure_schema() -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_SCHEMA)
        conn.commit()


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a ``Clinic.to_dict()`` row onto SQL parameters.

    Empty collections become NULL so a partial record does not wipe stored data.
    """
    params = {key: row.get(key) for key in (
        "place_id",
        "display_name",
        "formatted_address",
        "city",
        "state_code",
        "postal_code",
        "lat",
        "lng",
        "primary_type",
        "rating",
        "user_rating_count",
        "phone",
        "international_phone_number",
        "website",
        "google_maps_uri",
        "business_status",
        "price_level",
        "last_fetched_at",
    )}
    params["types"] = list(row.get("types") or []) or None
    params["open_now"] = bool(row.get("open_now"))
    for column in _JSON_COLUMNS:
        value = row.get(column)
        params[column] = extras.Json(value) if value else None
    return params


def upsert_clinics(clinics: Iterable[Clinic]) -> int:
    """Upsert a batch of clinics in one transaction; returns the row count."""
    params_list = [_prepare_params(clinic.to_dict()) for clinic in clinics]
    for params in params_list:
        if not params["place_id"]:
            raise ValueError("place_id is required for upsert")
    if not params_list:
        return 0

    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                for params in params_list:
                    cur.execute(_UPSERT_CLINIC, params)
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise
    logger.debug("Upserted %d clinics", len(params_list))
    return len(params_list)


def _filters(state_code: Optional[str], city: Optional[str]) -> Tuple[str, Dict[str, Any]]:
    clauses: List[str] = []
    params: Dict[str, Any] = {}
    if state_code:
        clauses.append("state_code = %(state_code)s")
        params["state_code"] = state_code.upper()
    if city:
        clauses.append("city ILIKE %(city)s")
        params["city"] = f"%{city}%"
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def list_clinics(
    state_code: Optional[str] = None,
    city: Optional[str] = None,
    offset: int = 0,
    limit: int = 500,
    now: Optional[datetime] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """Return ``(rows, total)`` with ``open_now`` recomputed for the current time."""
    if offset < 0 or limit <= 0:
        raise ValueError("offset must be >= 0 and limit must be positive")
    where, params = _filters(state_code, city)

    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM clinics {where}", params)
            total = cur.fetchone()["total"]
            cur.execute(
                f"SELECT {_SELECT_COLUMNS} FROM clinics {where} "
                "ORDER BY state_code, display_name, place_id LIMIT %(limit)s OFFSET %(offset)s",
                {**params, "limit": limit, "offset": offset},
            )
            rows = cur.fetchall()

    return [refresh_open_now(with_display_defaults(dict(row)), now) for row in rows], total


def fetch_stale_place_ids(cutoff: date, limit: int = 100) -> List[str]:
    """Place ids whose ``last_fetched_at`` is on or before ``cutoff``, oldest first.

    Clinics rejected by a refresh after ``cutoff`` are skipped until they go
    stale again.
    """
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT place_id FROM clinics WHERE last_fetched_at <= %(cutoff)s "
                "AND (rejected_at IS NULL OR rejected_at <= %(cutoff)s) "
                "ORDER BY COALESCE(rejected_at, last_fetched_at), place_id LIMIT %(limit)s",
                {"cutoff": cutoff, "limit": limit},
            )
            return [row[0] for row in cur.fetchall()]


def mark_rejected(place_ids: Sequence[str], checked_on: date) -> int:
    """Stamp clinics that no longer classify as dermatology; returns rows updated."""
    if not place_ids:
        return 0
    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE clinics SET rejected_at = %(checked_on)s, updated_at = NOW() "
                    "WHERE place_id = ANY(%(place_ids)s)",
                    {"checked_on": checked_on, "place_ids": list(place_ids)},
                )
                updated = cur.rowcount
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise
    logger.info("Marked %d clinics as rejected on %s", updated, checked_on)
    return updated
