"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

US_STATES = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA", "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA",
    "ME", "MD", "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH", "OK",
    "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY", "DC",
)

# (min_lat, max_lat, min_lng, max_lng)
BoundsTuple = Tuple[float, float, float, float]


class ConfigError(RuntimeError):
    """Raised when configuration values cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    qps: float = 3.0
    next_page_delay_ms: int = 1200
    max_requests: int = 800
    max_retries: int = 5
    max_pages_per_query: int = 10
    max_clinics_per_state: int = 0
    max_clinics_global: int = 0
    states: Tuple[str, ...] = US_STATES
    grid_bounds: Tuple[BoundsTuple, ...] = field(default_factory=tuple)
    grid_step_deg: float = 0.3
    grid_radius_m: float = 25_000.0
    cost_per_request: float = 0.032
    output_dir: str = "data/clinics"
    photo_dir: str = "data/photos"


def _number_env(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}") from exc


def parse_states(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma separated jurisdiction list, upper-casing each entry."""
    if not raw:
        return ()
    return tuple(part.strip().upper() for part in raw.split(",") if part.strip())


def parse_bounds(raw: str) -> BoundsTuple:
    """Parse ``minLat,maxLat,minLng,maxLng`` into a tuple of floats."""
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 4:
        raise ConfigError(f"bounding box must be minLat,maxLat,minLng,maxLng, got {raw!r}")
    try:
        min_lat, max_lat, min_lng, max_lng = (float(part) for part in parts)
    except ValueError as exc:
        raise ConfigError(f"bounding box values must be numeric, got {raw!r}") from exc
    return min_lat, max_lat, min_lng, max_lng


def parse_bounds_list(raw: Optional[str]) -> Tuple[BoundsTuple, ...]:
    if not raw:
        return ()
    boxes: List[BoundsTuple] = [parse_bounds(chunk) for chunk in raw.split(";") if chunk.strip()]
    return tuple(boxes)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_PLACES_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    qps = _number_env("PLACES_QPS", "3", float)
    if qps <= 0:
        raise ConfigError("PLACES_QPS must be positive")

    states = parse_states(os.getenv("PLACES_STATES")) or US_STATES

    if not google_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Google Places requests will fail.")
    if not database_url:
        logger.warning("DATABASE_URL is not set; clinics will only be written to snapshot files.")

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        qps=qps,
        next_page_delay_ms=_number_env("PLACES_NEXT_PAGE_DELAY_MS", "1200", int),
        max_requests=_number_env("PLACES_MAX_REQUESTS", "800", int),
        max_retries=_number_env("PLACES_MAX_RETRIES", "5", int),
        max_pages_per_query=_number_env("PLACES_MAX_PAGES_PER_QUERY", "10", int),
        max_clinics_per_state=_number_env("PLACES_MAX_CLINICS_PER_STATE", "0", int),
        max_clinics_global=_number_env("PLACES_MAX_CLINICS_GLOBAL", "0", int),
        states=states,
        grid_bounds=parse_bounds_list(os.getenv("PLACES_GRID_BOUNDS")),
        grid_step_deg=_number_env("PLACES_GRID_STEP_DEG", "0.3", float),
        grid_radius_m=_number_env("PLACES_GRID_RADIUS_M", "25000", float),
        cost_per_request=_number_env("PLACES_COST_PER_REQUEST", "0.032", float),
        output_dir=os.getenv("CLINIC_OUTPUT_DIR", "data/clinics"),
        photo_dir=os.getenv("PHOTO_OUTPUT_DIR", "data/photos"),
    )
