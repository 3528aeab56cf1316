"""CLI job that re-fetches clinics whose stored data is 30 or more days old."""

import argparse
import logging
import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, List, Optional, Sequence

import requests

from dermclinics.core.config import ConfigError, Settings, get_settings
from dermclinics.core.db import fetch_stale_place_ids, mark_rejected, upsert_clinics
from dermclinics.core.throttle import RequestBudgetExceeded, RequestGateway
from dermclinics.etl.classify import accept_candidate
from dermclinics.etl.transform import STALE_AFTER_DAYS, to_clinic
from dermclinics.jobs.collect_clinics import build_gateway
from dermclinics.models import Clinic
from dermclinics.vendors import google_places

logger = logging.getLogger(__name__)


@dataclass
class RefreshSummary:
    checked: int = 0
    refreshed: int = 0
    rejected: int = 0
    failed: int = 0
    budget_exhausted: bool = False


def refresh_stale(
    settings: Settings,
    limit: int = 100,
    *,
    gateway: Optional[RequestGateway] = None,
    today: Optional[date] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RefreshSummary:
    """Re-fetch stale clinics through Place Details and upsert the survivors.

    Clinics that no longer classify as dermatology keep their stored data
    and are stamped as rejected so the next run does not fetch them again.
    """
    if not settings.google_api_key:
        raise ConfigError("GOOGLE_PLACES_API_KEY is required")

    today = today or date.today()
    gateway = gateway or build_gateway(settings, sleep=sleep)
    place_ids = fetch_stale_place_ids(today - timedelta(days=STALE_AFTER_DAYS), limit=limit)
    logger.info("Found %d stale clinics", len(place_ids))

    summary = RefreshSummary()
    refreshed: List[Clinic] = []
    rejected: List[str] = []
    for place_id in place_ids:
        summary.checked += 1
        try:
            place = google_places.place_details(place_id, settings.google_api_key, gateway)
        except RequestBudgetExceeded as exc:
            logger.warning("Stopping refresh: %s", exc)
            summary.budget_exhausted = True
            break
        except (google_places.GooglePlacesError, requests.RequestException) as exc:
            logger.warning("Failed to fetch details for %s: %s", place_id, exc)
            summary.failed += 1
            continue

        if not accept_candidate(place):
            logger.info("%s no longer classifies as dermatology; leaving stored record", place_id)
            rejected.append(place_id)
            continue
        clinic = to_clinic(place, today=today)
        if clinic is None:
            summary.failed += 1
            continue
        refreshed.append(clinic)

    if refreshed:
        summary.refreshed = upsert_clinics(refreshed)
    if rejected:
        mark_rejected(rejected, today)
    summary.rejected = len(rejected)
    logger.info(
        "Refresh done: checked=%d refreshed=%d rejected=%d failed=%d requests=%d",
        summary.checked,
        summary.refreshed,
        summary.rejected,
        summary.failed,
        gateway.request_count,
    )
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Refresh stale dermatology clinics")
    parser.add_argument("--limit", dest="limit", type=int, default=100, help="Maximum clinics to refresh")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)
    try:
        refresh_stale(get_settings(), limit=args.limit)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
