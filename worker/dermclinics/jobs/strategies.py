"""Query strategies: paginated text search per jurisdiction and grid sweeps."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Sequence

from dermclinics.core.throttle import RequestGateway
from dermclinics.vendors import google_places

logger = logging.getLogger(__name__)

TEXT_QUERY_TEMPLATES = (
    "dermatology clinic in {}",
    "dermatologist in {}",
    "skin clinic in {}",
)

GRID_EPSILON = 1e-9


@dataclass(frozen=True)
class TextQuery:
    query: str
    jurisdiction: str


@dataclass(frozen=True)
class Bounds:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @classmethod
    def from_tuple(cls, values: Sequence[float]) -> "Bounds":
        min_lat, max_lat, min_lng, max_lng = values
        return cls(min_lat, max_lat, min_lng, max_lng)


@dataclass(frozen=True)
class GridCell:
    lat: float
    lng: float
    radius_m: float
    label: str = ""


def text_queries(jurisdiction: str) -> List[TextQuery]:
    return [TextQuery(template.format(jurisdiction), jurisdiction) for template in TEXT_QUERY_TEMPLATES]


def iter_text_pages(
    gateway: RequestGateway,
    api_key: str,
    query: TextQuery,
    max_pages: int = 10,
    page_delay: float = 1.2,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[List[Dict[str, Any]]]:
    """Yield each result page for a text query, following continuation tokens.

    Stops when the upstream returns no token or ``max_pages`` pages have been
    fetched. Continuation tokens need a moment before they are valid, so
    ``page_delay`` is slept between consecutive page requests.
    """
    page_token = None
    pages = 0
    while pages < max_pages:
        if pages:
            sleep(page_delay)
        response = google_places.search_text(query.query, api_key, gateway, page_token=page_token)
        pages += 1
        places = response.get("places", [])
        logger.info("Fetched %d results on page %d for %r", len(places), pages, query.query)
        yield places

        page_token = response.get("nextPageToken")
        if not page_token:
            return
    logger.info("Page cap of %d reached for %r", max_pages, query.query)


def _steps(start: float, stop: float, step: float) -> Iterator[float]:
    index = 0
    while True:
        value = start + index * step
        if value > stop + GRID_EPSILON:
            return
        yield value
        index += 1


def grid_points(bounds: Bounds, step_deg: float) -> List[tuple]:
    """Every ``(lat, lng)`` on a ``step_deg`` lattice inside the box, edges included."""
    if step_deg <= 0:
        raise ValueError("step_deg must be positive")
    return [
        (round(lat, 6), round(lng, 6))
        for lat in _steps(bounds.min_lat, bounds.max_lat, step_deg)
        for lng in _steps(bounds.min_lng, bounds.max_lng, step_deg)
    ]


def grid_cells(bounds: Bounds, step_deg: float, radius_m: float, label: str = "") -> List[GridCell]:
    return [GridCell(lat, lng, radius_m, label) for lat, lng in grid_points(bounds, step_deg)]


def iter_grid_pages(
    gateway: RequestGateway,
    api_key: str,
    cells: Iterable[GridCell],
) -> Iterator[List[Dict[str, Any]]]:
    """One nearest-first Nearby Search per grid cell."""
    for cell in cells:
        places = google_places.search_nearby(
            cell.lat,
            cell.lng,
            api_key,
            gateway,
            radius_m=cell.radius_m,
            rank="DISTANCE",
        )
        logger.info("Fetched %d results around %.6f,%.6f", len(places), cell.lat, cell.lng)
        yield places
