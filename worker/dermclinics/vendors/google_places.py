"""Client utilities for the Google Places API (New)."""

import logging
from typing import Any, Dict, List, Optional

from dermclinics.core.throttle import RequestGateway

logger = logging.getLogger(__name__)
_BASE_URL = "https://places.googleapis.com/v1/places"

# Locale bias applied to every search.
_COMMON_BODY = {"languageCode": "en", "regionCode": "US"}

PLACE_FIELDS = (
    "id",
    "displayName",
    "formattedAddress",
    "addressComponents",
    "location",
    "primaryType",
    "types",
    "rating",
    "userRatingCount",
    "currentOpeningHours.openNow",
    "regularOpeningHours.weekdayDescriptions",
    "nationalPhoneNumber",
    "internationalPhoneNumber",
    "websiteUri",
    "googleMapsUri",
    "businessStatus",
    "accessibilityOptions",
    "parkingOptions",
    "priceLevel",
    "paymentOptions",
    "photos.name",
    "photos.widthPx",
    "photos.heightPx",
)

NEARBY_FIELD_MASK = ",".join(f"places.{name}" for name in PLACE_FIELDS)
SEARCH_FIELD_MASK = NEARBY_FIELD_MASK + ",nextPageToken"
DETAILS_FIELD_MASK = ",".join(PLACE_FIELDS)


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _headers(api_key: str, field_mask: str) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": field_mask,
    }


def _decode(response, operation: str) -> Dict[str, Any]:
    if not 200 <= response.status_code < 300:
        logger.error("%s failed: status=%s, body=%s", operation, response.status_code, response.text[:300])
        raise GooglePlacesError(f"{operation} failed with HTTP {response.status_code}", response.status_code)
    try:
        payload = response.json()
    except ValueError as exc:
        raise GooglePlacesError(f"{operation} returned a malformed body", response.status_code) from exc
    if not isinstance(payload, dict):
        raise GooglePlacesError(f"{operation} returned a malformed body", response.status_code)
    return payload


def search_text(
    query: str,
    api_key: str,
    gateway: RequestGateway,
    page_token: Optional[str] = None,
    page_size: int = 20,
) -> Dict[str, Any]:
    """Run one Text Search page; returns ``{"places": [...], "nextPageToken": str | None}``."""
    body: Dict[str, Any] = {**_COMMON_BODY, "textQuery": query, "pageSize": page_size}
    if page_token:
        body["pageToken"] = page_token
    response = gateway.execute(
        "POST",
        f"{_BASE_URL}:searchText",
        headers=_headers(api_key, SEARCH_FIELD_MASK),
        json=body,
    )
    payload = _decode(response, "search_text")
    return {"places": payload.get("places") or [], "nextPageToken": payload.get("nextPageToken") or None}


def search_nearby(
    lat: float,
    lng: float,
    api_key: str,
    gateway: RequestGateway,
    radius_m: float = 50_000,
    rank: str = "POPULARITY",
) -> List[Dict[str, Any]]:
    """Nearby Search around a point. Use ``rank="DISTANCE"`` for grid sweeps."""
    body = {
        **_COMMON_BODY,
        "includedPrimaryTypes": ["doctor"],
        "rankPreference": rank,
        "maxResultCount": 20,
        "locationRestriction": {
            "circle": {"center": {"latitude": lat, "longitude": lng}, "radius": radius_m},
        },
    }
    response = gateway.execute(
        "POST",
        f"{_BASE_URL}:searchNearby",
        headers=_headers(api_key, NEARBY_FIELD_MASK),
        json=body,
    )
    payload = _decode(response, "search_nearby")
    return payload.get("places") or []


def place_details(place_id: str, api_key: str, gateway: RequestGateway) -> Dict[str, Any]:
    response = gateway.execute(
        "GET",
        f"{_BASE_URL}/{place_id}",
        headers=_headers(api_key, DETAILS_FIELD_MASK),
    )
    return _decode(response, "place_details")
