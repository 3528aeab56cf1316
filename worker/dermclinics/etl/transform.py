"""Utilities for transforming Google Places responses into Clinic entities."""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from dermclinics.etl.open_now import is_open_now
from dermclinics.models import (
    AccessibilityOptions,
    BusinessStatus,
    Clinic,
    OpeningHours,
    ParkingOptions,
    PaymentOptions,
    Photo,
)

logger = logging.getLogger(__name__)

STALE_AFTER_DAYS = 30

_PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}

_ACCESSIBILITY_KEYS = {
    "wheelchairAccessibleEntrance": "wheelchair_accessible_entrance",
    "wheelchairAccessibleParking": "wheelchair_accessible_parking",
    "wheelchairAccessibleRestroom": "wheelchair_accessible_restroom",
    "wheelchairAccessibleSeating": "wheelchair_accessible_seating",
}
_PARKING_KEYS = {
    "freeParkingLot": "free_parking_lot",
    "paidParkingLot": "paid_parking_lot",
    "freeStreetParking": "free_street_parking",
    "paidStreetParking": "paid_street_parking",
    "valetParking": "valet_parking",
    "freeGarageParking": "free_garage_parking",
    "paidGarageParking": "paid_garage_parking",
}
_PAYMENT_KEYS = {
    "acceptsCreditCards": "accepts_credit_cards",
    "acceptsDebitCards": "accepts_debit_cards",
    "acceptsCashOnly": "accepts_cash_only",
    "acceptsNfc": "accepts_nfc",
}


def parse_address_components(
    address_components: Iterable[Dict[str, Any]],
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Return ``(state_code, city, postal_code)``; missing parts are None."""
    state_code = None
    city = None
    postal_town = None
    postal_code = None
    for component in address_components or []:
        if not isinstance(component, dict):
            continue
        types = set(component.get("types") or [])
        if "administrative_area_level_1" in types and state_code is None:
            state_code = component.get("shortText")
        if "locality" in types and city is None:
            city = component.get("longText")
        if "postal_town" in types and postal_town is None:
            postal_town = component.get("longText")
        if "postal_code" in types and postal_code is None:
            postal_code = component.get("longText")
    return state_code, city or postal_town, postal_code


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def _flags(raw: Any, keys: Dict[str, str], model):
    if not isinstance(raw, dict):
        return None
    return model(**{attr: raw.get(key) for key, attr in keys.items() if key in raw})


def _price_level(value: Any) -> Optional[int]:
    if isinstance(value, str):
        return _PRICE_LEVELS.get(value)
    return _safe_int(value)


def _business_status(value: Any, place_id: str) -> Optional[BusinessStatus]:
    if not value:
        return None
    try:
        return BusinessStatus(value)
    except ValueError:
        logger.warning("Unknown businessStatus %r for %s; leaving it unset", value, place_id)
        return None


def _opening_hours(place: Dict[str, Any]) -> Optional[OpeningHours]:
    live = (place.get("currentOpeningHours") or {}).get("openNow")
    weekday_text = (place.get("regularOpeningHours") or {}).get("weekdayDescriptions") or []
    if live is None and not weekday_text:
        return None
    return OpeningHours(open_now=live, weekday_text=list(weekday_text))


def _location(place: Dict[str, Any], place_id: str) -> Tuple[Optional[float], Optional[float]]:
    location = place.get("location") or {}
    lat = _safe_float(location.get("latitude"))
    lng = _safe_float(location.get("longitude"))
    if lat is None or lng is None:
        logger.warning("Place %s has no readable location; output will show 0,0", place_id)
        return None, None
    return lat, lng


def to_clinic(place: Dict[str, Any], today: Optional[date] = None) -> Optional[Clinic]:
    """Map a raw Places (New) record onto a Clinic; None when it has no id."""
    place_id = place.get("id") if isinstance(place, dict) else None
    if not place_id:
        logger.debug("Skipping result without id: %s", place)
        return None

    state_code, city, postal_code = parse_address_components(place.get("addressComponents") or [])
    lat, lng = _location(place, place_id)
    opening_hours = _opening_hours(place)
    display = place.get("displayName")
    display_name = (display.get("text") if isinstance(display, dict) else display) or ""

    if opening_hours is None:
        open_now = False
    elif opening_hours.open_now is not None:
        open_now = bool(opening_hours.open_now)
    else:
        open_now = is_open_now(opening_hours.weekday_text, state_code)

    return Clinic(
        place_id=place_id,
        display_name=display_name,
        formatted_address=place.get("formattedAddress") or None,
        city=city,
        state_code=state_code,
        postal_code=postal_code,
        lat=lat,
        lng=lng,
        primary_type=place.get("primaryType") or None,
        types=list(place.get("types") or []),
        rating=_safe_float(place.get("rating")),
        user_rating_count=_safe_int(place.get("userRatingCount")),
        phone=place.get("nationalPhoneNumber"),
        international_phone_number=place.get("internationalPhoneNumber"),
        website=place.get("websiteUri"),
        google_maps_uri=place.get("googleMapsUri") or None,
        business_status=_business_status(place.get("businessStatus"), place_id),
        accessibility_options=_flags(place.get("accessibilityOptions"), _ACCESSIBILITY_KEYS, AccessibilityOptions),
        parking_options=_flags(place.get("parkingOptions"), _PARKING_KEYS, ParkingOptions),
        payment_options=_flags(place.get("paymentOptions"), _PAYMENT_KEYS, PaymentOptions),
        price_level=_price_level(place.get("priceLevel")),
        photos=[
            Photo(name=photo["name"], width_px=photo.get("widthPx"), height_px=photo.get("heightPx"))
            for photo in place.get("photos") or []
            if isinstance(photo, dict) and photo.get("name")
        ],
        opening_hours=opening_hours,
        open_now=open_now,
        last_fetched_at=today or date.today(),
    )


# Shown in place of fields the upstream never reported; never written to storage.
DISPLAY_DEFAULTS = {
    "formatted_address": "",
    "lat": 0.0,
    "lng": 0.0,
    "primary_type": "doctor",
    "google_maps_uri": "",
    "business_status": BusinessStatus.OPERATIONAL.value,
}


def with_display_defaults(row: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a ``Clinic.to_dict()`` row with unset fields filled for output."""
    filled = dict(row)
    for key, default in DISPLAY_DEFAULTS.items():
        if filled.get(key) is None:
            filled[key] = default
    return filled


def needs_refresh(last_fetched_at: Union[date, str, None], today: Optional[date] = None) -> bool:
    """True when a snapshot is at least 30 days old (or its date is unreadable)."""
    if last_fetched_at is None:
        return True
    if isinstance(last_fetched_at, datetime):
        fetched = last_fetched_at.date()
    elif isinstance(last_fetched_at, date):
        fetched = last_fetched_at
    else:
        try:
            fetched = date.fromisoformat(str(last_fetched_at)[:10])
        except ValueError:
            logger.warning("Unreadable last_fetched_at %r; treating as stale", last_fetched_at)
            return True
    return ((today or date.today()) - fetched).days >= STALE_AFTER_DAYS
