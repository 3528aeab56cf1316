"""Core data models shared by the clinic collection pipeline."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional


class BusinessStatus(str, enum.Enum):
    OPERATIONAL = "OPERATIONAL"
    CLOSED_TEMPORARILY = "CLOSED_TEMPORARILY"
    CLOSED_PERMANENTLY = "CLOSED_PERMANENTLY"


@dataclass(slots=True)
class AccessibilityOptions:
    wheelchair_accessible_entrance: Optional[bool] = None
    wheelchair_accessible_parking: Optional[bool] = None
    wheelchair_accessible_restroom: Optional[bool] = None
    wheelchair_accessible_seating: Optional[bool] = None


@dataclass(slots=True)
class ParkingOptions:
    free_parking_lot: Optional[bool] = None
    paid_parking_lot: Optional[bool] = None
    free_street_parking: Optional[bool] = None
    paid_street_parking: Optional[bool] = None
    valet_parking: Optional[bool] = None
    free_garage_parking: Optional[bool] = None
    paid_garage_parking: Optional[bool] = None


@dataclass(slots=True)
class PaymentOptions:
    accepts_credit_cards: Optional[bool] = None
    accepts_debit_cards: Optional[bool] = None
    accepts_cash_only: Optional[bool] = None
    accepts_nfc: Optional[bool] = None


@dataclass(slots=True)
class Photo:
    name: str
    width_px: Optional[int] = None
    height_px: Optional[int] = None


@dataclass(slots=True)
class OpeningHours:
    open_now: Optional[bool] = None
    weekday_text: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Clinic:
    """Canonical dermatology clinic, keyed by the Places ``place_id``.

    Fields the upstream did not report stay None so an upsert never
    overwrites stored values with placeholders.
    """

    place_id: str
    display_name: str
    formatted_address: Optional[str] = None
    city: Optional[str] = None
    state_code: Optional[str] = None
    postal_code: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    primary_type: Optional[str] = None
    types: List[str] = field(default_factory=list)
    rating: Optional[float] = None
    user_rating_count: Optional[int] = None
    phone: Optional[str] = None
    international_phone_number: Optional[str] = None
    website: Optional[str] = None
    google_maps_uri: Optional[str] = None
    business_status: Optional[BusinessStatus] = None
    accessibility_options: Optional[AccessibilityOptions] = None
    parking_options: Optional[ParkingOptions] = None
    payment_options: Optional[PaymentOptions] = None
    price_level: Optional[int] = None
    photos: List[Photo] = field(default_factory=list)
    opening_hours: Optional[OpeningHours] = None
    open_now: bool = False
    last_fetched_at: date = field(default_factory=date.today)

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-friendly representation (snapshot files and DB rows)."""
        data = asdict(self)
        data["business_status"] = self.business_status.value if self.business_status else None
        data["last_fetched_at"] = self.last_fetched_at.isoformat()
        return data
