from datetime import date

from dermclinics.etl import transform
from dermclinics.models import BusinessStatus

COMPONENTS = [
    {"longText": "123", "shortText": "123", "types": ["street_number"]},
    {"longText": "Austin", "shortText": "Austin", "types": ["locality", "political"]},
    {"longText": "Texas", "shortText": "TX", "types": ["administrative_area_level_1", "political"]},
    {"longText": "78701", "shortText": "78701", "types": ["postal_code"]},
]


def full_place():
    return {
        "id": "pid-1",
        "displayName": {"text": "Austin Dermatology"},
        "formattedAddress": "123 Main St, Austin, TX 78701, USA",
        "addressComponents": COMPONENTS,
        "location": {"latitude": 30.27, "longitude": -97.74},
        "primaryType": "doctor",
        "types": ["doctor", "health"],
        "rating": 4.7,
        "userRatingCount": 120,
        "currentOpeningHours": {"openNow": True},
        "regularOpeningHours": {"weekdayDescriptions": ["Monday: 8:00 AM – 5:00 PM"]},
        "nationalPhoneNumber": "(512) 555-0100",
        "internationalPhoneNumber": "+1 512-555-0100",
        "websiteUri": "https://austinderm.example",
        "googleMapsUri": "https://maps.google.com/?cid=1",
        "businessStatus": "CLOSED_TEMPORARILY",
        "accessibilityOptions": {"wheelchairAccessibleEntrance": True},
        "parkingOptions": {"freeParkingLot": True, "valetParking": False},
        "paymentOptions": {"acceptsCreditCards": True, "acceptsNfc": True},
        "priceLevel": "PRICE_LEVEL_MODERATE",
        "photos": [{"name": "places/pid-1/photos/a", "widthPx": 800, "heightPx": 600}, {"widthPx": 1}],
    }


def test_parse_address_components():
    assert transform.parse_address_components(COMPONENTS) == ("TX", "Austin", "78701")
    assert transform.parse_address_components([]) == (None, None, None)
    assert transform.parse_address_components(None) == (None, None, None)


def test_parse_address_components_falls_back_to_postal_town():
    components = [{"longText": "Bath", "types": ["postal_town"]}]
    assert transform.parse_address_components(components) == (None, "Bath", None)


def test_to_clinic_maps_all_fields():
    clinic = transform.to_clinic(full_place(), today=date(2024, 5, 1))

    assert clinic.place_id == "pid-1"
    assert clinic.display_name == "Austin Dermatology"
    assert (clinic.state_code, clinic.city, clinic.postal_code) == ("TX", "Austin", "78701")
    assert (clinic.lat, clinic.lng) == (30.27, -97.74)
    assert clinic.rating == 4.7
    assert clinic.user_rating_count == 120
    assert clinic.business_status is BusinessStatus.CLOSED_TEMPORARILY
    assert clinic.accessibility_options.wheelchair_accessible_entrance is True
    assert clinic.accessibility_options.wheelchair_accessible_restroom is None
    assert clinic.parking_options.free_parking_lot is True
    assert clinic.parking_options.valet_parking is False
    assert clinic.payment_options.accepts_nfc is True
    assert clinic.price_level == 2
    assert [photo.name for photo in clinic.photos] == ["places/pid-1/photos/a"]
    assert clinic.opening_hours.open_now is True
    assert clinic.opening_hours.weekday_text == ["Monday: 8:00 AM – 5:00 PM"]
    assert clinic.open_now is True
    assert clinic.last_fetched_at == date(2024, 5, 1)


def test_to_clinic_requires_id():
    assert transform.to_clinic({"displayName": {"text": "No Id Dermatology"}}) is None


def test_to_clinic_tolerates_missing_components_and_location(caplog):
    with caplog.at_level("WARNING"):
        clinic = transform.to_clinic({"id": "bare", "displayName": {"text": "Bare Derm"}})

    assert clinic.state_code is None
    assert clinic.city is None
    assert clinic.postal_code is None
    assert (clinic.lat, clinic.lng) == (None, None)
    assert clinic.formatted_address is None
    assert clinic.google_maps_uri is None
    assert clinic.opening_hours is None
    assert clinic.open_now is False
    assert clinic.business_status is None
    assert clinic.primary_type is None
    assert clinic.accessibility_options is None
    assert clinic.photos == []
    assert "no readable location" in " ".join(caplog.messages)


def test_to_clinic_unknown_business_status_is_left_unset(caplog):
    place = {"id": "p", "displayName": {"text": "X"}, "businessStatus": "SOMETHING_NEW"}
    with caplog.at_level("WARNING"):
        clinic = transform.to_clinic(place)
    assert clinic.business_status is None
    assert "Unknown businessStatus" in " ".join(caplog.messages)
    assert transform.with_display_defaults(clinic.to_dict())["business_status"] == "OPERATIONAL"


def test_to_clinic_derives_open_now_from_text_when_live_flag_absent(monkeypatch):
    place = full_place()
    del place["currentOpeningHours"]
    calls = []

    def fake_is_open_now(weekday_text, state_code):
        calls.append((weekday_text, state_code))
        return True

    monkeypatch.setattr(transform, "is_open_now", fake_is_open_now)
    clinic = transform.to_clinic(place)

    assert clinic.open_now is True
    assert clinic.opening_hours.open_now is None
    assert calls == [(["Monday: 8:00 AM – 5:00 PM"], "TX")]


def test_clinic_to_dict_is_json_friendly():
    row = transform.to_clinic(full_place(), today=date(2024, 5, 1)).to_dict()
    assert row["business_status"] == "CLOSED_TEMPORARILY"
    assert row["last_fetched_at"] == "2024-05-01"
    assert row["parking_options"]["free_parking_lot"] is True
    assert row["photos"][0] == {"name": "places/pid-1/photos/a", "width_px": 800, "height_px": 600}


def test_needs_refresh_day_granularity():
    today = date(2024, 5, 31)
    assert transform.needs_refresh(date(2024, 5, 1), today) is True
    assert transform.needs_refresh("2024-05-02", today) is False
    assert transform.needs_refresh("2024-05-01T23:59:00Z", today) is True
    assert transform.needs_refresh("garbage", today) is True
    assert transform.needs_refresh(None, today) is True


def test_with_display_defaults_fills_only_unset_fields():
    row = transform.to_clinic({"id": "bare", "displayName": {"text": "Bare Derm"}}).to_dict()

    shown = transform.with_display_defaults(row)

    assert (shown["lat"], shown["lng"]) == (0.0, 0.0)
    assert shown["formatted_address"] == ""
    assert shown["google_maps_uri"] == ""
    assert shown["primary_type"] == "doctor"
    assert shown["business_status"] == "OPERATIONAL"
    assert row["lat"] is None
    assert row["business_status"] is None


def test_with_display_defaults_keeps_reported_values():
    row = transform.to_clinic(full_place()).to_dict()
    assert transform.with_display_defaults(row) == row
