from __future__ import annotations

from routesync._redact import redact_for_log
from routesync.models import GeoPoint


def test_redact_for_log_redacts_contact_and_signature_keys() -> None:
    payload = {
        "stop_id": "stop-1",
        "pickupContactPhone": "+1 555 0100",
        "email": "driver@example.com",
        "signature_url": "https://cdn.example.com/sig.png",
        "nested": {"contact-phone": "+1 555 0101", "item": "Record odometer reading"},
    }

    redacted = redact_for_log(payload)
    assert redacted["stop_id"] == "stop-1"
    assert redacted["pickupContactPhone"] == "<redacted>"
    assert redacted["email"] == "<redacted>"
    assert redacted["signature_url"] == "<redacted>"
    assert redacted["nested"]["contact-phone"] == "<redacted>"
    assert redacted["nested"]["item"] == "Record odometer reading"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"notes": long_value}, max_string=10)
    assert redacted["notes"].startswith("x" * 10)
    assert "<truncated>" in redacted["notes"]


def test_redact_for_log_walks_lists() -> None:
    redacted = redact_for_log([{"token": "abc"}, 3, None])
    assert redacted == [{"token": "<redacted>"}, 3, None]


def test_redact_for_log_strips_signed_url_query() -> None:
    redacted = redact_for_log({"url": "https://cdn.example.com/front.jpg?X-Amz-Signature=abc123"})
    assert redacted["url"] == "https://cdn.example.com/front.jpg?<redacted>"


def test_redact_for_log_dumps_models() -> None:
    point = GeoPoint(latitude=41.88, longitude=-87.63)
    assert redact_for_log({"location": point}) == {
        "location": {"latitude": 41.88, "longitude": -87.63, "accuracy": None}
    }
