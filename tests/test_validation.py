"""Tests for the field validation layer (no app or database needed)."""
import pytest

from app.swiftship.utils import format_status_label, parse_delivery_date
from app.swiftship.validation import (
    FORM_SCHEMAS,
    custom,
    email,
    format_phone_number,
    format_tracking_number,
    get_all_errors,
    get_field_error,
    has_field_error,
    is_form_valid,
    max_length,
    min_length,
    pattern,
    phone,
    required,
    sanitize_input,
    tracking_number,
    validate_field,
    validate_form,
)


def test_blank_value_reports_only_required_message():
    rules = [min_length(5, "too short"), required("needed"), email()]
    for blank in (None, "", "   "):
        r = validate_field(blank, rules)
        assert r.is_valid is False
        assert r.errors == ["needed"]


def test_falsy_values_count_as_blank():
    for blank in (0, False, [], {}):
        r = validate_field(blank, [required("needed"), min_length(3, "too short")])
        assert r.errors == ["needed"]
    assert validate_field(0, [min_length(3, "too short")]).is_valid
    assert validate_field(7, [required("needed")]).is_valid


def test_blank_optional_value_is_valid():
    r = validate_field("", [min_length(5), email()])
    assert r.is_valid is True
    assert r.errors == []


def test_errors_accumulate_in_rule_order():
    rules = [min_length(5, "too short"), email("bad email"), custom(lambda v: v != "a@b", "reserved")]
    r = validate_field("a@b", rules)
    assert r.is_valid is False
    assert r.errors == ["too short", "bad email", "reserved"]


def test_value_is_trimmed_before_length_checks():
    r = validate_field("  ab  ", [max_length(2, "too long")])
    assert r.is_valid is True


def test_tracking_number_rule():
    assert validate_field("SW123456789", [tracking_number()]).is_valid
    assert not validate_field("sw123456789", [tracking_number()]).is_valid
    assert not validate_field("SW12", [tracking_number()]).is_valid


def test_phone_and_custom_pattern_rules():
    assert validate_field("+1 (555) 123-4567", [phone()]).is_valid
    assert validate_field("555-12", [phone()]).errors == ["Please enter a valid phone number"]
    assert validate_field("AB12", [pattern(r"^[A-Z]{2}\d{2}$", "bad code")]).is_valid
    assert not validate_field("ab12", [pattern(r"^[A-Z]{2}\d{2}$", "bad code")]).is_valid


def test_contact_form_messages():
    results = validate_form({"name": "J", "email": "nope", "message": "short"}, FORM_SCHEMAS["contact"])
    assert not is_form_valid(results)
    errors = get_all_errors(results)
    assert "Name must be at least 2 characters" in errors
    assert "Please enter a valid email address" in errors
    assert "Message must be at least 10 characters" in errors
    assert has_field_error("email", results)
    assert get_field_error("email", results) == "Please enter a valid email address"
    assert get_field_error("unknown", results) is None


def test_valid_contact_form():
    results = validate_form(
        {"name": "Mary O'Neil", "email": "mary@example.com", "message": "Where is my parcel please?"},
        FORM_SCHEMAS["contact"],
    )
    assert is_form_valid(results)
    assert get_all_errors(results) == []


def test_sanitize_input():
    assert sanitize_input("  <b>hi</b>  ") == "bhi/b"
    assert sanitize_input("JavaScript:alert(1)") == "alert(1)"
    assert sanitize_input('x onclick="y"') == 'x "y"'
    assert sanitize_input(None) == ""
    assert sanitize_input(42) == ""


def test_format_tracking_number():
    assert format_tracking_number(" sw-123 456 789 ") == "SW123456789"
    assert format_tracking_number("") == ""


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("5551234567", "(555) 123-4567"),
        ("15551234567", "+1 (555) 123-4567"),
        ("555-123", "555-123"),
        ("25551234567", "25551234567"),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


def test_format_status_label():
    assert format_status_label("out_for_delivery") == "Out For Delivery"
    assert format_status_label("delivered") == "Delivered"
    assert format_status_label("") == "—"


def test_parse_delivery_date():
    assert parse_delivery_date("2026-12-01").isoformat() == "2026-12-01"
    assert parse_delivery_date("2026-12-01T10:00:00Z").isoformat() == "2026-12-01"
    assert parse_delivery_date("") is None
    with pytest.raises(ValueError):
        parse_delivery_date("next tuesday")
