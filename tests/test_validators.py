import re

import pytest
from bson import ObjectId

from validators import (
    is_object_id, is_valid_url, make_slug, sanitize_input, slugify, to_object_id,
    validate_pagination, validate_phone,
)


@pytest.mark.parametrize("phone,cleaned", [
    ("9876543210", "9876543210"),
    ("+91 98765-43210", "+919876543210"),
    ("(987) 654 3210", "9876543210"),
])
def test_valid_phones_are_cleaned(phone, cleaned):
    assert validate_phone(phone) == (True, cleaned)


@pytest.mark.parametrize("phone", ["12345", "5876543210", "+1 555 123 4567"])
def test_invalid_phones(phone):
    assert validate_phone(phone) == (False, "Please enter a valid 10-digit phone number")


def test_phone_required():
    assert validate_phone("") == (False, "Phone number is required")


def test_pagination_bounds():
    assert validate_pagination(None, None) == (1, 12)
    assert validate_pagination("3", "20") == (3, 20)
    assert validate_pagination(-4, 500) == (1, 100)
    assert validate_pagination("x", "y") == (1, 12)


def test_object_ids():
    oid = ObjectId()
    assert is_object_id(str(oid))
    assert not is_object_id("venetian-blind-1234")
    assert not is_object_id(None)
    assert to_object_id(str(oid)) == oid
    assert to_object_id(oid) is oid
    assert to_object_id("abc") is None


def test_slugify():
    assert slugify("  Ring Curtain -- Deluxe! ") == "ring-curtain-deluxe"
    assert slugify("Café Sofa") == "caf-sofa"
    assert re.fullmatch(r"velvet-cushion-\d{4}", make_slug("Velvet Cushion"))


def test_is_valid_url():
    assert is_valid_url("https://cdn.example.com/a.jpg")
    assert not is_valid_url("ftp://example.com/a.jpg")
    assert not is_valid_url("/images/a.jpg")


def test_sanitize_input():
    assert sanitize_input('<img src=x onerror=alert(1)> javascript:go ') == "img src=x alert(1) go"
    assert sanitize_input(5) == 5
