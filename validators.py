import re
import time
from typing import Optional, Tuple
from urllib.parse import urlparse

from bson import ObjectId

OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")
PHONE_RE = re.compile(r"^(\+91)?[6-9]\d{9}$")

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100


def is_object_id(value) -> bool:
    """True when value looks like a 24 character hex Mongo id."""
    return isinstance(value, str) and bool(OBJECT_ID_RE.match(value))


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if is_object_id(value):
        return ObjectId(value)
    return None


def clean_phone(phone: str) -> str:
    return re.sub(r"[\s\-()]", "", phone or "")


def validate_phone(phone: Optional[str]) -> Tuple[bool, str]:
    """Check an Indian mobile number (10 digits, optional +91).

    Returns (valid, cleaned-or-message).
    """
    if not phone:
        return False, "Phone number is required"
    cleaned = clean_phone(phone)
    if not PHONE_RE.match(cleaned):
        return False, "Please enter a valid 10-digit phone number"
    return True, cleaned


def validate_pagination(page, limit) -> Tuple[int, int]:
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    page = page or 1
    limit = limit or DEFAULT_PAGE_SIZE
    return max(1, page), min(MAX_PAGE_SIZE, max(1, limit))


def is_valid_url(url) -> bool:
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def slugify(text: str) -> str:
    text = str(text).lower().strip()
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"[^\w-]+", "", text, flags=re.ASCII)
    return re.sub(r"--+", "-", text)


def make_slug(title: str) -> str:
    """slugify(title) plus a short time based suffix to avoid most collisions."""
    suffix = str(int(time.time() * 1000))[-4:]
    return f"{slugify(title)}-{suffix}"


def sanitize_input(value):
    if not isinstance(value, str):
        return value
    value = re.sub(r"[<>]", "", value)
    value = re.sub(r"javascript:", "", value, flags=re.IGNORECASE)
    value = re.sub(r"on\w+\s*=", "", value, flags=re.IGNORECASE)
    return value.strip()
