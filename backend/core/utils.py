"""
Utility functions for the workflow engine.

Includes:
- Slug generation
- Pagination helpers
- UTC datetime helpers
- JSON-safe conversion for persisted payloads
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any


def generate_slug(name: str) -> str:
    """
    Generate a URL-friendly slug from a string.

    Converts to lowercase, replaces spaces with hyphens, removes special characters.

    Args:
        name: String to convert to slug

    Returns:
        URL-friendly slug
    """
    slug = name.lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9\-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def utc_now() -> datetime:
    """Get the current UTC datetime."""
    return datetime.now(timezone.utc)


def calculate_offset(page: int, per_page: int) -> int:
    """Convert a 1-indexed page number into a query offset."""
    return (max(page, 1) - 1) * per_page


def to_jsonable(obj: Any, depth: int = 0) -> Any:
    """Recursively coerce a value into something a JSON column accepts."""
    if depth > 32:
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v, depth + 1) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_jsonable(v, depth + 1) for v in obj]
    return str(obj)
