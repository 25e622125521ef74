"""
Standard API response helpers for consistent response formatting.

- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error:   { "success": false, "error": { "code": "...", "message": "...", "details": {...} } }

Errors are rendered by the exception handlers in main.py.
"""
from typing import Any


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create a standardized success response.

    Args:
        data: The response payload
        meta: Optional metadata (pagination, timestamps, etc.)

    Returns:
        dict: { "success": true, "data": <data>, "meta": <meta> }
    """
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Create a standardized error envelope."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
    }


def paginated_response(
    items: list[Any],
    limit: int,
    offset: int = 0,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Create a standardized paginated response.

    If total is None the page length is used, and hasMore is then only
    true when the page came back full.
    """
    if total is None:
        has_more = len(items) == limit
        total = offset + len(items)
    else:
        has_more = (offset + limit) < total

    meta = {
        "limit": limit,
        "offset": offset,
        "total": total,
        "hasMore": has_more,
    }

    return success_response(data=items, meta=meta)
