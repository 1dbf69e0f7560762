from __future__ import annotations

from typing import Any

_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def _split_location(loc: Any) -> tuple[str, str]:
    parts = [str(part) for part in loc] if isinstance(loc, (list, tuple)) else ([str(loc)] if loc is not None else [])
    if parts and parts[0] in _REQUEST_LOCATIONS:
        location, parts = parts[0], parts[1:]
    else:
        location = "body"
    return location, ".".join(parts) or "(root)"


def format_validation_error_details(errors: list[dict[str, Any]]) -> dict[str, Any]:
    """Flatten pydantic request errors into per-field entries for the error envelope."""
    field_errors: list[dict[str, str]] = []
    missing_fields: list[str] = []

    for error in errors:
        location, path = _split_location(error.get("loc"))
        error_type = str(error.get("type", "validation_error"))
        field_errors.append(
            {
                "path": path,
                "location": location,
                "message": str(error.get("msg", "Invalid value")),
                "errorType": error_type,
            }
        )
        if error_type == "missing" and path not in missing_fields:
            missing_fields.append(path)

    if missing_fields:
        summary = f"Validation failed: missing required field(s): {', '.join(missing_fields)}."
    else:
        summary = f"Validation failed for {len(field_errors)} field(s)."

    return {
        "summary": summary,
        "missingFields": missing_fields,
        "fieldErrors": field_errors,
    }
