from __future__ import annotations

from limits import RateLimitItem
from limits import parse as parse_rate

# Coarse per-role ceilings applied to every request, on top of the
# per-operation limits enforced inside the upload services.
DEFAULT_ROLE_RATES: dict[str, str] = {
    "anonymous": "20/minute",
    "user": "120/minute",
    "admin": "240/minute",
}


def parse_role_rate_limits(raw: str | None) -> dict[str, str]:
    """Parse ``role:rule`` pairs such as ``user:100/minute,admin:200/minute``."""
    parsed: dict[str, str] = {}
    if not raw:
        return parsed

    for entry in raw.split(","):
        value = entry.strip()
        if ":" not in value:
            continue
        role, limit = value.split(":", 1)
        role_key = role.strip().lower()
        if role_key and limit.strip():
            parsed[role_key] = limit.strip()
    return parsed


def build_role_rate_limits(raw: str | None) -> dict[str, RateLimitItem]:
    selected = {**DEFAULT_ROLE_RATES, **parse_role_rate_limits(raw)}

    final_limits: dict[str, RateLimitItem] = {}
    for role, rule in selected.items():
        try:
            final_limits[role] = parse_rate(rule)
        except ValueError:
            final_limits[role] = parse_rate(DEFAULT_ROLE_RATES.get(role, DEFAULT_ROLE_RATES["anonymous"]))
    return final_limits
