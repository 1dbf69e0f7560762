from __future__ import annotations

from typing import Final

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from core.errors import auth_invalid_token
from core.settings import get_settings
from security.principal import AuthPrincipal

token_auth_scheme = HTTPBearer(auto_error=True)
AUTH_ROLES: Final[tuple[str, ...]] = ("user", "admin")
ALGORITHM: Final[str] = "HS256"
LEGACY_ROLE_ALIASES: Final[dict[str, str]] = {"member": "user", "student": "user"}


def normalize_role(role: str | None) -> str:
    value = (role or "").strip().lower()
    return LEGACY_ROLE_ALIASES.get(value, value)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            get_settings().secret_key,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as err:
        logger.debug("Rejected expired access token")
        raise auth_invalid_token(details={"reason": "expired"}) from err
    except jwt.InvalidTokenError as err:
        logger.debug("Rejected invalid access token: {}", err)
        raise auth_invalid_token(details={"reason": "invalid"}) from err


def principal_from_token(token: str) -> AuthPrincipal:
    claims = decode_access_token(token)
    role = normalize_role(claims.get("role") or "user")
    if role not in AUTH_ROLES:
        raise auth_invalid_token(details={"role": claims.get("role")})

    return AuthPrincipal(
        user_id=str(claims["sub"]),
        role=role,  # type: ignore[arg-type]
        jwt_token=token,
        token_issued_at=claims.get("iat"),
    )


async def verify_any_token(
    credentials: HTTPAuthorizationCredentials = Depends(token_auth_scheme),
) -> AuthPrincipal:
    return principal_from_token(credentials.credentials)

