from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class AuthPrincipal(BaseModel):
    user_id: str
    role: Literal["user", "admin"]
    jwt_token: str
    token_issued_at: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
