# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel

Role = Literal["employee", "manager", "hr", "admin"]


class AuthContext(BaseModel):
    """Dev auth context extracted from request headers."""

    user_id: uuid.UUID
    role: Role = "employee"

    @property
    def is_hr(self) -> bool:
        return self.role in ("hr", "admin")
