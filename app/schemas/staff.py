from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class StaffCreate(BaseModel):
    email: str = Field(max_length=254)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=8, max_length=128)
    confirm_password: str
    mobile: Optional[str] = Field(default=None, max_length=100)
    is_rider: bool = False
    permissions: list[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value

    @field_validator("first_name", "last_name", "mobile")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("Must not be blank")
        return value

    @field_validator("password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
            raise ValueError("Password must contain uppercase, lowercase and a number")
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> "StaffCreate":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class StaffResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    auth_subject: Optional[str] = None
    name: str
    email: str
    mobile: Optional[str] = None
    is_rider: bool
    permissions: list[str]
    created_at: Optional[datetime] = None
