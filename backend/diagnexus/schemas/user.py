from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Literal, Optional

Role = Literal["Admin", "Doctor", "Patient"]


def _normalize_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("email must look like name@domain.tld")
    return value


class UserCreate(BaseModel):
    role: Role
    name: str
    email: str
    password: str

    @field_validator("name", "password")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        return _normalize_email(v)


class UserUpdate(BaseModel):
    role: Optional[Role] = None
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name", "password")
    @classmethod
    def not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_email(v)


class UserResponse(BaseModel):
    user_id: int
    role: str
    name: str
    email: str
    updated_by: Optional[int] = None
    updated_date: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
