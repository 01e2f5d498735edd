"""Request bodies for the session and OAuth endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SignupRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True)

    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    user_account_id: str = Field(..., min_length=1, description="CRM portal id of the user's account.")


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Session refresh body; the camelCase key matches existing clients."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., min_length=1, alias="refreshToken")


class LogoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(None, alias="refreshToken")


__all__ = ["LoginRequest", "LogoutRequest", "RefreshRequest", "SignupRequest"]
