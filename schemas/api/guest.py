"""Pydantic schemas for the guest account API.

Fields are loose on purpose: presence and syntax are checked by the guest
workflows so that failures come back as JSend ``fail`` envelopes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=190)
    username: Optional[str] = Field(default=None, max_length=190)
    site: Optional[Union[int, str]] = Field(default=None, description="Site id or slug.")
    settings: Optional[Dict[str, Any]] = Field(default=None, description="User settings stored with the account.")


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None
    token: Optional[str] = Field(default=None, description="Reset code received by email.")
    password: Optional[str] = None


class MePatchRequest(BaseModel):
    """Patch of the current account; unknown keys are kept so they can be refused."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    new_password: Optional[str] = None


__all__ = ["ForgotPasswordRequest", "LoginRequest", "MePatchRequest", "RegisterRequest"]
