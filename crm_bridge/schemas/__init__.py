"""Public schema exports."""

from .auth import LoginRequest, LogoutRequest, RefreshRequest, SignupRequest

__all__ = [
    "LoginRequest",
    "LogoutRequest",
    "RefreshRequest",
    "SignupRequest",
]
