"""
Auth session support for club_graphql.

This module provides the cookie-based session API and its payload models.
"""

from .api import AuthClient
from .models import AuthUser, ClubInfo, LoginCredentials, RefreshResponse, SignInResponse

__all__ = [
    "AuthClient",
    "AuthUser",
    "ClubInfo",
    "LoginCredentials",
    "RefreshResponse",
    "SignInResponse",
]
