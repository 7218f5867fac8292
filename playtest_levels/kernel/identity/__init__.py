"""
Caller identity: bearer token verification and capability claims.
"""

from playtest_levels.kernel.identity.jwt import (
    AccessTokenPayload,
    JWTManager,
    create_access_token,
    verify_access_token,
)

__all__ = [
    "AccessTokenPayload",
    "JWTManager",
    "create_access_token",
    "verify_access_token",
]
