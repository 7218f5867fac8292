"""
FastAPI dependencies for caller identity, admin capability and database sessions.
"""

import uuid
from typing import Annotated, List, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playtest_levels.config import get_settings
from playtest_levels.database import get_db, get_session_factory
from playtest_levels.kernel.identity.jwt import verify_access_token

security = HTTPBearer(auto_error=False)


DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


class Caller(BaseModel):
    """Authenticated caller as asserted by the bearer token."""

    user_id: uuid.UUID
    capabilities: List[str] = []

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities


async def get_current_caller(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Caller:
    """Caller from the bearer token or 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = uuid.UUID(payload.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Caller(user_id=user_id, capabilities=payload.capabilities)


CurrentCaller = Annotated[Caller, Depends(get_current_caller)]


async def require_admin(caller: CurrentCaller) -> Caller:
    """Require the configured admin capability claim."""
    capability = get_settings().admin_capability
    if not caller.has_capability(capability):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Capability '{capability}' required",
        )
    return caller


AdminCaller = Annotated[Caller, Depends(require_admin)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)
