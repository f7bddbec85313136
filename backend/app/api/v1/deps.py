"""
API Dependencies

Caller identity and common query parameter dependencies. Endpoints resolve
the CallerIdentity here and pass it explicitly into the services.
"""
from typing import Annotated, Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import CallerIdentity, get_identity_from_token
from app.core.settings import get_settings
from app.exceptions import AuthenticationError, PermissionDeniedError
from app.schemas.common import MAX_PAGE_SIZE, PaginationParams

# Bearer scheme; auto_error is off so a missing token becomes AuthenticationError
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> CallerIdentity:
    """
    Dependency to resolve the caller from the bearer token

    Returns:
        CallerIdentity carrying user id, tenant and role

    Raises:
        AuthenticationError if the token is missing, expired or invalid
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")

    identity = get_identity_from_token(credentials.credentials)
    if identity is None:
        raise AuthenticationError("Could not validate credentials")
    return identity


async def require_scheduler(
    identity: Annotated[CallerIdentity, Depends(get_current_identity)],
) -> CallerIdentity:
    """
    Dependency to require a role allowed to manage schedules.

    Raises:
        PermissionDeniedError if the role is not in SCHEDULER_ROLES
    """
    if identity.role not in get_settings().SCHEDULER_ROLES:
        raise PermissionDeniedError(
            "Role may not manage maintenance schedules",
            action="manage_schedules",
            role=identity.role,
        )
    return identity


def get_pagination_params(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
) -> PaginationParams:
    return PaginationParams(offset=offset, limit=limit)
