"""
Caller identity tokens

Authentication itself happens in the surrounding platform. It hands the
engine a signed access token whose claims carry the caller's user id,
tenant (company) id and role. This module issues and decodes those tokens.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import jwt

from app.core.settings import get_settings
from app.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    """Who is calling, and on behalf of which tenant."""
    user_id: str
    company_id: int
    role: str


def create_access_token(
    user_id: str,
    company_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token for a caller.

    Args:
        user_id: Caller's user id in the identity provider
        company_id: Tenant the caller acts for
        role: Caller's role within the tenant
        expires_delta: Lifetime; defaults to ACCESS_TOKEN_EXPIRE_MINUTES
    """
    settings = get_settings()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims = {
        "sub": str(user_id),
        "company_id": company_id,
        "role": role,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_identity_from_token(token: str) -> Optional[CallerIdentity]:
    """
    Decode an access token into a CallerIdentity.

    Returns None for expired, tampered, or incomplete tokens.
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected invalid access token: {e}")
        return None

    if claims.get("type") != "access":
        return None
    if not claims.get("sub") or claims.get("company_id") is None or not claims.get("role"):
        return None

    return CallerIdentity(
        user_id=str(claims["sub"]),
        company_id=int(claims["company_id"]),
        role=str(claims["role"]),
    )
