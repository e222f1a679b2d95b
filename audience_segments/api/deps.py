"""
FastAPI Dependencies

Provides dependency injection for database sessions, seller authentication
and the AI segment generator.

SECURITY NOTES:
- JWT payloads are never logged
- Tokens are issued by the session service; this API only verifies them
- The seller id comes from the token subject, never from the request body
"""

from typing import Annotated
from fastapi import Depends, Cookie
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
from datetime import datetime, timedelta
import logging

from audience_segments.database import get_db
from audience_segments.config import settings
from audience_segments.exceptions import UnauthorizedError
from audience_segments.services.ai_gateway import AIGateway, get_ai_gateway
from audience_segments.services.segments.segment_ai_generator import SegmentAIGenerator

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT - primary auth method
security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


async def get_current_seller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
    session_token: Annotated[str | None, Cookie(alias="session")] = None,
) -> int:
    """
    Get the current seller id from a JWT bearer token or session cookie.

    SECURITY:
    - Bearer token is preferred (no CSRF vulnerability)
    - JWT payloads are NOT logged to prevent credential leakage
    """
    token = None
    auth_method = None

    if credentials:
        token = credentials.credentials
        auth_method = "bearer"
    elif session_token:
        token = session_token
        auth_method = "cookie"

    if not token:
        raise UnauthorizedError()

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        sub = payload.get("sub")
        if sub is None:
            raise UnauthorizedError()
        seller_id = int(sub)
    except JWTError:
        logger.warning("JWT validation failed", extra={"auth_method": auth_method})
        raise UnauthorizedError()
    except (TypeError, ValueError):
        logger.warning("Invalid token format", extra={"auth_method": auth_method})
        raise UnauthorizedError()

    logger.debug("Seller authenticated", extra={"seller_id": seller_id, "auth_method": auth_method})
    return seller_id


async def get_segment_generator(
    gateway: Annotated[AIGateway, Depends(get_ai_gateway)],
) -> SegmentAIGenerator:
    """Fresh generator per request; it tracks the state of one generation."""
    return SegmentAIGenerator(gateway)


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentSeller = Annotated[int, Depends(get_current_seller)]
SegmentGenerator = Annotated[SegmentAIGenerator, Depends(get_segment_generator)]
