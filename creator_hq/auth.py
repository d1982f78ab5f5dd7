import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import Settings
from .database import get_db
from .errors import AuthError, ForbiddenError, UpstreamError
from .models import Profile

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


def verify_session_token(token: str, settings: Settings) -> dict:
    """
    Verify an identity-provider session JWT (HS256, shared secret).

    Raises:
        AuthError: If the token is malformed, expired or signed with another key
    """
    if not settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET not configured")
        raise UpstreamError("Authentication not configured")

    if len(token.split(".")) != 3:
        raise AuthError("Invalid token format. Expected a valid JWT token.")

    try:
        return jose_jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[ALGORITHM],
            audience=settings.supabase_jwt_audience,
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthError("Invalid or expired session") from e


async def get_current_creator(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    """Resolve the signed-in creator from the Bearer session token"""
    if not credentials:
        raise AuthError("Not authenticated")

    claims = verify_session_token(credentials.credentials, request.app.state.settings)
    user_id = claims.get("sub")
    if not user_id:
        logger.error(f"Token missing subject claim. Available claims: {list(claims.keys())}")
        raise AuthError("Invalid token claims")

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise AuthError("Unknown user")

    if profile.role != "creator":
        logger.warning(f"User {user_id} attempted to access a creator route")
        raise ForbiddenError("Creator access required")

    return profile
