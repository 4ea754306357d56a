"""FastAPI dependencies for authentication."""

import hmac
import logging
import os
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from dotenv import load_dotenv

from quietblocks.database.database import get_db
from quietblocks.database.user_repository import UserRepository
from quietblocks.auth.jwt import decode_access_token
from quietblocks.models.time_utils import utc_now
from quietblocks.models.user import User

load_dotenv()

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from JWT token.

    A verified token for an unknown subject provisions the user from its
    ``email`` and ``name`` claims. Without an ``email`` claim the subject
    must already exist.
    
    Raises:
        HTTPException: If token is invalid or user not found
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub") if payload else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    repo = UserRepository(db)
    user = repo.get(user_id)
    if user is not None:
        return user

    email = payload.get("email")
    if not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    now = utc_now()
    user = repo.create_or_update(User(
        id=user_id,
        email=email,
        name=payload.get("name"),
        created_at=now,
        updated_at=now,
    ))
    logger.info(f"Provisioned user {user_id} on first request")
    return user


def verify_cron_secret(credentials: HTTPAuthorizationCredentials = Depends(security)) -> None:
    """Allow the reminder trigger only with ``Authorization: Bearer <CRON_SECRET>``.

    Raises:
        HTTPException: 500 if CRON_SECRET is not configured, 401 on a bad secret
    """
    expected = os.getenv("CRON_SECRET")
    if not expected:
        logger.error("CRON_SECRET is not configured; rejecting reminder trigger")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron secret not configured",
        )
    if not credentials or not hmac.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
