"""JWT token generation and validation for quietblocks."""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from dotenv import load_dotenv

load_dotenv()

# JWT configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def create_access_token(
    user_id: str,
    expires_in: Optional[timedelta] = None,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> str:
    """Create a JWT access token for a user.
    
    Args:
        user_id: User ID to encode in token (``sub`` claim)
        expires_in: Token lifetime; defaults to JWT_EXPIRATION_HOURS
        email: Optional ``email`` claim, used to provision the user on first request
        name: Optional ``name`` claim
        
    Returns:
        Encoded JWT token string
    """
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "exp": issued_at + (expires_in or timedelta(hours=JWT_EXPIRATION_HOURS)),
        "iat": issued_at,
    }
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a JWT access token.
    
    Returns:
        Decoded payload, or None if the token is expired or invalid
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
