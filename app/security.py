"""
Session credential for newly created accounts.

Sign-up returns a short-lived HS256 JWT the client can present to the rest of
the platform. Expiration matches JWT_MAX_AGE.
"""
from datetime import datetime, timedelta, UTC

from jose import jwt

from config import JWT_ALGORITHM, JWT_MAX_AGE


def create_jwt(user_id: str, secret: str, max_age: int = JWT_MAX_AGE) -> str:
    """Build a JWT for the given user id; exp = now + max_age seconds."""
    payload = {
        "sub": user_id,
        "exp": datetime.now(UTC) + timedelta(seconds=max_age),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_jwt(token: str, secret: str) -> dict:
    """Decode and verify JWT; raises JWTError if invalid or expired."""
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
