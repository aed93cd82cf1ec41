from datetime import datetime, timedelta

from bson import ObjectId
from jose import JWTError, jwt

from config.env import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_DAYS
from utils.errors import AuthenticationError


def _require_jwt_secret() -> str:
    secret = (JWT_SECRET or "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    return secret


def create_access_token(user_id, role: str | None = None) -> str:
    """Same claims the auth service issues: `sub` is the user id."""
    now = datetime.utcnow()
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(days=ACCESS_TOKEN_DAYS),
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, _require_jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, _require_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired access token")


def token_user_id(token: str) -> ObjectId:
    subject = decode_token(token).get("sub")
    if not subject or not ObjectId.is_valid(str(subject)):
        raise AuthenticationError("Invalid token payload")
    return ObjectId(str(subject))
