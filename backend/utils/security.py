from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from utils.jwt import token_user_id
from utils.errors import AuthenticationError, AuthorizationError
from utils.guards import assert_approved_vendor
from models.user import Permission, Role, has_permission
from database import get_db

security = HTTPBearer(auto_error=False)


async def load_user_from_token(token: str, db) -> dict:
    user = await db.users.find_one({"_id": token_user_id(token)}, {"password": 0})
    if not user:
        raise AuthenticationError("User not found")

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db=Depends(get_db),
):
    if not credentials:
        raise AuthenticationError("Unauthorized - No access token provided")
    return await load_user_from_token(credentials.credentials, db)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db=Depends(get_db),
):
    """Like get_current_user, but anonymous callers get None."""
    if not credentials:
        return None
    return await load_user_from_token(credentials.credentials, db)


def require_role(*roles: Role):
    allowed = {r.value if isinstance(r, Role) else r for r in roles}

    async def checker(user=Depends(get_current_user)):
        if user.get("role") not in allowed:
            raise AuthorizationError("Insufficient permissions")
        return user

    return checker


async def get_current_vendor(
    user=Depends(get_current_user),
):
    assert_approved_vendor(user)
    return user


def require_permission(permission: Permission):
    async def checker(vendor=Depends(get_current_vendor)):
        if not has_permission(vendor, permission):
            raise AuthorizationError("Forbidden - insufficient permission")
        return vendor

    return checker
