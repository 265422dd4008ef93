import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token


def create_access_token(user_id: int, roles: Optional[List[str]] = None) -> str:
    return _create_token(str(user_id), settings.jwt_ttl_seconds, extra={"roles": roles or []})


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(creds.credentials)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    return user


def is_admin(user: User) -> bool:
    return any((getattr(r, 'name', None) or '').lower() == 'admin' for r in user.roles)


def require_permissions(*required_permissions: str):
    """
    Require at least one of the specified permissions (OR logic).
    If multiple permissions are provided, user needs at least one.
    """
    def _dep(user: User = Depends(get_current_user)):
        # Admin role bypass
        if is_admin(user):
            return user

        has_any = any(_has_permission(user, perm) for perm in required_permissions)
        if not has_any:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return _dep


def _get_user_permission_map(user: User) -> dict:
    """Get combined permission map from roles and user overrides"""
    perm_map = {}
    for r in user.roles:
        if r.permissions:
            perm_map.update(r.permissions)
    if user.permissions_override:
        perm_map.update(user.permissions_override)
    return perm_map


def _has_permission(user: User, perm: str) -> bool:
    if is_admin(user):
        return True

    perm_map = _get_user_permission_map(user)

    # Format: area:permission (e.g., equipment:assign)
    # An explicit False on area:access blocks every permission of that area
    area = perm.split(':', 1)[0]
    area_access_key = f"{area}:access"
    if perm != area_access_key and area_access_key in perm_map and not perm_map.get(area_access_key):
        return False

    return bool(perm_map.get(perm))
