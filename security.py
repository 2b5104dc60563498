import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext
from pymongo.database import Database

from config import Settings
from database import USER_PUBLIC_PROJECTION, get_db, get_settings
from schemas import PRIVILEGED_ROLES

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def _encode(user_id: Any, secret: str, lifetime: timedelta) -> str:
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALG)


def create_access_token(user_id: Any, settings: Settings) -> str:
    return _encode(user_id, settings.jwt_secret, timedelta(minutes=settings.access_token_expires_minutes))


def create_refresh_token(user_id: Any, settings: Settings) -> str:
    return _encode(user_id, settings.refresh_token_secret, timedelta(days=settings.refresh_token_expires_days))


def issue_tokens(user_id: Any, settings: Settings) -> Dict[str, str]:
    return {
        "accessToken": create_access_token(user_id, settings),
        "refreshToken": create_refresh_token(user_id, settings),
    }


def _resolve_user(authorization: str, db: Database, settings: Settings) -> Dict[str, Any]:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="No token provided. Authentication required")
    token = authorization[len("Bearer "):].strip()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = ObjectId(payload.get("sub"))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db["user"].find_one({"_id": user_id}, USER_PUBLIC_PROJECTION)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.get("status") != "active":
        raise HTTPException(
            status_code=403,
            detail=f"Your account is {user.get('status')}. Please contact support",
        )
    return user


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="No token provided. Authentication required")
    return _resolve_user(authorization, db, settings)


def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[Dict[str, Any]]:
    """Anonymous callers pass through as ``None``; a supplied token must still be valid."""
    if not authorization:
        return None
    return _resolve_user(authorization, db, settings)


def require_roles(*roles: str):
    def dependency(user: Optional[Dict[str, Any]] = Depends(get_current_user)) -> Dict[str, Any]:
        if not user:
            raise HTTPException(status_code=401, detail="User not authenticated")
        if user.get("role") not in roles:
            logger.info("Role %s denied, allowed: %s", user.get("role"), ", ".join(roles))
            raise HTTPException(status_code=403, detail="You do not have permission to perform this action")
        return user

    return dependency


def is_privileged(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") in PRIVILEGED_ROLES


def owner_id_for(user: Dict[str, Any]) -> Optional[ObjectId]:
    """Admin that owns what this actor creates: the manager for managed users, else the actor."""
    if user.get("role") in ("customer", "user") and user.get("managerId"):
        return user["managerId"]
    return user["_id"]
