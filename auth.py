import logging
from datetime import datetime, timedelta, timezone

import jwt
from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.hash import bcrypt
from pymongo.database import Database

from config import settings
from database import get_db
from errors import Unauthorized
from validators import to_object_id

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(pw: str) -> str:
    return bcrypt.hash(pw)


def verify_password(pw: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.verify(pw, password_hash)
    except ValueError:
        # malformed hash in the store
        return False


def make_token(admin_id: ObjectId, username: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(admin_id),
        "username": username,
        "iat": now,
        "exp": now + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> dict:
    """Resolve the bearer token to an active admin document or reject with 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("No token, authorization denied")
    payload = decode_token(credentials.credentials)
    admin_id = to_object_id(payload.get("id"))
    if admin_id is None:
        raise Unauthorized("Invalid token")
    admin = db["admin"].find_one({"_id": admin_id})
    if not admin or not admin.get("is_active", True):
        logger.warning("Token presented for missing or inactive admin %s", payload.get("id"))
        raise Unauthorized("Invalid token")
    return admin
