"""
Authentication

Short-lived access tokens and long-lived refresh tokens, both HS256 JWTs.
Only the most recently issued refresh token of a user is accepted; it is
stored on the user document and replaced on every refresh.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt
from bson import ObjectId
from fastapi import HTTPException, Request, Response
from jwt.exceptions import ExpiredSignatureError, PyJWTError
from passlib.context import CryptContext

from vidnest.config import settings
from vidnest.database import get_db

ALGORITHM = "HS256"
ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Never hand these back to a client or keep them on request.state
SAFE_USER_PROJECTION = {"password": 0, "refresh_token": 0}


def sanitize_password(raw_password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    encoded = raw_password.encode("utf-8")[:72]
    return encoded.decode("utf-8", "ignore")


def hash_password(raw_password: str) -> str:
    return pwd_context.hash(sanitize_password(raw_password))


def verify_password(raw_password: str, hashed: Optional[str]) -> bool:
    if not raw_password or not hashed:
        return False
    return pwd_context.verify(sanitize_password(raw_password), hashed)


def _encode(claims: Dict[str, Any], secret: str, expires_delta, token_type: str) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload.update({
        "iat": now,
        "exp": now + expires_delta,
        "token_type": token_type,
        "jti": str(ObjectId()),
    })
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def create_access_token(user: Dict[str, Any]) -> str:
    return _encode(
        {
            "sub": str(user["_id"]),
            "email": user.get("email"),
            "username": user.get("username"),
            "full_name": user.get("full_name"),
        },
        settings.access_token_secret,
        settings.access_token_expiry,
        "access",
    )


def create_refresh_token(user: Dict[str, Any]) -> str:
    return _encode(
        {"sub": str(user["_id"])},
        settings.refresh_token_secret,
        settings.refresh_token_expiry,
        "refresh",
    )


def decode_token(token: str, secret: str, token_type: str) -> Dict[str, Any]:
    """Decode and check a token. Raises PyJWTError subclasses on failure."""
    payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    if payload.get("token_type") != token_type:
        raise jwt.InvalidTokenError("Wrong token type")
    if not ObjectId.is_valid(payload.get("sub") or ""):
        raise jwt.InvalidTokenError("Malformed subject")
    return payload


def issue_tokens(user_id: ObjectId) -> Dict[str, str]:
    users = get_db()["user"]
    user = users.find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=500, detail="Something went wrong while generating tokens")
    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    users.update_one({"_id": user_id}, {"$set": {"refresh_token": refresh_token}})
    return {"access_token": access_token, "refresh_token": refresh_token}


def set_auth_cookies(response: Response, tokens: Dict[str, str]):
    options = {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
    }
    response.set_cookie(
        ACCESS_COOKIE, tokens["access_token"],
        max_age=int(settings.access_token_expiry.total_seconds()), **options
    )
    response.set_cookie(
        REFRESH_COOKIE, tokens["refresh_token"],
        max_age=int(settings.refresh_token_expiry.total_seconds()), **options
    )


def clear_auth_cookies(response: Response):
    options = {"httponly": True, "secure": settings.cookie_secure, "samesite": settings.cookie_samesite}
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)


def token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def _load_user(token: str) -> Dict[str, Any]:
    try:
        payload = decode_token(token, settings.access_token_secret, "access")
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid access token")

    user = get_db()["user"].find_one({"_id": ObjectId(payload["sub"])}, SAFE_USER_PROJECTION)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid access token - User not found")
    return user


def get_current_user(request: Request) -> Dict[str, Any]:
    token = token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized access - No token provided")
    user = _load_user(token)
    request.state.user = user
    return user


def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    token = token_from_request(request)
    if not token:
        return None
    try:
        user = _load_user(token)
    except HTTPException:
        return None
    request.state.user = user
    return user
