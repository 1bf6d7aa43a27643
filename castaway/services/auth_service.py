"""Credential issuance and verification.

Accounts are scoped to a realm ("island code"). Successful signup/login yields
an HS256 JWT carrying ``userId`` and ``handle``; the Socket.IO handshake
presents it back.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from flask import current_app

from castaway.logging_utils import get_logger
from castaway.models.models import User
from castaway.services import repository as repo

log = get_logger("auth")

HANDLE_MIN = 3
HANDLE_MAX = 20
PASSWORD_MIN = 6


class AuthError(Exception):
    """Rejected credentials; ``status`` is the HTTP status to answer with."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def valid_realms() -> Optional[set]:
    raw = current_app.config.get("VALID_SERVER_CODES")
    if not raw:
        return None
    return {repo.normalize_realm(code) for code in raw.split(",") if code.strip()}


def check_realm(server_code: Optional[str]) -> str:
    realm = repo.normalize_realm(server_code)
    if not realm:
        raise AuthError("Island code is required", 400)
    allowed = valid_realms()
    if allowed is not None and realm not in allowed:
        raise AuthError("Invalid island code", 400)
    return realm


def check_access_code(access_code: Optional[str]) -> None:
    expected = current_app.config.get("SERVER_ACCESS_CODE")
    if expected and (access_code or "") != expected:
        raise AuthError("ACCESS DENIED: Invalid Server Code.", 403)


def issue_token(user: User) -> str:
    hours = int(current_app.config.get("JWT_EXPIRES_HOURS", 24 * 7))
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user.id,
        "handle": user.handle,
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm="HS256")


def verify_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the token's claims, or None for a missing/expired/invalid token."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        log.info(event="token_expired")
        return None
    except jwt.InvalidTokenError as exc:
        log.info(event="token_invalid", error=str(exc))
        return None
    if not isinstance(claims.get("userId"), int):
        return None
    return claims


def signup(handle: str, password: str, server_code: str) -> User:
    realm = check_realm(server_code)
    handle = (handle or "").strip()
    if not HANDLE_MIN <= len(handle) <= HANDLE_MAX:
        raise AuthError(f"Handle must be between {HANDLE_MIN} and {HANDLE_MAX} characters")
    if len(password or "") < PASSWORD_MIN:
        raise AuthError(f"Password must be at least {PASSWORD_MIN} characters")
    if handle.lower() == repo.SYSTEM_HANDLE or repo.get_user_by_handle(handle, realm):
        raise AuthError("Handle already taken on this island")
    user = repo.create_user(handle, password, realm)
    repo.ensure_genesis(realm)
    log.info(event="signup", user_id=user.id, realm=realm)
    return user


def login(handle: str, password: str, server_code: str) -> User:
    realm = check_realm(server_code)
    user = repo.get_user_by_handle(handle, realm)
    if user is None:
        other = User.query.filter(User.handle == (handle or "").strip(), User.server_code != realm).first()
        if other is not None and other.check_password(password or ""):
            raise AuthError("Invalid island code for this user", 401)
        raise AuthError("Invalid credentials", 401)
    if not user.check_password(password or ""):
        raise AuthError("Invalid credentials", 401)
    log.info(event="login", user_id=user.id, realm=realm)
    return user
