from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from ridematch.config import get_settings

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)

ROLES = {"driver", "passenger"}


def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    """Sign a JWT carrying `sub` and `role`; `exp` defaults to the configured TTL."""
    claims = dict(data)
    ttl = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    claims.setdefault("exp", datetime.now(timezone.utc) + timedelta(minutes=ttl))
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """Decode the Bearer token and check it names a subject with a known role."""
    if credentials is None:
        raise _unauthorized("Missing Bearer token")
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise _unauthorized("Invalid or expired token")
    if not payload.get("sub") or payload.get("role") not in ROLES:
        raise _unauthorized("Invalid token payload")
    return payload


def require_role(role: str):
    """Dependency factory returning the token subject when it carries `role`."""

    async def dependency(token_data: dict = Depends(get_current_user)) -> str:
        if token_data["role"] != role:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"{role.capitalize()} token required")
        return token_data["sub"]

    return dependency


get_current_passenger = require_role("passenger")
get_current_driver = require_role("driver")
