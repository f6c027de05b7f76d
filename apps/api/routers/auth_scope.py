"""Authentication dependencies for scheduler and operator endpoints."""

import secrets
from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import (
    HTTPAuthorizationCredentials,
    HTTPBasic,
    HTTPBasicCredentials,
    HTTPBearer,
)

from config import settings


cron_scheme = HTTPBearer(auto_error=False)
admin_scheme = HTTPBasic(auto_error=False)


@dataclass
class AdminContext:
    username: str


def _matches(supplied: str, expected: str) -> bool:
    if not expected:
        return False
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


async def require_cron_key(
    credentials: HTTPAuthorizationCredentials = Depends(cron_scheme),
) -> None:
    """Accept only ``Authorization: Bearer <CRON_API_KEY>``."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not _matches(credentials.credentials, settings.CRON_API_KEY):
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_admin(
    credentials: HTTPBasicCredentials = Depends(admin_scheme),
) -> AdminContext:
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": 'Basic realm="Admin"'},
        )
    user_ok = _matches(credentials.username, settings.ADMIN_USER)
    password_ok = _matches(credentials.password, settings.ADMIN_PASSWORD)
    if not (user_ok and password_ok):
        raise HTTPException(
            status_code=401,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": 'Basic realm="Admin"'},
        )
    return AdminContext(username=credentials.username)
