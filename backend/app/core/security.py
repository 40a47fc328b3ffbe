"""
Security and Authentication for the YachtOps API.

Tokens are issued by the external identity platform; this module only
verifies bearer JWTs and maps roles to scopes.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, List

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import OAuth2PasswordBearer, SecurityScopes
from jose import JWTError, jwt
from pydantic import BaseModel

from backend.app.core.config import get_settings
from backend.app.core.logging import user_id_ctx

settings = get_settings()

# Cross-module integration scopes
INTEGRATION_READ = "integration:read"
INTEGRATION_WRITE = "integration:write"
FINANCE_WRITE = "finance:write"

_SCOPE_DESCRIPTIONS = {
    INTEGRATION_READ: "Read integrated job views, health and insights",
    INTEGRATION_WRITE: "Run cross-module write-back synchronization",
    FINANCE_WRITE: "Create finance transactions for jobs",
}

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", scopes=_SCOPE_DESCRIPTIONS)
optional_oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="auth/token", scopes=_SCOPE_DESCRIPTIONS, auto_error=False
)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Generate a signed JWT token.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


# Role definitions
class Role:
    ADMIN = "admin"
    FLEET_MANAGER = "fleet_manager"
    ENGINEER = "engineer"
    CREW = "crew"
    VIEWER = "viewer"

ROLE_SCOPES = {
    Role.ADMIN: [INTEGRATION_READ, INTEGRATION_WRITE, FINANCE_WRITE],
    Role.FLEET_MANAGER: [INTEGRATION_READ, INTEGRATION_WRITE, FINANCE_WRITE],
    Role.ENGINEER: [INTEGRATION_READ, INTEGRATION_WRITE],
    Role.CREW: [INTEGRATION_READ],
    Role.VIEWER: [INTEGRATION_READ],
}


class User(BaseModel):
    id: str
    role: str
    scopes: List[str] = []


def _decode_token(token: str) -> User:
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        raise JWTError("Token has no subject")
    role: str = payload.get("role", Role.VIEWER)
    # Assign scopes based on role if not present in token
    scopes = payload.get("scopes", ROLE_SCOPES.get(role, []))
    return User(id=user_id, role=role, scopes=scopes)


async def get_current_user(
    security_scopes: SecurityScopes,
    token: str = Depends(oauth2_scheme)
) -> User:
    """
    Validate JWT token and check required scopes based on Role-Based Access Control.
    """
    if security_scopes.scopes:
        authenticate_value = f'Bearer scope="{security_scopes.scope_str}"'
    else:
        authenticate_value = "Bearer"

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": authenticate_value},
    )

    try:
        user = _decode_token(token)
    except JWTError:
        raise credentials_exception

    for scope in security_scopes.scopes:
        if scope not in user.scopes:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Not enough permissions. Required scope: {scope}",
                headers={"WWW-Authenticate": authenticate_value},
            )

    user_id_ctx.set(user.id)
    return user


async def get_user_id(token: Optional[str] = Security(optional_oauth2_scheme)) -> str:
    """
    Resolve the caller's identity without requiring one.
    Missing or invalid tokens resolve to the anonymous sentinel.
    """
    user_id = settings.anonymous_user_id
    if token:
        try:
            user_id = _decode_token(token).id
        except JWTError:
            pass
    user_id_ctx.set(user_id)
    return user_id
