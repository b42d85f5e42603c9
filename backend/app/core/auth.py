"""
Authentication dependency for the POS backend
Decodes the session JWT issued by the login service and provides the actor context
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from app.core.config import settings
from app.domain.actor import Actor


# Security scheme for bearer tokens
security = HTTPBearer(auto_error=False)


class AuthConfig:
    """Authentication configuration"""

    @staticmethod
    def get_auth_secret() -> str:
        """Get the AUTH_SECRET from settings"""
        secret = settings.AUTH_SECRET
        if not secret:
            raise ValueError("AUTH_SECRET environment variable is not set")
        return secret

    @staticmethod
    def get_jwt_algorithm() -> str:
        return settings.JWT_ALGORITHM


def decode_session_token(token: str) -> dict:
    """
    Decode and validate a session JWT.

    Expected payload:
    {
        "sub": "employee_id",
        "name": "Dana Cashier",
        "role": "supervisor",
        "permissions": ["manage_inventory"],
        "exp": 1234567890
    }
    """
    try:
        return jwt.decode(
            token,
            AuthConfig.get_auth_secret(),
            algorithms=[AuthConfig.get_jwt_algorithm()],
            options={"verify_aud": False}
        )
    except JWTError as e:
        error_msg = str(e).lower()
        if "expired" in error_msg:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"}
            )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"}
        )


def actor_from_payload(payload: dict) -> Actor:
    actor_id = payload.get("id") or payload.get("sub")
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload: missing employee id",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return Actor.for_role(
        actor_id=str(actor_id),
        role=payload.get("role", "cashier"),
        extra=payload.get("permissions") or [],
        name=payload.get("name"),
    )


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Actor:
    """
    Dependency that extracts the current actor from the bearer token.

    Usage:
        @router.post("/")
        async def checkout(actor: Actor = Depends(get_current_actor)):
            ...
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    payload = decode_session_token(credentials.credentials)
    return actor_from_payload(payload)


def require_permission(permission: str):
    """
    Dependency factory for permission-based access control.

    Usage:
        @router.put("/{transaction_id}/void")
        async def void(actor: Actor = Depends(require_permission("void_transactions"))):
            ...
    """
    async def permission_checker(
        actor: Actor = Depends(get_current_actor)
    ) -> Actor:
        if not actor.can(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required permission: {permission}"
            )
        return actor

    return permission_checker
