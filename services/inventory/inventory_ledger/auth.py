"""
Authentication and authorization for the Inventory service.

Tokens are issued by the Users service; this service only validates them.

Roles:
- any authenticated user: read stock, record movements
- "manager": also correct and reverse recorded movements
- "admin": everything, including registering, editing and deleting items
"""
import logging
from typing import Callable
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .config import SECRET_KEY, ALGORITHM

logger = logging.getLogger(__name__)

security = HTTPBearer()


class CurrentUser(BaseModel):
    """Identity carried by a validated token."""
    id: int
    email: str
    role: str


def decode_token(token: str) -> CurrentUser:
    """
    Validate a bearer token and extract the caller's identity.

    Args:
        token: Encoded JWT

    Returns:
        The user the token was issued to

    Raises:
        HTTPException: 401 if the token is invalid, expired or incomplete
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.error(f"JWT validation error: {e}")
        raise credentials_exception

    claims = (payload.get("sub"), payload.get("email"), payload.get("role"))
    if any(claim is None for claim in claims):
        logger.error("Token is missing the sub, email or role claim")
        raise credentials_exception

    try:
        user_id = int(claims[0])
    except ValueError:
        logger.error(f"Token subject is not a user id: {claims[0]!r}")
        raise credentials_exception

    return CurrentUser(id=user_id, email=claims[1], role=claims[2])


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """FastAPI dependency resolving the caller from the Authorization header."""
    return decode_token(credentials.credentials)


def require_roles(*roles: str) -> Callable[..., CurrentUser]:
    """
    Build a dependency that only lets the given roles through.

    Args:
        *roles: Accepted roles

    Returns:
        FastAPI dependency returning the current user

    Raises:
        HTTPException: 403 from the dependency if the role is not accepted
    """
    def dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            logger.info(f"User {current_user.id} ({current_user.role}) denied, needs one of {roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {' or '.join(roles)}"
            )
        return current_user

    return dependency


require_admin = require_roles("admin")
require_manager = require_roles("admin", "manager")
