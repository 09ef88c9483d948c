"""
FastAPI Authentication Dependencies

Provides dependency injection for authentication and authorization.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..database.session import get_db
from .config import get_auth_config
from .jwt import JWTError, extract_user_info, verify_token
from .models import User, UserRole

logger = logging.getLogger(__name__)

# HTTP Bearer token extraction
security = HTTPBearer(auto_error=False)


def sync_user(db: Session, payload: Dict[str, Any]) -> User:
    """Create the user on first access, refresh last login afterwards."""
    info = extract_user_info(payload)
    user = db.query(User).filter(User.id == info["id"]).first()

    if user is None:
        logger.info(f"Creating new user: {info['email']}")
        user = User(
            id=info["id"],
            email=info["email"],
            name=info["name"],
            role=UserRole.USER,
            is_active=True,
            last_login_at=datetime.utcnow(),
        )
        db.add(user)
    else:
        user.name = info["name"] or user.name
        user.last_login_at = datetime.utcnow()

    db.commit()
    db.refresh(user)
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Get the current authenticated user.

    Raises:
        HTTPException 401: If not authenticated
        HTTPException 403: If user is disabled
    """
    config = get_auth_config()

    if not config.auth_enabled:
        return _get_dev_user(db)

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = verify_token(credentials.credentials)
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = sync_user(db, payload)
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return user


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Require the current user to be an admin.

    Raises:
        HTTPException 403: If user is not an admin
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def _get_dev_user(db: Session) -> User:
    """Get or create the development user used when auth is disabled."""
    dev_email = get_auth_config().dev_user_email
    user = db.query(User).filter(User.email == dev_email).first()

    if not user:
        user = User(
            email=dev_email,
            name="Development User",
            role=UserRole.ADMIN,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

    return user
