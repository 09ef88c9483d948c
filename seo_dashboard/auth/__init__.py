"""
Authentication and Authorization

Bearer JWT auth for the dashboard API:
- Tokens are HS256 JWTs signed with JWT_SECRET
- Users are synced to the local database on first access
- AUTH_ENABLED=false swaps in a local development user

Usage:
    @router.get("/domains")
    def list_domains(current_user: User = Depends(get_current_user)):
        ...
"""

from .config import AuthConfig, get_auth_config
from .jwt import verify_token, JWTError
from .models import User, UserRole
from .dependencies import get_current_user, require_admin, sync_user

__all__ = [
    "AuthConfig",
    "get_auth_config",
    "verify_token",
    "JWTError",
    "User",
    "UserRole",
    "get_current_user",
    "require_admin",
    "sync_user",
]
