"""
Bearer token checks for the dashboard API.

A token is accepted when its HMAC signature matches JWT_SECRET, its audience
matches JWT_AUDIENCE and it carries a non-empty `sub`, which becomes the
dashboard user id.
"""

import logging
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWTError

from .config import SHARED_SECRET_ALGORITHMS, get_auth_config

logger = logging.getLogger(__name__)

# Checked in order, so subclasses come before DecodeError
_REJECTIONS = (
    (jwt.ExpiredSignatureError, "Token has expired"),
    (jwt.InvalidAudienceError, "Invalid token audience"),
    (jwt.InvalidSignatureError, "Invalid token signature"),
    (jwt.ImmatureSignatureError, "Token is not valid yet"),
)


class JWTError(Exception):
    """Token rejected; the message is returned to the client with a 401."""
    pass


def verify_token(token: str) -> Dict[str, Any]:
    """
    Check a bearer token and return its claims.

    Raises:
        JWTError: secret missing, unsupported algorithm, or a rejected token
    """
    config = get_auth_config()
    if not config.jwt_secret:
        raise JWTError("JWT_SECRET not configured")
    if config.jwt_algorithm not in SHARED_SECRET_ALGORITHMS:
        raise JWTError(f"Unsupported JWT_ALGORITHM {config.jwt_algorithm}; expected one of HS256/HS384/HS512")

    try:
        claims = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
            leeway=config.jwt_leeway,
        )
    except PyJWTError as e:
        for error_type, message in _REJECTIONS:
            if isinstance(e, error_type):
                raise JWTError(message)
        if isinstance(e, jwt.DecodeError):
            raise JWTError(f"Token decode error: {e}")
        raise JWTError(f"Token validation error: {e}")

    if not claims.get("sub"):
        raise JWTError("Token missing 'sub' claim (user ID)")

    return claims


def _display_name(claims: Dict[str, Any]) -> Optional[str]:
    profile = claims.get("user_metadata") or {}
    return claims.get("name") or profile.get("full_name") or profile.get("name")


def extract_user_info(claims: Dict[str, Any]) -> Dict[str, Any]:
    """Map verified claims onto User columns. Tokens without an email get a placeholder address."""
    user_id = claims.get("sub")
    return {
        "id": user_id,
        "email": claims.get("email") or f"{user_id}@users.local",
        "name": _display_name(claims),
    }
