"""
Dashboard auth settings.

The API trusts bearer tokens signed with one shared HMAC secret (JWT_SECRET).
With AUTH_ENABLED=false every request runs as a local development user.
"""

import os
from functools import lru_cache

from pydantic_settings import BaseSettings

# Only shared-secret signatures can be checked against JWT_SECRET
SHARED_SECRET_ALGORITHMS = ("HS256", "HS384", "HS512")


class AuthConfig(BaseSettings):
    """Bearer token settings for the dashboard API."""

    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    # Seconds of clock skew tolerated on exp/iat
    jwt_leeway: int = 0

    auth_enabled: bool = True
    dev_user_email: str = "dev@seo-dashboard.local"

    class Config:
        env_prefix = ""
        extra = "ignore"

    @property
    def is_configured(self) -> bool:
        return bool(self.jwt_secret) and self.jwt_algorithm in SHARED_SECRET_ALGORITHMS


@lru_cache()
def get_auth_config() -> AuthConfig:
    return AuthConfig(
        jwt_secret=os.getenv("JWT_SECRET", ""),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256").upper(),
        jwt_audience=os.getenv("JWT_AUDIENCE", "authenticated"),
        jwt_leeway=int(os.getenv("JWT_LEEWAY", "0")),
        auth_enabled=os.getenv("AUTH_ENABLED", "true").lower() == "true",
        dev_user_email=os.getenv("DEV_USER_EMAIL", "dev@seo-dashboard.local"),
    )
