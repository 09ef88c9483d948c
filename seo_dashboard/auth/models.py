"""
Dashboard users.

Every domain, audit, scan and campaign row is owned by a user_id that points
here. Rows are created the first time a token's `sub` is seen.
"""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, String, Boolean, DateTime, Enum, Index

from ..database.models import Base


class UserRole(enum.Enum):
    USER = "user"
    # Admins pass require_admin; the dev user is one
    ADMIN = "admin"


class User(Base):
    """Owner of dashboard data, keyed by the bearer token's `sub`."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))

    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    # Disabled users get 403 even with a valid token
    is_active = Column(Boolean, default=True, nullable=False)

    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_email", "email"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"
