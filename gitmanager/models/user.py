"""SQLAlchemy models for users and their settings."""
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(Text, nullable=True)
    github_id = Column(String(50), nullable=True, unique=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    settings = relationship(
        "UserSettings",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', github_id='{self.github_id}')>"


class UserSettings(Base):
    __tablename__ = 'user_settings'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True, index=True)
    require_repo_delete_confirmation = Column(Boolean, nullable=False, default=True)
    disable_bulk_operations = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="settings")

    # Columns a caller may change through SettingsStore.update_settings
    UPDATABLE_FIELDS = ("require_repo_delete_confirmation", "disable_bulk_operations")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'require_repo_delete_confirmation': self.require_repo_delete_confirmation,
            'disable_bulk_operations': self.disable_bulk_operations,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return (f"<UserSettings(user_id={self.user_id}, "
                f"require_repo_delete_confirmation={self.require_repo_delete_confirmation}, "
                f"disable_bulk_operations={self.disable_bulk_operations})>")
