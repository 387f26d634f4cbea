"""Persistence of users and their safety preferences."""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from common.logging import LoggingManager
from gitmanager.models.user import Base, User, UserSettings, utcnow

logger = LoggingManager.get_logger('gitmanager.settings_store')


@dataclass(frozen=True)
class UserPreferences:
    """Safety preferences that apply to one user's actions."""
    require_repo_delete_confirmation: bool = True
    disable_bulk_operations: bool = False

    @classmethod
    def defaults(cls) -> "UserPreferences":
        return cls()

    @classmethod
    def from_settings(cls, settings: Optional[UserSettings]) -> "UserPreferences":
        if settings is None:
            return cls.defaults()
        return cls(
            require_repo_delete_confirmation=settings.require_repo_delete_confirmation,
            disable_bulk_operations=settings.disable_bulk_operations,
        )


def create_store_engine(db_url: str):
    """Creates an engine; in-memory SQLite is pinned to one shared connection."""
    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_url or db_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(db_url, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(db_url, pool_pre_ping=True)


class SettingsStore:
    """Create/read/update access to users and user settings."""

    def __init__(self, db_url: str, clock: Callable[[], datetime] = utcnow):
        """Initialize the store.

        Args:
            db_url: SQLAlchemy database URL.
            clock: Returns the timestamp written to created_at/updated_at.
        """
        self.db_url = db_url
        self.clock = clock
        logger.info("Initializing settings store database connection")
        self.engine = create_store_engine(db_url)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_schema(self) -> None:
        """Creates missing tables. Production databases are managed with Alembic."""
        Base.metadata.create_all(self.engine)

    def ping(self) -> bool:
        session: Session = self.Session()
        try:
            session.query(User.id).limit(1).all()
            return True
        finally:
            session.close()

    def _get_user_by_github_id(self, session: Session, github_id: str) -> Optional[User]:
        return session.query(User).filter(User.github_id == github_id).first()

    def find_or_create_user(self, github_id: str, email: str, name: Optional[str] = None) -> User:
        """Returns the user with this GitHub id, creating it with default settings if needed.

        The user row and its settings row are written in the same transaction.
        """
        session: Session = self.Session()
        try:
            existing = self._get_user_by_github_id(session, github_id)
            if existing:
                logger.debug(f"Found existing user {existing.id} for GitHub id {github_id}")
                return existing

            now = self.clock()
            user = User(github_id=github_id, email=email, name=name or None,
                        created_at=now, updated_at=now)
            user.settings = UserSettings(
                require_repo_delete_confirmation=True,
                disable_bulk_operations=False,
                created_at=now,
                updated_at=now,
            )
            session.add(user)
            try:
                session.commit()
            except IntegrityError:
                # Another sign-in may have created the same user concurrently
                session.rollback()
                existing = self._get_user_by_github_id(session, github_id)
                if existing is None:
                    raise
                return existing
            logger.info(f"Created user {user.id} for GitHub id {github_id}")
            return user
        except Exception as e:
            logger.error(f"Error finding or creating user for GitHub id {github_id}: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def get_settings(self, user_id: int) -> Optional[UserSettings]:
        """Returns the user's settings row, or None (callers then apply defaults)."""
        session: Session = self.Session()
        try:
            return session.query(UserSettings).filter(UserSettings.user_id == user_id).first()
        finally:
            session.close()

    def get_preferences(self, user_id: Optional[int]) -> UserPreferences:
        if user_id is None:
            return UserPreferences.defaults()
        return UserPreferences.from_settings(self.get_settings(user_id))

    def update_settings(self, user_id: int, **fields) -> Optional[UserSettings]:
        """Merges the given fields into the user's settings and stamps updated_at.

        Fields that are not passed keep their current value. Passing no fields
        only refreshes updated_at.

        Raises:
            ValueError: If a field name is not an updatable setting.
        """
        unknown = set(fields) - set(UserSettings.UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings field(s): {', '.join(sorted(unknown))}")

        session: Session = self.Session()
        try:
            settings = session.query(UserSettings).filter(UserSettings.user_id == user_id).first()
            if settings is None:
                logger.warning(f"No settings row for user {user_id}; nothing updated")
                return None
            for key, value in fields.items():
                if value is not None:
                    setattr(settings, key, bool(value))
            settings.updated_at = self.clock()
            session.commit()
            logger.info(f"Updated settings for user {user_id}: {sorted(fields)}")
            return settings
        except Exception as e:
            logger.error(f"Error updating settings for user {user_id}: {e}")
            session.rollback()
            raise
        finally:
            session.close()
