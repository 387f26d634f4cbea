"""Signed session tokens carrying the GitHub access token and internal user id."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt

from common.logging import LoggingManager

logger = LoggingManager.get_logger('gitmanager.auth.session')

SESSION_COOKIE_NAME = "gitmanager_session"
ALGORITHM = "HS256"


class InvalidSessionError(Exception):
    """Raised when a session token is missing, malformed, tampered with or expired."""
    pass


@dataclass(frozen=True)
class SessionClaims:
    access_token: str
    user_id: int
    issued_at: datetime
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Issues and validates HS256 session tokens.

    Tokens live for ``max_age`` and are re-issued once they are older than
    ``refresh_after``, so an active user never has to sign in again.
    """

    def __init__(self,
                 secret: str,
                 max_age: timedelta = timedelta(days=30),
                 refresh_after: timedelta = timedelta(hours=24),
                 clock: Callable[[], datetime] = _utcnow):
        if not secret:
            raise ValueError("SESSION_SECRET is required to sign session tokens.")
        self._secret = secret
        self.max_age = max_age
        self.refresh_after = refresh_after
        self._clock = clock

    @classmethod
    def from_config(cls, config) -> "SessionManager":
        return cls(
            config.session_secret,
            max_age=timedelta(days=config.session_max_age_days),
            refresh_after=timedelta(hours=config.session_refresh_hours),
        )

    def issue(self, access_token: str, user_id: int) -> str:
        now = self._clock()
        claims = {
            "accessToken": access_token,
            "userId": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.max_age).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def decode(self, token: Optional[str]) -> SessionClaims:
        if not token:
            raise InvalidSessionError("No session token")
        try:
            # Expiry is checked against our own clock below
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM], options={"verify_exp": False})
        except JWTError as e:
            logger.info(f"Rejected session token: {e}")
            raise InvalidSessionError("Invalid session token") from e

        try:
            session = SessionClaims(
                access_token=claims["accessToken"],
                user_id=int(claims["userId"]),
                issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSessionError("Session token is missing required claims") from e

        if self._clock() >= session.expires_at:
            raise InvalidSessionError("Session has expired")
        return session

    def needs_refresh(self, session: SessionClaims) -> bool:
        return self._clock() - session.issued_at >= self.refresh_after

    def refresh(self, session: SessionClaims) -> str:
        return self.issue(session.access_token, session.user_id)
