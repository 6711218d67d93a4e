"""Process-wide authentication state for the portal client.

The store is the only writer of the session. Token and user are kept in one
``Session`` value so they are always set or cleared together; the value is
mirrored to a JSON file so a restarted client resumes the session.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from pydantic import ValidationError as SchemaValidationError

from civic_portal.core import config
from civic_portal.core.errors import PortalError
from civic_portal.core.repository import Authenticator
from civic_portal.core.schemas import Actor, Credentials, Session

logger = logging.getLogger(__name__)

SessionListener = Callable[[Session | None], None]


class SessionStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._session: Session | None = None
        self._listeners: list[SessionListener] = []
        self._load()

    @classmethod
    def from_config(cls) -> "SessionStore":
        return cls(path=config.SESSION_FILE)

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def token(self) -> str | None:
        return self._session.token if self._session else None

    @property
    def user(self) -> Actor | None:
        return self._session.user if self._session else None

    def is_authenticated(self, now: datetime | None = None) -> bool:
        return self._session is not None and not self._session.is_expired(now)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def login(self, authenticator: Authenticator, credentials: Credentials) -> Session:
        result = await authenticator.login(credentials)
        session = Session(token=result.access_token, user=result.user, expires_at=result.expires_at)
        self._replace(session)
        logger.info("User %s logged in as %s.", session.user.id, session.user.role.value)
        return session

    async def logout(self, authenticator: Authenticator | None = None) -> None:
        """End the session locally even when the remote logout fails."""
        try:
            if authenticator is not None and self._session is not None:
                await authenticator.logout()
        except PortalError as exc:
            logger.warning("Remote logout failed: %s", exc)
        finally:
            if self._session is not None:
                self._replace(None)

    def handle_authentication_failure(self) -> None:
        if self._session is None:
            return
        logger.info("Session for user %s was rejected; logging out.", self._session.user.id)
        self._replace(None)

    def _replace(self, session: Session | None) -> None:
        self._session = session
        self._persist()
        for listener in list(self._listeners):
            listener(session)

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            session = Session.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, SchemaValidationError) as exc:
            logger.warning("Discarding unreadable session file %s: %s", self._path, exc)
            self._remove_file()
            return

        if session.is_expired():
            self._remove_file()
            return
        self._session = session

    def _persist(self) -> None:
        if self._path is None:
            return
        if self._session is None:
            self._remove_file()
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(self._session.model_dump_json(), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not persist session to %s: %s", self._path, exc)

    def _remove_file(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove session file %s: %s", self._path, exc)
