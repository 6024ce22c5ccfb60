"""Session lifecycle and its durable storage.

anonymous -> authenticating -> authenticated -> expired -> anonymous
"""
from __future__ import annotations
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from . import config
from .models import User

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class SessionStorage:
    """Bearer token and user identity persisted as a small JSON file."""

    def __init__(self, path: Path | str = config.SESSION_FILE):
        self.path = Path(path)

    def save(self, token: str, user: User) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"token": token, "user": user.model_dump(by_alias=True, mode="json")}
        self.path.write_text(json.dumps(payload), encoding="utf-8")

    def load(self) -> tuple[str, User] | None:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, exc)
            return None

        if not isinstance(payload, dict):
            return None
        token, user = payload.get("token"), payload.get("user")
        if not token or not user:
            return None
        try:
            return token, User.model_validate(user)
        except PydanticValidationError:
            logger.warning("Ignoring session file %s with an invalid user record", self.path)
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


Listener = Callable[[], Any]


class SessionManager:
    def __init__(self, storage: SessionStorage):
        self.storage = storage
        self.state = SessionState.ANONYMOUS
        self.token: str | None = None
        self.user: User | None = None
        self._start_listeners: list[Listener] = []
        self._end_listeners: list[Listener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED and self.token is not None

    @property
    def role(self) -> str | None:
        return self.user.role if self.user else None

    def on_start(self, callback: Listener) -> None:
        self._start_listeners.append(callback)

    def on_end(self, callback: Listener) -> None:
        self._end_listeners.append(callback)

    async def _fire(self, listeners: list[Listener]) -> None:
        for callback in listeners:
            result = callback()
            if hasattr(result, "__await__"):
                await result

    async def restore(self) -> bool:
        stored = self.storage.load()
        if stored is None:
            return False
        self.token, self.user = stored
        self.state = SessionState.AUTHENTICATED
        logger.info("Restored session for %s", self.user.email)
        await self._fire(self._start_listeners)
        return True

    def begin_login(self) -> None:
        self.state = SessionState.AUTHENTICATING

    async def complete_login(self, token: str, user: User) -> None:
        self.storage.save(token, user)
        self.token, self.user = token, user
        self.state = SessionState.AUTHENTICATED
        logger.info("Logged in as %s (%s)", user.email, user.role)
        await self._fire(self._start_listeners)

    def fail_login(self) -> None:
        self.state = SessionState.ANONYMOUS

    def update_user(self, **fields: Any) -> User | None:
        if self.user is None or self.token is None:
            return None
        self.user = self.user.model_copy(update=fields)
        self.storage.save(self.token, self.user)
        return self.user

    async def expire(self) -> bool:
        """Tear the session down after a 401. Returns False if there was none."""
        if self.token is None and self.state is not SessionState.AUTHENTICATED:
            self.storage.clear()
            return False
        self.state = SessionState.EXPIRED
        logger.info("Session expired for %s", self.user.email if self.user else "unknown user")
        await self._end()
        return True

    async def logout(self) -> None:
        logger.info("Logging out %s", self.user.email if self.user else "anonymous session")
        await self._end()

    async def _end(self) -> None:
        self.storage.clear()
        self.token = None
        self.user = None
        self.state = SessionState.ANONYMOUS
        await self._fire(self._end_listeners)
