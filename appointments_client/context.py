"""The application object handed to every view.

It owns the HTTP client, the session and the notification store, and ties
their lifecycles together: polling runs only while a session is
authenticated, and any 401 tears the session down and sends the user to the
login view.
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Callable

import httpx

from . import auth
from . import config
from . import permissions
from .client import ApiClient
from .errors import ApiError, AuthenticationError
from .forms import LoginForm, RegisterForm, require_valid
from .models import User
from .notification_store import NotificationStore
from .session import SessionManager, SessionState, SessionStorage

logger = logging.getLogger(__name__)

Navigator = Callable[[str], Any]


def _log_navigation(path: str) -> None:
    logger.info("Redirecting to %s", path)


class AppContext:
    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        session_file: Path | str = config.SESSION_FILE,
        poll_interval: float = config.NOTIFICATION_POLL_INTERVAL,
        navigate: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.navigate = navigate or _log_navigation
        self.session = SessionManager(SessionStorage(session_file))
        self.api = ApiClient(
            base_url,
            token_provider=lambda: self.session.token,
            on_unauthorized=self._handle_unauthorized,
            transport=transport,
        )
        self.notifications = NotificationStore(self.api, interval=poll_interval)
        self.session.on_start(self.notifications.start)
        self.session.on_end(self.notifications.stop)

    @property
    def user(self) -> User | None:
        return self.session.user

    @property
    def role(self) -> str | None:
        return self.session.role

    async def init(self) -> None:
        """Restore a stored session; polling starts if there is one."""
        await self.session.restore()

    async def teardown(self) -> None:
        await self.notifications.stop()
        await self.api.aclose()

    async def __aenter__(self) -> "AppContext":
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.teardown()

    async def _handle_unauthorized(self, error: AuthenticationError) -> None:
        await self.session.expire()
        self.navigate(permissions.LOGIN_PATH)

    async def login(self, email: str, password: str) -> User:
        """Validate the form, authenticate and persist the session.

        Raises ``FormValidationError`` before any request when the form is
        incomplete, or the classified ``ApiError`` when the backend refuses.
        """
        form = require_valid(LoginForm, {"email": email, "password": password})
        self.session.begin_login()
        try:
            result = await auth.login(self.api, form.email, form.password)
        except ApiError:
            self.session.fail_login()
            raise
        user = result.to_user()
        await self.session.complete_login(result.token, user)
        if not self.session.is_authenticated:
            # a 401 on the first notification load already ended the session
            raise AuthenticationError()
        return user

    async def register(self, full_name: str, email: str, password: str) -> User | None:
        form = require_valid(RegisterForm, {"full_name": full_name, "email": email, "password": password})
        return await auth.register(self.api, form.full_name, form.email, form.password)

    async def logout(self) -> None:
        await self.session.logout()
        self.navigate(permissions.LOGIN_PATH)

    async def refresh_profile(self) -> User:
        """Reload the current user from the backend and keep the stored copy in sync."""
        profile = await auth.get_profile(self.api)
        updated = self.session.update_user(**profile.model_dump(exclude_unset=True))
        return updated or profile

    def capabilities(self) -> frozenset[permissions.Capability]:
        return permissions.capabilities(self.role)

    def can(self, capability: permissions.Capability) -> bool:
        return capability in self.capabilities()

    def navigation(self) -> list[permissions.NavEntry]:
        return permissions.navigation(self.role, self.notifications.unread_count)

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    @property
    def state(self) -> SessionState:
        return self.session.state
