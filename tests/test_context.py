import asyncio, json, pathlib

import pytest, respx, httpx

from appointments_client import appointments
from appointments_client.context import AppContext
from appointments_client.errors import AuthenticationError, FormValidationError, NetworkError
from appointments_client.forms import REQUIRED
from appointments_client.models import User
from appointments_client.permissions import Capability
from appointments_client.session import SessionState, SessionStorage

FIX = pathlib.Path(__file__).parent / "fixtures"
BASE = "http://backend.test"
LOGIN = json.loads((FIX / "login_operator.json").read_text())


def _context(tmp_path, redirects):
    return AppContext(BASE, session_file=tmp_path / "session.json", poll_interval=3600, navigate=redirects.append)


@pytest.mark.asyncio
async def test_login_starts_polling_and_persists_session(tmp_path):
    redirects = []
    with respx.mock(base_url=BASE) as m:
        login = m.post("/auth/login").respond(200, json=LOGIN)
        m.get("/api/notifications/me").respond(200, json=[{"id": 1, "message": "hi", "isRead": False}])
        async with _context(tmp_path, redirects) as ctx:
            user = await ctx.login("Operator@Example.com ", "secret1")

            assert user.role == "OPERARIO"
            assert ctx.state is SessionState.AUTHENTICATED
            assert ctx.notifications.poller.running
            assert ctx.notifications.unread_count == 1
            assert ctx.can(Capability.MANAGE_SCHEDULE)
            assert json.loads(login.calls.last.request.content)["email"] == "operator@example.com"
            assert (tmp_path / "session.json").exists()

        assert not ctx.notifications.poller.running
    assert redirects == []


@pytest.mark.asyncio
async def test_every_401_clears_session_and_redirects_once(tmp_path):
    redirects = []
    with respx.mock(base_url=BASE) as m:
        m.post("/auth/login").respond(200, json=LOGIN)
        m.get("/api/notifications/me").respond(200, json=[])
        m.get("/api/appointments").respond(401)
        async with _context(tmp_path, redirects) as ctx:
            await ctx.login("operator@example.com", "secret1")

            with pytest.raises(AuthenticationError):
                await appointments.list_appointments(ctx.api)

            assert redirects == ["/login"]
            assert ctx.state is SessionState.ANONYMOUS
            assert ctx.session.token is None
            assert not ctx.notifications.poller.running
            assert SessionStorage(tmp_path / "session.json").load() is None

            # a later 401 is a separate failure with its own redirect
            with pytest.raises(AuthenticationError):
                await appointments.list_appointments(ctx.api)
            assert redirects == ["/login", "/login"]


@pytest.mark.asyncio
async def test_login_fails_when_first_notification_load_gets_401(tmp_path):
    redirects = []
    with respx.mock(base_url=BASE) as m:
        m.post("/auth/login").respond(200, json=LOGIN)
        m.get("/api/notifications/me").respond(401)
        async with _context(tmp_path, redirects) as ctx:
            with pytest.raises(AuthenticationError):
                await ctx.login("operator@example.com", "secret1")

            assert ctx.state is SessionState.ANONYMOUS
            assert ctx.navigation() == []
            assert not ctx.notifications.poller.running

    assert redirects == ["/login"]
    assert SessionStorage(tmp_path / "session.json").load() is None


@pytest.mark.asyncio
async def test_401_while_polling_ends_session(tmp_path):
    redirects = []
    with respx.mock(base_url=BASE) as m:
        m.post("/auth/login").respond(200, json=LOGIN)
        m.get("/api/notifications/me").respond(200, json=[])
        unread = m.get("/api/notifications/me/unread-count").respond(401)
        ctx = AppContext(BASE, session_file=tmp_path / "session.json", poll_interval=0.01, navigate=redirects.append)
        async with ctx:
            await ctx.login("operator@example.com", "secret1")
            await asyncio.sleep(0.08)

            assert unread.call_count == 1
            assert ctx.state is SessionState.ANONYMOUS
            assert not ctx.notifications.poller.running

    assert redirects == ["/login"]


@pytest.mark.asyncio
async def test_wrong_credentials_leave_session_anonymous(tmp_path):
    redirects = []
    with respx.mock(base_url=BASE) as m:
        m.post("/auth/login").respond(401, json={"message": "Invalid credentials"})
        async with _context(tmp_path, redirects) as ctx:
            with pytest.raises(AuthenticationError) as exc_info:
                await ctx.login("ana@example.com", "wrong-password")

            assert exc_info.value.message == "Invalid credentials"
            assert ctx.state is SessionState.ANONYMOUS
    assert redirects == []


@pytest.mark.asyncio
async def test_login_with_empty_field_makes_no_request(tmp_path):
    with respx.mock(base_url=BASE, assert_all_called=False) as m:
        login = m.post("/auth/login").respond(200, json=LOGIN)
        async with _context(tmp_path, []) as ctx:
            with pytest.raises(FormValidationError) as exc_info:
                await ctx.login("ana@example.com", "   ")

    assert exc_info.value.errors == {"password": REQUIRED}
    assert not login.called
    assert len(m.calls) == 0


@pytest.mark.asyncio
async def test_network_failure_during_login(tmp_path):
    with respx.mock(base_url=BASE) as m:
        m.post("/auth/login").mock(side_effect=httpx.ConnectTimeout)
        async with _context(tmp_path, []) as ctx:
            with pytest.raises(NetworkError):
                await ctx.login("ana@example.com", "secret1")
            assert ctx.state is SessionState.ANONYMOUS


@pytest.mark.asyncio
async def test_restored_session_and_logout(tmp_path):
    storage = SessionStorage(tmp_path / "session.json")
    storage.save("tok", User(id=1, full_name="Admin", email="admin@example.com", role={"name": "admin"}))
    redirects = []
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(200, json=[])
        async with _context(tmp_path, redirects) as ctx:
            assert ctx.is_authenticated
            assert ctx.role == "ADMIN"
            assert [e.key for e in ctx.navigation()][-1] == "profile"

            await ctx.logout()
            assert not ctx.is_authenticated
            assert not ctx.notifications.poller.running

    assert redirects == ["/login"]
    assert not storage.path.exists()


@pytest.mark.asyncio
async def test_refresh_profile_updates_stored_user(tmp_path):
    storage = SessionStorage(tmp_path / "session.json")
    storage.save("tok", User(id=3, full_name="Ana", email="ana@example.com", role="USUARIO"))
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(200, json=[])
        m.get("/api/users/me").respond(
            200, json={"id": 3, "fullName": "Ana Lopez", "email": "ana@example.com", "role": "USUARIO", "reminderHours": 2}
        )
        async with _context(tmp_path, []) as ctx:
            profile = await ctx.refresh_profile()

    assert profile.full_name == "Ana Lopez"
    assert storage.load()[1].reminder_hours == 2
