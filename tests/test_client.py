import pytest, respx, httpx

from appointments_client import errors
from appointments_client.client import ApiClient, as_message, unwrap

BASE = "http://backend.test"


@pytest.mark.asyncio
async def test_bearer_token_sent_on_authenticated_requests():
    with respx.mock(base_url=BASE) as m:
        route = m.get("/api/categories").respond(200, json=[])
        async with ApiClient(BASE, token_provider=lambda: "tok-1") as api:
            assert await api.get("/api/categories") == []

    assert route.calls.last.request.headers["Authorization"] == "Bearer tok-1"


@pytest.mark.asyncio
async def test_login_request_carries_no_token():
    with respx.mock(base_url=BASE) as m:
        route = m.post("/auth/login").respond(200, json={"token": "t"})
        async with ApiClient(BASE, token_provider=lambda: "stale") as api:
            await api.post("/auth/login", json={}, authenticated=False)

    assert "Authorization" not in route.calls.last.request.headers


@pytest.mark.asyncio
async def test_query_params_drop_none_and_lowercase_booleans():
    with respx.mock(base_url=BASE) as m:
        route = m.get("/api/appointments").respond(200, json=[])
        async with ApiClient(BASE) as api:
            await api.get("/api/appointments", params={"includeDeleted": False, "startDate": None})

    params = route.calls.last.request.url.params
    assert params["includeDeleted"] == "false"
    assert "startDate" not in params


@pytest.mark.asyncio
async def test_empty_body_returns_none():
    with respx.mock(base_url=BASE) as m:
        m.delete("/api/categories/3").respond(204)
        m.patch("/api/notifications/1/read").respond(200)
        async with ApiClient(BASE) as api:
            assert await api.delete("/api/categories/3") is None
            assert await api.patch("/api/notifications/1/read", json={}) is None


@pytest.mark.asyncio
async def test_non_json_success_body_is_an_api_error():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/categories").respond(200, text="<html>maintenance</html>")
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            with pytest.raises(errors.UnexpectedResponseError) as exc_info:
                await api.get("/api/categories")

    assert isinstance(exc_info.value, errors.ServerError)
    assert exc_info.value.status == 200
    assert exc_info.value.message == errors.GENERIC_MESSAGE


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, body, expected, message",
    [
        (401, {"message": "Token expired"}, errors.AuthenticationError, errors.SESSION_EXPIRED_MESSAGE),
        (403, None, errors.ForbiddenError, errors.FORBIDDEN_MESSAGE),
        (404, {"message": "No such appointment"}, errors.NotFoundError, errors.NOT_FOUND_MESSAGE),
        (500, {"message": "NullPointerException"}, errors.ServerError, errors.SERVER_MESSAGE),
        (503, None, errors.ServerError, errors.SERVER_MESSAGE),
        (400, {"message": "The date cannot be in the past"}, errors.ValidationError, "The date cannot be in the past"),
        (409, {"error": "Operator already booked"}, errors.ValidationError, "Operator already booked"),
        (422, None, errors.ValidationError, errors.GENERIC_MESSAGE),
    ],
)
async def test_error_taxonomy(status, body, expected, message):
    with respx.mock(base_url=BASE) as m:
        m.get("/api/appointments/1").respond(status, json=body)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            with pytest.raises(expected) as exc_info:
                await api.get("/api/appointments/1")

    assert exc_info.value.status == status
    assert exc_info.value.message == message


@pytest.mark.asyncio
async def test_transport_failure_is_a_network_error():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/users/me").mock(side_effect=httpx.ConnectError)
        async with ApiClient(BASE) as api:
            with pytest.raises(errors.NetworkError) as exc_info:
                await api.get("/api/users/me")

    assert exc_info.value.status == 0
    assert exc_info.value.message == errors.NETWORK_MESSAGE


@pytest.mark.asyncio
async def test_unauthorized_hook_runs_once_per_401():
    seen = []

    async def on_unauthorized(error):
        seen.append(error)

    with respx.mock(base_url=BASE) as m:
        m.get("/api/users/me").respond(401)
        async with ApiClient(BASE, token_provider=lambda: "tok", on_unauthorized=on_unauthorized) as api:
            with pytest.raises(errors.AuthenticationError):
                await api.get("/api/users/me")

    assert len(seen) == 1


@pytest.mark.asyncio
async def test_wrong_credentials_keep_backend_message_and_skip_hook():
    seen = []
    with respx.mock(base_url=BASE) as m:
        m.post("/auth/login").respond(401, json={"message": "Invalid credentials"})
        async with ApiClient(BASE, on_unauthorized=seen.append) as api:
            with pytest.raises(errors.AuthenticationError) as exc_info:
                await api.post("/auth/login", json={}, authenticated=False)

    assert exc_info.value.message == "Invalid credentials"
    assert seen == []


def test_unwrap_envelope():
    assert unwrap({"success": True, "message": "ok", "data": [1, 2]}) == [1, 2]
    assert unwrap([1, 2]) == [1, 2]
    # no data: the envelope itself is the answer
    envelope = {"success": False, "message": "Overlaps", "data": None}
    assert unwrap(envelope) == envelope
    assert as_message(envelope).success is False
    assert as_message(None).success is True
