import asyncio, json, pathlib

import pytest, respx, httpx

from appointments_client.client import ApiClient
from appointments_client.errors import ServerError
from appointments_client.notification_store import NotificationStore, filter_notifications

FIX = pathlib.Path(__file__).parent / "fixtures"
BASE = "http://backend.test"
NOTIFICATIONS = json.loads((FIX / "notifications.json").read_text())


@pytest.mark.asyncio
async def test_fetch_counts_unread_and_filters():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(200, json=NOTIFICATIONS)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=3600)
            await store.fetch()

    assert store.unread_count == 2
    assert [n.id for n in store.filtered("unread")] == [101, 102]
    assert [n.id for n in store.filtered("read")] == [103]
    assert len(store.filtered()) == 3
    with pytest.raises(ValueError):
        filter_notifications(store.notifications, "archived")


@pytest.mark.asyncio
async def test_mark_as_read_decrements_by_exactly_one():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(200, json=NOTIFICATIONS)
        m.patch("/api/notifications/101/read").respond(200)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=3600)
            await store.fetch()

            await store.mark_as_read(101)
            assert store.unread_count == 1
            assert next(n for n in store.notifications if n.id == 101).is_read

            # already read locally: the counter stays put
            await store.mark_as_read(101)
            assert store.unread_count == 1


@pytest.mark.asyncio
async def test_counter_never_goes_below_zero():
    with respx.mock(base_url=BASE) as m:
        m.patch("/api/notifications/999/read").respond(200)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=3600)
            await store.mark_as_read(999)

    assert store.unread_count == 0


@pytest.mark.asyncio
async def test_failed_mutation_reloads_and_reraises():
    with respx.mock(base_url=BASE) as m:
        listing = m.get("/api/notifications/me").respond(200, json=NOTIFICATIONS)
        m.patch("/api/notifications/102/read").respond(500)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=3600)
            await store.fetch()
            with pytest.raises(ServerError):
                await store.mark_as_read(102)

    assert listing.call_count == 2
    assert store.unread_count == 2


@pytest.mark.asyncio
async def test_mark_all_and_delete():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(200, json=NOTIFICATIONS)
        m.patch("/api/notifications/me/read-all").respond(200)
        m.delete("/api/notifications/101").respond(204)
        m.delete("/api/notifications/103").respond(204)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=3600)
            await store.fetch()

            await store.delete(103)  # read one
            assert store.unread_count == 2
            await store.delete(101)
            assert store.unread_count == 1
            assert [n.id for n in store.notifications] == [102]

            await store.mark_all_as_read()
            assert store.unread_count == 0
            assert all(n.is_read for n in store.notifications)


@pytest.mark.asyncio
async def test_polling_refreshes_unread_count():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(200, json=[])
        m.get("/api/notifications/me/unread-count").respond(200, json={"count": 5})
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=0.01)
            await store.start()
            assert store.poller.running
            await asyncio.sleep(0.05)
            assert store.unread_count == 5

            await store.stop()
            assert not store.poller.running
            assert store.unread_count == 0


@pytest.mark.asyncio
async def test_polling_survives_an_unparsable_answer():
    answers = iter([httpx.Response(200, text="<html>maintenance</html>")])

    def unread(request):
        return next(answers, httpx.Response(200, json={"count": 3}))

    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(200, json=[])
        route = m.get("/api/notifications/me/unread-count").mock(side_effect=unread)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=0.01)
            await store.start()
            await asyncio.sleep(0.08)

            assert store.poller.running
            assert route.call_count >= 2
            assert store.unread_count == 3
            await store.stop()


@pytest.mark.asyncio
async def test_start_does_not_poll_after_401():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(401)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=3600)
            await store.start()

    assert not store.poller.running


@pytest.mark.asyncio
async def test_start_polls_even_if_first_load_fails():
    with respx.mock(base_url=BASE) as m:
        m.get("/api/notifications/me").respond(503)
        async with ApiClient(BASE, token_provider=lambda: "tok") as api:
            store = NotificationStore(api, interval=3600)
            await store.start()
            assert store.poller.running
            await store.stop()
