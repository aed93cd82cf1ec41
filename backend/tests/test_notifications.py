from bson import ObjectId

from utils import notifications
from utils.live import hub
from utils.notifications import create_notification, mark_read
from utils.side_effects import outbox


class FakeSocket:
    def __init__(self, broken=False):
        self.sent = []
        self.broken = broken

    async def accept(self):
        pass

    async def send_json(self, payload):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


async def _seed(db, user_id, count=3):
    for i in range(count):
        await create_notification(db, user=user_id, title=f"Title {i}", message=f"Message {i}")


async def test_create_notification_persists_and_pushes(db):
    user_id = ObjectId()
    socket = FakeSocket()
    await hub.connect(user_id, socket)
    try:
        doc = await create_notification(db, user=user_id, title="Hi", message="There", type="order")
    finally:
        hub.disconnect(user_id, socket)

    assert doc["read"] is False
    assert doc["metadata"] == {}
    assert socket.sent[0]["event"] == "notifications:new"
    assert socket.sent[0]["data"]["notification"]["title"] == "Hi"


async def test_create_notification_ignores_incomplete_calls(db):
    assert await create_notification(db, user=None, title="x", message="y") is None
    assert await create_notification(db, user=ObjectId(), title="", message="y") is None
    assert await db.notifications.count_documents({}) == 0


async def test_write_failure_is_swallowed():
    class BrokenDb:
        class notifications:
            @staticmethod
            async def insert_one(doc):
                raise RuntimeError("down")

    assert await create_notification(BrokenDb(), user=ObjectId(), title="x", message="y") is None


async def test_dead_socket_is_dropped(db):
    user_id = ObjectId()
    await hub.connect(user_id, FakeSocket(broken=True))

    await create_notification(db, user=user_id, title="x", message="y")

    assert hub.session_count(user_id) == 0


async def test_mark_all_read_is_idempotent(api, world, db):
    await _seed(db, world.customer["_id"])

    async with api(world.customer) as client:
        first = await client.patch("/api/notifications/read-all")
        count_after_first = await client.get("/api/notifications/unread-count")
        second = await client.patch("/api/notifications/read-all")
        count_after_second = await client.get("/api/notifications/unread-count")

    assert first.status_code == second.status_code == 200
    assert first.json()["modified"] == 3
    assert second.json()["modified"] == 0
    assert count_after_first.json() == {"count": 0}
    assert count_after_second.json() == {"count": 0}


async def test_mark_read_twice_still_succeeds(api, world, db):
    doc = await create_notification(db, user=world.customer["_id"], title="x", message="y")

    async with api(world.customer) as client:
        first = await client.patch(f"/api/notifications/{doc['_id']}/read")
        second = await client.patch(f"/api/notifications/{doc['_id']}/read")

    assert first.status_code == second.status_code == 200
    assert second.json()["notification"]["read"] is True


async def test_mark_read_of_someone_elses_notification_is_not_found(api, world, db):
    doc = await create_notification(db, user=world.vendor_a["_id"], title="x", message="y")

    async with api(world.customer) as client:
        response = await client.patch(f"/api/notifications/{doc['_id']}/read")

    assert response.status_code == 404


async def test_mark_read_pushes_update_through_outbox(db, monkeypatch):
    user_id = ObjectId()
    doc = await create_notification(db, user=user_id, title="x", message="y")
    pushed = []

    async def record(user, event, payload):
        pushed.append((user, event, payload))

    monkeypatch.setattr(notifications, "push_to_user", record)

    await mark_read(db, user_id, str(doc["_id"]))
    assert pushed == []

    await outbox.drain()
    assert pushed == [(user_id, "notifications:updated", {"type": "single", "id": str(doc["_id"])})]


async def test_my_notifications_newest_first(api, world, db):
    await _seed(db, world.customer["_id"])
    await _seed(db, world.vendor_a["_id"], count=1)

    async with api(world.customer) as client:
        response = await client.get("/api/notifications/my", params={"limit": 2})

    body = response.json()
    assert [n["title"] for n in body["notifications"]] == ["Title 2", "Title 1"]
    assert body["pagination"]["total_items"] == 3
    assert body["pagination"]["has_next_page"] is True
