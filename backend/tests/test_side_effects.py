import asyncio

import main
from utils.side_effects import SideEffectOutbox, outbox as app_outbox


async def test_failing_task_does_not_stop_the_rest(caplog):
    outbox = SideEffectOutbox()
    ran = []

    async def boom():
        raise RuntimeError("smtp down")

    async def ok():
        ran.append("ok")

    outbox.enqueue("email", boom)
    outbox.enqueue("audit", ok)

    assert len(outbox) == 2
    assert await outbox.drain() == 2
    assert ran == ["ok"]
    assert len(outbox) == 0
    assert "SIDE_EFFECT_FAILED name=email" in caplog.text


async def test_tasks_run_in_enqueue_order():
    outbox = SideEffectOutbox()
    ran = []

    for name in ["first", "second", "third"]:
        async def task(name=name):
            ran.append(name)
        outbox.enqueue(name, task)

    await outbox.drain()

    assert ran == ["first", "second", "third"]


async def test_tasks_queued_while_draining_are_also_run():
    outbox = SideEffectOutbox()
    ran = []

    async def follow_up():
        ran.append("follow-up")

    async def first():
        ran.append("first")
        outbox.enqueue("follow-up", follow_up)

    outbox.enqueue("first", first)

    assert await outbox.drain() == 2
    assert ran == ["first", "follow-up"]


async def test_stop_lets_the_task_in_hand_finish():
    outbox = SideEffectOutbox()
    started = asyncio.Event()
    ran = []

    async def slow():
        started.set()
        await asyncio.sleep(0.05)
        ran.append("slow")

    outbox.enqueue("slow", slow)
    worker = asyncio.create_task(outbox.run_forever(poll_seconds=60))

    await started.wait()
    outbox.stop()
    await asyncio.wait_for(worker, timeout=5)

    assert ran == ["slow"]
    assert len(outbox) == 0


async def test_shutdown_finishes_side_effects_already_picked_up(monkeypatch):
    started = asyncio.Event()
    ran = []

    async def no_indexes(_db):
        return None

    async def idle_cleanup():
        await asyncio.sleep(3600)

    async def slow():
        started.set()
        await asyncio.sleep(0.05)
        ran.append("slow")

    async def queued_behind():
        ran.append("queued")

    monkeypatch.setattr(main, "get_db", lambda: None)
    monkeypatch.setattr(main, "ensure_indexes", no_indexes)
    monkeypatch.setattr(main, "audit_cleanup_worker", idle_cleanup)

    async with main.lifespan(main.app):
        app_outbox.enqueue("slow", slow)
        app_outbox.enqueue("queued", queued_behind)
        await asyncio.wait_for(started.wait(), timeout=5)

    assert ran == ["slow", "queued"]
    assert len(app_outbox) == 0
