import uuid

import pytest

from wtw.services.events import SESSION_UPDATED, VOTE_ADDED, EventBus


@pytest.mark.anyio
async def test_publish_reaches_only_the_sessions_subscribers():
    bus = EventBus(queue_size=8)
    a, b = uuid.uuid4(), uuid.uuid4()
    sub_a = bus.subscribe(a)
    sub_b = bus.subscribe(b)

    delivered = bus.publish(a, VOTE_ADDED, {"itemKey": "tt1"})
    assert delivered == 1

    event = await sub_a.get()
    assert event.name == VOTE_ADDED
    assert event.to_message() == {"type": "event", "event": VOTE_ADDED, "data": {"itemKey": "tt1"}}
    assert sub_b.pending() == []


@pytest.mark.anyio
async def test_full_queue_drops_event_without_raising():
    bus = EventBus(queue_size=1)
    sid = uuid.uuid4()
    slow = bus.subscribe(sid)
    fast = bus.subscribe(sid)

    assert bus.publish(sid, SESSION_UPDATED, {"n": 1}) == 2
    fast.pending()
    # slow still holds the first event, so only fast gets the second
    assert bus.publish(sid, SESSION_UPDATED, {"n": 2}) == 1
    assert [e.data["n"] for e in slow.pending()] == [1]


@pytest.mark.anyio
async def test_context_manager_unsubscribes_and_ends_iteration():
    bus = EventBus(queue_size=8)
    sid = uuid.uuid4()

    async with bus.subscribe(sid, participant_id="p1") as sub:
        assert bus.subscriber_count(sid) == 1
        bus.publish(sid, SESSION_UPDATED, {"status": "swiping"})
        received = await sub.get()
        assert received.data == {"status": "swiping"}

    assert bus.subscriber_count(sid) == 0
    assert bus.publish(sid, SESSION_UPDATED, {}) == 0

    seen = [event async for event in sub]
    assert seen == []


@pytest.mark.anyio
async def test_closing_delivers_remaining_events_first():
    bus = EventBus(queue_size=8)
    sid = uuid.uuid4()
    sub = bus.subscribe(sid)
    bus.publish(sid, VOTE_ADDED, {"n": 1})
    bus.publish(sid, VOTE_ADDED, {"n": 2})
    sub.close()

    seen = [event.data["n"] async for event in sub]
    assert seen == [1, 2]
