import uuid
from datetime import datetime, timedelta, timezone

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError

from wtw.models.swipe_session import SwipeSession
from wtw.services import store
from wtw.services.events import FINAL_VOTE_CAST, SESSION_UPDATED, VOTING_COMPLETE
from wtw.services.timed import break_tie


async def _vote(client, sid, pid, item_key, liked=True):
    r = await client.post(
        f"/sessions/{sid}/votes",
        json={"participant_id": pid, "item_key": item_key, "liked": liked},
    )
    assert r.status_code == 200, r.text
    return r.json()


async def _expire_timer(session_maker, sid: str) -> None:
    async with session_maker() as db:
        await db.execute(
            sa.update(SwipeSession)
            .where(SwipeSession.id == uuid.UUID(sid))
            .values(timer_end_at=datetime.now(timezone.utc) - timedelta(seconds=1))
        )
        await db.commit()


@pytest.fixture
def timed_pair(client, session_factory, join_helper, start_swiping):
    async def _create():
        session, p1 = await session_factory(client, timed_duration_minutes=1)
        p2 = await join_helper(client, session["id"], "P2")
        await start_swiping(client, session["id"])
        return session["id"], p1["id"], p2["id"]

    return _create


def test_break_tie_is_reproducible_and_order_independent():
    sid = uuid.uuid4()
    first = break_tie(sid, ["tt2", "tt1", "tt3"])
    assert first in {"tt1", "tt2", "tt3"}
    assert break_tie(sid, ["tt3", "tt1", "tt2"]) == first
    assert break_tie(str(sid), ["tt1", "tt2", "tt3"]) == first


def test_break_tie_needs_candidates():
    with pytest.raises(ValueError):
        break_tie(uuid.uuid4(), [])


@pytest.mark.anyio
async def test_timed_tie_is_resolved_once(client, bus, session_maker, timed_pair):
    sid, p1, p2 = await timed_pair()

    # full agreement does not short-circuit while the timer runs
    assert await _vote(client, sid, p1, "tt1") == {"match": False, "winner_item_key": None}
    assert await _vote(client, sid, p1, "tt2") == {"match": False, "winner_item_key": None}
    assert await _vote(client, sid, p2, "tt1") == {"match": False, "winner_item_key": None}
    assert await _vote(client, sid, p2, "tt2") == {"match": False, "winner_item_key": None}

    # before the deadline nothing happens
    r = await client.post(f"/sessions/{sid}/resolve")
    assert r.json()["status"] == "swiping"

    await _expire_timer(session_maker, sid)
    sub = bus.subscribe(sid)

    matches = (await client.get(f"/sessions/{sid}/matches")).json()
    assert matches["status"] == "voting"
    assert matches["matches"] == ["tt1", "tt2"]
    assert matches["final_candidate_keys"] == ["tt1", "tt2"]

    # further polls do not resolve again
    state = (await client.get(f"/sessions/{sid}")).json()
    assert state["status"] == "voting"

    r = await client.post(f"/sessions/{sid}/votes", json={"participant_id": p1, "item_key": "tt3", "liked": True})
    assert r.status_code == 409

    r = await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p1, "item_key": "tt1"})
    assert r.json() == {"all_voted": False, "winner": None, "was_tie": False, "tied_items": []}

    r = await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p1, "item_key": "tt2"})
    assert r.status_code == 409

    status = (await client.get(f"/sessions/{sid}/final-votes")).json()
    assert status["voted_count"] == 1
    assert status["total_count"] == 2
    assert status["all_voted"] is False

    r = await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p2, "item_key": "tt2"})
    body = r.json()
    expected = break_tie(sid, ["tt1", "tt2"])
    assert body == {"all_voted": True, "winner": expected, "was_tie": True, "tied_items": ["tt1", "tt2"]}

    state = (await client.get(f"/sessions/{sid}")).json()
    assert state["status"] == "completed"
    assert state["winner_item_key"] == expected

    events = sub.pending()
    names = [e.name for e in events]
    assert names == [SESSION_UPDATED, FINAL_VOTE_CAST, FINAL_VOTE_CAST, VOTING_COMPLETE, SESSION_UPDATED]
    assert events[0].data == {"status": "voting", "final_candidate_keys": ["tt1", "tt2"]}
    assert events[3].data == {"winner": expected, "wasTie": True, "tiedItems": ["tt1", "tt2"]}
    assert names.count(VOTING_COMPLETE) == 1


@pytest.mark.anyio
async def test_single_timed_match_wins_without_final_vote(client, bus, session_maker, timed_pair):
    sid, p1, p2 = await timed_pair()
    await _vote(client, sid, p1, "tt1")
    await _vote(client, sid, p2, "tt1")
    await _vote(client, sid, p1, "tt2")
    await _expire_timer(session_maker, sid)
    sub = bus.subscribe(sid)

    r = await client.post(f"/sessions/{sid}/resolve")
    assert r.json()["status"] == "completed"
    assert r.json()["winner_item_key"] == "tt1"

    r = await client.post(f"/sessions/{sid}/resolve")
    assert r.json()["winner_item_key"] == "tt1"

    events = sub.pending()
    assert [e.name for e in events] == [VOTING_COMPLETE, SESSION_UPDATED]
    assert events[0].data == {"winner": "tt1", "wasTie": False}


@pytest.mark.anyio
async def test_timed_match_needs_every_participant(client, session_maker, timed_pair):
    sid, p1, p2 = await timed_pair()
    await _vote(client, sid, p1, "tt1")
    await _vote(client, sid, p1, "tt3")
    await _vote(client, sid, p2, "tt3")
    await _vote(client, sid, p2, "tt2")
    await _vote(client, sid, p2, "tt1", liked=False)
    await _vote(client, sid, p1, "tt2", liked=False)
    await _expire_timer(session_maker, sid)

    matches = (await client.get(f"/sessions/{sid}/matches")).json()
    # only tt3 is liked by both
    assert matches["status"] == "completed"
    assert matches["winner_item_key"] == "tt3"


@pytest.mark.anyio
async def test_top_liked_become_final_candidates(client, session_maker, timed_pair):
    sid, p1, p2 = await timed_pair()
    await _vote(client, sid, p1, "tt1")
    await _vote(client, sid, p1, "tt2")
    await _vote(client, sid, p2, "tt3")
    await _expire_timer(session_maker, sid)

    matches = (await client.get(f"/sessions/{sid}/matches")).json()
    assert matches["status"] == "voting"
    assert matches["matches"] == []
    assert matches["final_candidate_keys"] == ["tt1", "tt2", "tt3"]
    assert [row["item_key"] for row in matches["top_liked"]] == ["tt1", "tt2", "tt3"]

    r = await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p1, "item_key": "tt9"})
    assert r.status_code == 400

    await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p1, "item_key": "tt3"})
    r = await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p2, "item_key": "tt3"})
    assert r.json() == {"all_voted": True, "winner": "tt3", "was_tie": False, "tied_items": []}


@pytest.mark.anyio
async def test_nothing_liked_is_no_match(client, session_maker, timed_pair):
    sid, p1, p2 = await timed_pair()
    await _vote(client, sid, p1, "tt1", liked=False)
    await _expire_timer(session_maker, sid)

    state = (await client.get(f"/sessions/{sid}")).json()
    assert state["status"] == "no_match"
    assert state["winner_item_key"] is None

    history = (await client.get("/history")).json()
    assert history["items"][0]["outcome"] == "no_match"
    assert history["items"][0]["was_timed"] is True


@pytest.mark.anyio
async def test_timed_exhaustion_waits_for_timer(client, timed_pair):
    sid, p1, _ = await timed_pair()
    r = await client.post(f"/sessions/{sid}/exhausted", json={"participant_id": p1, "candidate_count": 0})
    assert r.json()["waiting_for_timer"] is True
    assert r.json()["status"] == "swiping"


@pytest.mark.anyio
async def test_final_vote_outside_voting_round_conflicts(client, timed_pair):
    sid, p1, _ = await timed_pair()
    r = await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p1, "item_key": "tt1"})
    assert r.status_code == 409


@pytest.mark.anyio
async def test_vote_after_deadline_is_refused_and_not_counted(client, bus, session_maker, timed_pair):
    sid, p1, p2 = await timed_pair()
    await _vote(client, sid, p1, "tt1")
    await _vote(client, sid, p1, "tt2")
    await _vote(client, sid, p2, "tt2", liked=False)
    await _expire_timer(session_maker, sid)
    sub = bus.subscribe(sid)

    # this like would make tt1 unanimous if it still counted
    r = await client.post(f"/sessions/{sid}/votes", json={"participant_id": p2, "item_key": "tt1", "liked": True})
    assert r.status_code == 409

    state = (await client.get(f"/sessions/{sid}")).json()
    assert state["status"] == "voting"
    assert state["winner_item_key"] is None
    assert state["final_candidate_keys"] == ["tt1", "tt2"]

    votes = (await client.get(f"/sessions/{sid}/votes", params={"participant_id": p2})).json()
    assert [(v["item_key"], v["liked"]) for v in votes] == [("tt2", False)]

    events = sub.pending()
    assert [e.name for e in events] == [SESSION_UPDATED]
    assert events[0].data == {"status": "voting", "final_candidate_keys": ["tt1", "tt2"]}


@pytest.mark.anyio
async def test_storage_failure_during_final_vote_changes_nothing(client, bus, monkeypatch, session_maker, timed_pair):
    sid, p1, p2 = await timed_pair()
    for pid in (p1, p2):
        await _vote(client, sid, pid, "tt1")
        await _vote(client, sid, pid, "tt2")
    await _expire_timer(session_maker, sid)
    await client.post(f"/sessions/{sid}/resolve")
    await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p1, "item_key": "tt1"})

    async def _failing_add_final_vote(db, **kwargs):
        raise OperationalError("INSERT INTO final_votes", {}, Exception("disk I/O error"))

    monkeypatch.setattr(store, "add_final_vote", _failing_add_final_vote)
    sub = bus.subscribe(sid)

    r = await client.post(f"/sessions/{sid}/final-votes", json={"participant_id": p2, "item_key": "tt1"})
    assert r.status_code == 503, r.text
    assert sub.pending() == []

    status = (await client.get(f"/sessions/{sid}/final-votes")).json()
    assert status["voted_count"] == 1
    state = (await client.get(f"/sessions/{sid}")).json()
    assert state["status"] == "voting"
    assert state["winner_item_key"] is None
