from datetime import datetime

import pytest

from wtw.services.events import PARTICIPANT_JOINED, PARTICIPANT_UPDATED, SESSION_UPDATED
from wtw.services.sessions import CODE_ALPHABET


@pytest.mark.anyio
async def test_create_session_returns_waiting_session_and_host(client, session_factory):
    session, host = await session_factory(client, display_name="  Ana  ", media_type="movies")

    assert session["status"] == "waiting"
    assert session["media_type"] == "movies"
    assert session["preferences"] == {}
    assert session["winner_item_key"] is None
    assert session["host_participant_id"] == host["id"]
    assert host["display_name"] == "Ana"
    assert "auth_token" not in host

    assert len(session["code"]) == 6
    assert all(ch in CODE_ALPHABET for ch in session["code"])


@pytest.mark.anyio
async def test_create_session_rejects_bad_input(client):
    r = await client.post("/sessions", json={"media_type": "podcasts", "display_name": "Ana"})
    assert r.status_code == 400, r.text

    r = await client.post("/sessions", json={"media_type": "both", "display_name": "   "})
    assert r.status_code == 400, r.text

    r = await client.post(
        "/sessions",
        json={"media_type": "both", "display_name": "Ana", "timed_duration_minutes": 0},
    )
    assert r.status_code == 400, r.text


@pytest.mark.anyio
async def test_get_session_by_code_is_case_insensitive(client, session_factory, join_helper):
    session, host = await session_factory(client)
    await join_helper(client, session["id"], "Ben")

    r = await client.get(f"/sessions/code/{session['code'].lower()}")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["id"] == session["id"]
    assert [p["display_name"] for p in data["participants"]] == ["Host", "Ben"]

    r = await client.get("/sessions/code/ZZZZZZ")
    assert r.status_code == 404


@pytest.mark.anyio
async def test_unknown_session_is_404(client):
    r = await client.get("/sessions/00000000-0000-0000-0000-000000000000")
    assert r.status_code == 404


@pytest.mark.anyio
async def test_join_publishes_participant_joined(client, bus, session_factory, join_helper):
    session, _ = await session_factory(client)
    sub = bus.subscribe(session["id"])

    ben = await join_helper(client, session["id"], "Ben")

    events = sub.pending()
    assert [e.name for e in events] == [PARTICIPANT_JOINED]
    assert events[0].data["participant"]["id"] == ben["id"]
    assert events[0].data["participant"]["display_name"] == "Ben"

    r = await client.get(f"/sessions/{session['id']}/participants")
    assert [p["display_name"] for p in r.json()] == ["Host", "Ben"]


@pytest.mark.anyio
async def test_join_finished_session_conflicts(client, session_factory, start_swiping):
    session, host = await session_factory(client)
    await start_swiping(client, session["id"])
    r = await client.post(
        f"/sessions/{session['id']}/votes",
        json={"participant_id": host["id"], "item_key": "tt1", "liked": True},
    )
    assert r.json()["match"] is True

    r = await client.post(f"/sessions/{session['id']}/join", json={"display_name": "Late"})
    assert r.status_code == 409


@pytest.mark.anyio
async def test_status_moves_forward_only(client, bus, session_factory):
    session, _ = await session_factory(client)
    sid = session["id"]
    sub = bus.subscribe(sid)

    r = await client.patch(f"/sessions/{sid}", json={"status": "questions"})
    assert r.status_code == 200
    assert r.json()["status"] == "questions"

    # re-sending the current status is a no-op
    r = await client.patch(f"/sessions/{sid}", json={"status": "questions"})
    assert r.status_code == 200

    r = await client.patch(f"/sessions/{sid}", json={"status": "swiping"})
    assert r.status_code == 200

    r = await client.patch(f"/sessions/{sid}", json={"status": "questions"})
    assert r.status_code == 409

    r = await client.patch(f"/sessions/{sid}", json={"status": "completed"})
    assert r.status_code == 409

    r = await client.patch(f"/sessions/{sid}", json={"status": "exploded"})
    assert r.status_code == 400

    events = sub.pending()
    assert [e.data for e in events] == [{"status": "questions"}, {"status": "swiping"}]


@pytest.mark.anyio
async def test_preferences_merge_key_by_key(client, bus, session_factory):
    session, _ = await session_factory(client)
    sid = session["id"]

    await client.patch(f"/sessions/{sid}", json={"preferences": {"selectedCollections": ["1"], "note": "x"}})
    sub = bus.subscribe(sid)
    r = await client.patch(f"/sessions/{sid}", json={"preferences": {"selectedCollections": ["2"]}})
    assert r.status_code == 200
    assert r.json()["preferences"] == {"selectedCollections": ["2"], "note": "x"}

    events = sub.pending()
    assert events[0].name == SESSION_UPDATED
    assert list(events[0].data) == ["preferences"]


@pytest.mark.anyio
async def test_timed_session_stamps_timer_once(client, bus, session_factory):
    session, _ = await session_factory(client, timed_duration_minutes=1)
    sid = session["id"]
    sub = bus.subscribe(sid)

    r = await client.patch(f"/sessions/{sid}", json={"status": "swiping"})
    body = r.json()
    assert body["timer_end_at"] is not None
    end_at = datetime.fromisoformat(body["timer_end_at"])
    created = datetime.fromisoformat(body["created_at"])
    assert 55 <= (end_at - created).total_seconds() <= 65

    r = await client.patch(f"/sessions/{sid}", json={"status": "swiping"})
    assert r.json()["timer_end_at"] == body["timer_end_at"]

    events = sub.pending()
    assert len(events) == 1
    assert events[0].data["status"] == "swiping"
    assert events[0].data["timer_end_at"] is not None


@pytest.mark.anyio
async def test_update_participant_normalizes_preferences(client, bus, session_factory):
    session, host = await session_factory(client)
    sub = bus.subscribe(session["id"])

    r = await client.patch(
        f"/participants/{host['id']}",
        json={
            "preferences": {"genres": [" Action", "action", "Drama"], "excludedGenres": ["Horror"]},
            "questions_completed": True,
        },
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["preferences"]["genres"] == ["Action", "Drama"]
    assert body["questions_completed"] is True

    events = sub.pending()
    assert [e.name for e in events] == [PARTICIPANT_UPDATED]
    assert events[0].data["participantId"] == host["id"]
    assert events[0].data["questions_completed"] is True

    r = await client.get(f"/sessions/{session['id']}/preferences")
    assert r.json()["genres"] == ["Action", "Drama"]
    assert r.json()["excludedGenres"] == ["Horror"]


@pytest.mark.anyio
async def test_update_unknown_participant_is_404(client):
    r = await client.patch(
        "/participants/00000000-0000-0000-0000-000000000000",
        json={"questions_completed": True},
    )
    assert r.status_code == 404


@pytest.mark.anyio
async def test_restart_is_host_only_and_clears_votes(client, bus, session_factory, join_helper, start_swiping):
    session, host = await session_factory(client)
    sid = session["id"]
    ben = await join_helper(client, sid, "Ben")
    await client.patch(f"/participants/{ben['id']}", json={"questions_completed": True})
    await start_swiping(client, sid)
    await client.post(f"/sessions/{sid}/votes", json={"participant_id": ben["id"], "item_key": "tt1", "liked": True})

    r = await client.post(f"/sessions/{sid}/restart", json={"participant_id": ben["id"]})
    assert r.status_code == 403

    sub = bus.subscribe(sid)
    r = await client.post(f"/sessions/{sid}/restart", json={"participant_id": host["id"]})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "questions"

    votes = (await client.get(f"/sessions/{sid}/votes")).json()
    assert votes == []
    participants = (await client.get(f"/sessions/{sid}/participants")).json()
    assert all(p["questions_completed"] is False for p in participants)

    names = [e.name for e in sub.pending()]
    assert names == [SESSION_UPDATED, PARTICIPANT_UPDATED, PARTICIPANT_UPDATED]


@pytest.mark.anyio
async def test_restart_before_swiping_conflicts(client, session_factory):
    session, host = await session_factory(client)
    r = await client.post(f"/sessions/{session['id']}/restart", json={"participant_id": host["id"]})
    assert r.status_code == 409
