import pytest


async def _finish_with_match(client, session_factory, start_swiping, item_key: str, name: str = "Host"):
    session, host = await session_factory(client, display_name=name)
    await start_swiping(client, session["id"])
    r = await client.post(
        f"/sessions/{session['id']}/votes",
        json={"participant_id": host["id"], "item_key": item_key, "liked": True},
    )
    assert r.json()["match"] is True
    return session


@pytest.mark.anyio
async def test_history_lists_finished_sessions_newest_first(client, session_factory, start_swiping):
    first = await _finish_with_match(client, session_factory, start_swiping, "tt1", name="Ana")
    second = await _finish_with_match(client, session_factory, start_swiping, "tt2", name="Ben")
    # unfinished sessions stay out of history
    await session_factory(client)

    r = await client.get("/history")
    assert r.status_code == 200, r.text
    page = r.json()
    assert page["total"] == 2
    assert page["limit"] == 20
    assert page["offset"] == 0
    assert [row["session_id"] for row in page["items"]] == [second["id"], first["id"]]

    latest = page["items"][0]
    assert latest["session_code"] == second["code"]
    assert latest["winner_item_key"] == "tt2"
    assert latest["outcome"] == "completed"
    assert latest["participants"] == ["Ben"]
    assert latest["media_type"] == "both"


@pytest.mark.anyio
async def test_history_pagination(client, session_factory, start_swiping):
    for key in ("tt1", "tt2", "tt3"):
        await _finish_with_match(client, session_factory, start_swiping, key)

    page = (await client.get("/history", params={"limit": 2, "offset": 0})).json()
    assert page["total"] == 3
    assert [row["winner_item_key"] for row in page["items"]] == ["tt3", "tt2"]

    page = (await client.get("/history", params={"limit": 2, "offset": 2})).json()
    assert [row["winner_item_key"] for row in page["items"]] == ["tt1"]


@pytest.mark.anyio
@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}])
async def test_history_rejects_bad_paging(client, params):
    r = await client.get("/history", params=params)
    assert r.status_code == 400


@pytest.mark.anyio
async def test_restart_then_no_match_overwrites_history_row(client, session_factory, join_helper, start_swiping):
    session, host = await session_factory(client)
    sid = session["id"]
    await start_swiping(client, sid)
    await client.post(f"/sessions/{sid}/votes", json={"participant_id": host["id"], "item_key": "tt9", "liked": False})
    await client.post(f"/sessions/{sid}/exhausted", json={"participant_id": host["id"], "candidate_count": 1})

    page = (await client.get("/history")).json()
    assert page["total"] == 1
    assert page["items"][0]["outcome"] == "no_match"

    r = await client.post(f"/sessions/{sid}/restart", json={"participant_id": host["id"]})
    assert r.status_code == 200, r.text
    await start_swiping(client, sid)
    await client.post(f"/sessions/{sid}/votes", json={"participant_id": host["id"], "item_key": "tt1", "liked": True})

    page = (await client.get("/history")).json()
    assert page["total"] == 1
    assert page["items"][0]["outcome"] == "completed"
    assert page["items"][0]["winner_item_key"] == "tt1"
