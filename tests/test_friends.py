import uuid

import pytest
import sqlalchemy as sa

from app.api.http_errors import domain_status
from app.core.errors import Conflict
from app.models.relationship import STATUS_PENDING, Relationship
from app.services.friends import send_request

pytestmark = pytest.mark.anyio


async def status_between(client, act_as, viewer, other) -> str:
    act_as(client, viewer)
    r = await client.get(f"/friends/{other['id']}/status")
    assert r.status_code == 200, r.text
    return r.json()["status"]


async def make_friends(client, act_as, a, b) -> None:
    act_as(client, a)
    r = await client.post(f"/friends/{b['id']}/request")
    assert r.status_code == 200, r.text
    act_as(client, b)
    r = await client.post(f"/friends/{a['id']}/accept")
    assert r.status_code == 200, r.text


async def test_send_request_sets_mirrored_status(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)

    act_as(client, a)
    r = await client.post(f"/friends/{b['id']}/request")
    assert r.status_code == 200, r.text
    assert r.json() == {"ok": True, "status": "sent"}

    assert await status_between(client, act_as, a, b) == "sent"
    assert await status_between(client, act_as, b, a) == "received"

    act_as(client, a)
    sent = (await client.get("/friends/requests/sent")).json()
    assert [u["id"] for u in sent] == [b["id"]]

    act_as(client, b)
    received = (await client.get("/friends/requests/received")).json()
    assert [u["id"] for u in received] == [a["id"]]


async def test_duplicate_or_reverse_request_conflicts(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)

    act_as(client, a)
    assert (await client.post(f"/friends/{b['id']}/request")).status_code == 200

    r = await client.post(f"/friends/{b['id']}/request")
    assert r.status_code == 409
    assert r.json()["code"] == "conflict"

    act_as(client, b)
    r = await client.post(f"/friends/{a['id']}/request")
    assert r.status_code == 409


async def test_request_to_existing_friend_conflicts(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)
    await make_friends(client, act_as, a, b)

    act_as(client, b)
    r = await client.post(f"/friends/{a['id']}/request")
    assert r.status_code == 409
    assert r.json()["detail"] == "Already friends"


async def test_accept_makes_both_sides_friends_and_clears_requests(client, user_factory, act_as):
    a = await user_factory(client, username="alice_accept")
    b = await user_factory(client, username="bob_accept")
    await make_friends(client, act_as, a, b)

    assert await status_between(client, act_as, a, b) == "friends"
    assert await status_between(client, act_as, b, a) == "friends"

    for me, other in ((a, b), (b, a)):
        act_as(client, me)
        friends = (await client.get("/friends")).json()
        assert [u["id"] for u in friends] == [other["id"]]
        assert (await client.get("/friends/requests/sent")).json() == []
        assert (await client.get("/friends/requests/received")).json() == []


async def test_accept_without_pending_request_is_invalid_state(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)

    act_as(client, a)
    r = await client.post(f"/friends/{b['id']}/accept")
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"

    # The sender cannot accept their own outgoing request either.
    await client.post(f"/friends/{b['id']}/request")
    r = await client.post(f"/friends/{b['id']}/accept")
    assert r.status_code == 409
    assert await status_between(client, act_as, a, b) == "sent"


async def test_reject_clears_pending_without_friendship(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)

    act_as(client, a)
    await client.post(f"/friends/{b['id']}/request")

    act_as(client, b)
    r = await client.post(f"/friends/{a['id']}/reject")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "none"

    assert await status_between(client, act_as, a, b) == "none"
    assert await status_between(client, act_as, b, a) == "none"
    act_as(client, a)
    assert (await client.get("/friends/requests/sent")).json() == []
    assert (await client.get("/friends")).json() == []

    act_as(client, b)
    r = await client.post(f"/friends/{a['id']}/reject")
    assert r.status_code == 409


async def test_cancel_clears_pending_on_both_sides(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)

    act_as(client, a)
    await client.post(f"/friends/{b['id']}/request")

    # Only the sender can cancel.
    act_as(client, b)
    r = await client.delete(f"/friends/{a['id']}/cancel")
    assert r.status_code == 409

    act_as(client, a)
    r = await client.delete(f"/friends/{b['id']}/cancel")
    assert r.status_code == 200, r.text

    act_as(client, b)
    assert (await client.get("/friends/requests/received")).json() == []
    assert await status_between(client, act_as, a, b) == "none"

    # And the pair can start over.
    act_as(client, b)
    assert (await client.post(f"/friends/{a['id']}/request")).status_code == 200


async def test_unfriend_is_idempotent(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)

    act_as(client, a)
    r = await client.delete(f"/friends/{b['id']}/unfriend")
    assert r.status_code == 200
    assert r.json()["status"] == "none"

    await make_friends(client, act_as, a, b)

    act_as(client, b)
    r = await client.delete(f"/friends/{a['id']}/unfriend")
    assert r.status_code == 200
    assert await status_between(client, act_as, a, b) == "none"
    assert await status_between(client, act_as, b, a) == "none"

    act_as(client, b)
    assert (await client.delete(f"/friends/{a['id']}/unfriend")).status_code == 200


async def test_unfriend_leaves_pending_requests_alone(client, user_factory, act_as):
    a = await user_factory(client)
    b = await user_factory(client)

    act_as(client, a)
    await client.post(f"/friends/{b['id']}/request")
    r = await client.delete(f"/friends/{b['id']}/unfriend")
    assert r.status_code == 200
    assert r.json()["status"] == "sent"


async def test_unknown_user_is_not_found(client, user_factory, act_as):
    a = await user_factory(client)
    ghost = str(uuid.uuid4())

    act_as(client, a)
    for method, path in (
        ("post", f"/friends/{ghost}/request"),
        ("post", f"/friends/{ghost}/accept"),
        ("delete", f"/friends/{ghost}/unfriend"),
        ("get", f"/friends/{ghost}/status"),
    ):
        r = await getattr(client, method)(path)
        assert r.status_code == 404, (path, r.text)
        assert r.json()["detail"] == "User not found"


async def test_cannot_befriend_self(client, user_factory, act_as):
    a = await user_factory(client)
    act_as(client, a)
    r = await client.post(f"/friends/{a['id']}/request")
    assert r.status_code == 400


async def test_suggestions_exclude_related_users_and_cap_at_20(client, user_factory, act_as):
    me = await user_factory(client)
    friend = await user_factory(client)
    pending_out = await user_factory(client)
    pending_in = await user_factory(client)
    strangers = [await user_factory(client) for _ in range(21)]

    await make_friends(client, act_as, me, friend)
    act_as(client, me)
    await client.post(f"/friends/{pending_out['id']}/request")
    act_as(client, pending_in)
    await client.post(f"/friends/{me['id']}/request")

    act_as(client, me)
    r = await client.get("/friends/suggestions")
    assert r.status_code == 200
    ids = {u["id"] for u in r.json()}

    assert len(ids) == 20
    assert me["id"] not in ids
    assert friend["id"] not in ids
    assert pending_out["id"] not in ids
    assert pending_in["id"] not in ids
    assert ids <= {s["id"] for s in strangers}


async def test_friend_request_and_accept_push_events(client, user_factory, act_as, listen):
    a = await user_factory(client, username="alice_events")
    b = await user_factory(client, username="bob_events")
    a_conn = await listen(a)
    b_conn = await listen(b)

    act_as(client, a)
    await client.post(f"/friends/{b['id']}/request")

    incoming = b_conn.events("incomingFriendRequest")
    assert len(incoming) == 1
    assert incoming[0]["from"]["username"] == "alice_events"
    assert a_conn.events() == []

    act_as(client, b)
    await client.post(f"/friends/{a['id']}/accept")

    accepted = a_conn.events("friendRequestAccepted")
    assert len(accepted) == 1
    assert accepted[0]["by"]["id"] == b["id"]


async def test_friends_requires_authentication(client, user_factory, act_as, token_for):
    r = await client.get("/friends")
    assert r.status_code == 401

    # Valid identity without a profile yet.
    act_as(client, {"token": token_for(uuid.uuid4())})
    r = await client.get("/friends")
    assert r.status_code == 401
    assert r.json()["detail"] == "User not found"

    act_as(client, {"token": "not-a-jwt"})
    r = await client.get("/friends")
    assert r.status_code == 401


async def test_crossing_requests_leave_one_edge(
    client, user_factory, act_as, bus, db_session, commit_before_flush
):
    a = await user_factory(client)
    b = await user_factory(client)
    low, high = sorted([a["uuid"], b["uuid"]])

    # B's request to A commits after A's request has checked the pair but before it writes.
    commit_before_flush(
        db_session,
        Relationship,
        user_low_id=low,
        user_high_id=high,
        status=STATUS_PENDING,
        requested_by_id=b["uuid"],
    )

    with pytest.raises(Conflict) as exc:
        await send_request(db_session, bus, a["uuid"], b["uuid"])
    assert domain_status(exc.value) == 409

    edges = (await db_session.execute(sa.select(Relationship))).scalars().all()
    assert len(edges) == 1
    assert edges[0].requested_by_id == b["uuid"]

    assert await status_between(client, act_as, a, b) == "received"
    assert await status_between(client, act_as, b, a) == "sent"
