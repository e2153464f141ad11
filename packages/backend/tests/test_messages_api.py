"""Tests for the messages API: the thread reply flow end to end.

Learn: Each mutation is checked on three sides: the HTTP response, the
event recorded by the publisher, and the notification rows in the
database. Delivery failures must never show up on the first side.
"""

import pytest
from sqlalchemy import insert, select
from sqlalchemy.exc import OperationalError

from teamchat.db.models import Message, Notification, thread_watchers
from teamchat.events.types import (
    MESSAGE_DELETED,
    MESSAGE_REACTION,
    MESSAGE_SENT,
    MESSAGE_UPDATED,
    NOTIFICATION,
    Topics,
)
from teamchat.services import message_service


async def _watch(db, thread, *people):
    await db.execute(
        insert(thread_watchers),
        [{"thread_id": thread.id, "user_id": p.id} for p in people],
    )
    await db.commit()


async def _notifications(db, user=None) -> list[Notification]:
    q = select(Notification).order_by(Notification.id)
    if user is not None:
        q = q.where(Notification.user_id == user.id)
    return list((await db.execute(q)).scalars().all())


async def _post(client, thread, content="hello") -> dict:
    r = await client.post(f"/api/v1/threads/{thread.id}/messages", json={"content": content})
    assert r.status_code == 201, r.text
    return r.json()


# ─── Reply flow ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_reply_broadcasts_once_and_notifies_watchers(
    client, db_session, publisher, users, thread
):
    """A replies in a thread watched by B and C: one event, two notifications."""
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    await _watch(db_session, thread, alice, bob, carol)

    client.login(bob)
    parent = await _post(client, thread, "kickoff")
    publisher.events.clear()

    client.login(alice)
    r = await client.post(
        f"/api/v1/messages/{parent['id']}/reply", json={"content": "on it"}
    )
    assert r.status_code == 201
    reply = r.json()
    assert reply["reply_to_id"] == parent["id"]
    assert reply["depth"] == 1
    assert reply["thread_id"] == thread.id

    thread_events = publisher.on(Topics.thread(thread.id))
    assert [(name, p["id"]) for name, p in thread_events] == [(MESSAGE_SENT, reply["id"])]

    rows = await _notifications(db_session)
    reply_rows = [n for n in rows if n.payload.get("messageId") == reply["id"]]
    assert sorted(n.user_id for n in reply_rows) == sorted([bob.id, carol.id])
    assert all(n.type == "thread_message" for n in reply_rows)
    assert all(n.title == "New reply in thread" for n in reply_rows)

    notified = {t for t, _ in publisher.named(NOTIFICATION)}
    assert notified == {Topics.notifications(bob.id), Topics.notifications(carol.id)}


@pytest.mark.asyncio
async def test_author_not_notified_on_own_message(client, db_session, users, thread):
    alice = users["alice"]
    await _watch(db_session, thread, alice)

    await _post(client, thread)

    assert await _notifications(db_session, alice) == []


@pytest.mark.asyncio
async def test_mention_replaces_watcher_notification(client, db_session, users, thread):
    """A mentioned watcher gets one 'mention' row, not also a 'thread_message'."""
    bob, carol, dave = users["bob"], users["carol"], users["dave"]
    await _watch(db_session, thread, bob, carol)

    await _post(client, thread, "@bob and @dave, please review")

    bob_rows = await _notifications(db_session, bob)
    assert [n.type for n in bob_rows] == ["mention"]
    assert [n.type for n in await _notifications(db_session, dave)] == ["mention"]
    assert [n.type for n in await _notifications(db_session, carol)] == ["thread_message"]
    assert bob_rows[0].link_url.startswith(f"/channels/{thread.channel_id}?messageId=")


@pytest.mark.asyncio
async def test_publish_failure_still_succeeds(client, db_session, publisher, users, thread):
    """Redis down: the message and notifications are committed anyway."""
    bob = users["bob"]
    await _watch(db_session, thread, bob)
    publisher.fail = True

    await _post(client, thread, "anyone there?")

    assert len(await _notifications(db_session, bob)) == 1
    assert publisher.events == []


@pytest.mark.asyncio
async def test_audience_failure_still_succeeds(
    client, db_session, publisher, users, thread, monkeypatch
):
    """Mention lookup blows up after the message committed: still a 201."""
    bob = users["bob"]
    await _watch(db_session, thread, bob)

    def broken_mentions(content):
        async def resolve(db, event):
            raise OperationalError("SELECT users", {}, Exception("connection reset"))

        return resolve

    monkeypatch.setattr(message_service, "mentioned_users", broken_mentions)

    message = await _post(client, thread, "@bob ship it")

    rows = (await db_session.execute(select(Message))).scalars().all()
    assert [m.id for m in rows] == [message["id"]]
    assert message["content"] == "@bob ship it"
    assert len(publisher.named(MESSAGE_SENT)) == 1
    # The watcher notification still goes out
    assert [n.type for n in await _notifications(db_session, bob)] == ["thread_message"]


@pytest.mark.asyncio
async def test_post_to_missing_thread_404(client):
    r = await client.post("/api/v1/threads/9999/messages", json={"content": "hi"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_reply_to_missing_message_404(client):
    r = await client.post("/api/v1/messages/9999/reply", json={"content": "hi"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_empty_message_rejected(client, thread):
    r = await client.post(f"/api/v1/threads/{thread.id}/messages", json={"content": ""})
    assert r.status_code == 422


# ─── Edit + delete ───────────────────────────────────────


@pytest.mark.asyncio
async def test_edit_own_message(client, publisher, thread):
    msg = await _post(client, thread, "typo")
    r = await client.patch(f"/api/v1/messages/{msg['id']}", json={"content": "fixed"})
    assert r.status_code == 200
    assert r.json()["content"] == "fixed"
    assert r.json()["edited_at"] is not None

    [(event_name, payload)] = [
        e for e in publisher.on(Topics.thread(thread.id)) if e[0] == MESSAGE_UPDATED
    ]
    assert payload["content"] == "fixed"


@pytest.mark.asyncio
async def test_edit_someone_elses_message_403(client, users, thread):
    msg = await _post(client, thread)
    client.login(users["bob"])
    r = await client.patch(f"/api/v1/messages/{msg['id']}", json={"content": "hijack"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_delete_is_soft_and_broadcast(client, publisher, thread):
    msg = await _post(client, thread)

    r = await client.delete(f"/api/v1/messages/{msg['id']}")
    assert r.status_code == 204
    assert publisher.named(MESSAGE_DELETED) == [
        (Topics.thread(thread.id), {"messageId": msg["id"], "threadId": thread.id})
    ]

    # Deleted messages can no longer be edited or replied to
    r = await client.patch(f"/api/v1/messages/{msg['id']}", json={"content": "x"})
    assert r.status_code == 404


# ─── Reactions ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_reaction_toggles_and_notifies_author(
    client, db_session, publisher, users, thread
):
    alice, bob = users["alice"], users["bob"]
    msg = await _post(client, thread)

    client.login(bob)
    r = await client.post(f"/api/v1/messages/{msg['id']}/reactions", json={"emoji": "🎉"})
    assert r.status_code == 200
    assert r.json()["added"] is True
    assert [x["emoji"] for x in r.json()["reactions"]] == ["🎉"]

    rows = await _notifications(db_session, alice)
    assert [n.type for n in rows] == ["reaction"]

    r = await client.post(f"/api/v1/messages/{msg['id']}/reactions", json={"emoji": "🎉"})
    assert r.json()["added"] is False
    assert r.json()["reactions"] == []

    reaction_events = publisher.named(MESSAGE_REACTION)
    assert len(reaction_events) == 2
    assert reaction_events[-1][1] == {"messageId": msg["id"], "reactions": []}
    # Removing a reaction does not notify
    assert len(await _notifications(db_session, alice)) == 1


@pytest.mark.asyncio
async def test_reacting_to_own_message_no_notification(client, db_session, users, thread):
    msg = await _post(client, thread)
    await client.post(f"/api/v1/messages/{msg['id']}/reactions", json={"emoji": "👍"})
    assert await _notifications(db_session, users["alice"]) == []


# ─── Watchers ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_watch_and_unwatch_thread(client, db_session, users, thread):
    bob = users["bob"]

    r = await client.post(f"/api/v1/threads/{thread.id}/watchers")
    assert r.json() == {"success": True, "changed": True}
    r = await client.post(f"/api/v1/threads/{thread.id}/watchers")
    assert r.json()["changed"] is False

    r = await client.post(
        f"/api/v1/threads/{thread.id}/watchers", json={"user_id": str(bob.id)}
    )
    assert r.json()["changed"] is True

    client.login(users["carol"])
    await _post(client, thread, "update")
    assert len(await _notifications(db_session, bob)) == 1

    r = await client.request(
        "DELETE", f"/api/v1/threads/{thread.id}/watchers", json={"user_id": str(bob.id)}
    )
    assert r.json()["changed"] is True
    await _post(client, thread, "another update")
    assert len(await _notifications(db_session, bob)) == 1


@pytest.mark.asyncio
async def test_requires_authentication(unauthenticated_client, thread):
    r = await unauthenticated_client.post(
        f"/api/v1/threads/{thread.id}/messages", json={"content": "hi"}
    )
    assert r.status_code == 401
