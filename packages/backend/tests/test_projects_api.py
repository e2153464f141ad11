"""Project membership and note sharing tests.

Learn: Both operations hand something to one user, so the audience is
exactly that user. Doing it to yourself produces no notification.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from teamchat.db.models import Message, Notification
from teamchat.events.types import MESSAGE_SENT, NOTE_SHARED, PROJECT_MEMBER_ADDED, Topics
from teamchat.services.message_service import MessageService


async def _rows(db, user) -> list[Notification]:
    result = await db.execute(select(Notification).where(Notification.user_id == user.id))
    return list(result.scalars().all())


# ═══════════════════════════════════════════════════════════
# Project members
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_add_member(client, db_session, publisher, users, project):
    bob = users["bob"]
    resp = await client.post(
        f"/api/v1/projects/{project.id}/members", json={"user_id": str(bob.id)}
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "member"

    [(event_name, payload)] = publisher.on(Topics.project(project.id))
    assert event_name == PROJECT_MEMBER_ADDED
    assert payload["user_id"] == str(bob.id)

    [row] = await _rows(db_session, bob)
    assert row.type == "project_invitation"
    assert row.message == "You've been added to Apollo"
    assert row.link_url == f"/projects/{project.id}"


@pytest.mark.asyncio
async def test_add_member_posts_system_message(
    client, db_session, publisher, users, project, thread
):
    bob = users["bob"]
    project.channel_id = thread.channel_id
    await db_session.commit()

    resp = await client.post(
        f"/api/v1/projects/{project.id}/members", json={"user_id": str(bob.id)}
    )
    assert resp.status_code == 201

    [message] = (
        await db_session.execute(select(Message).where(Message.message_type == "system"))
    ).scalars().all()
    assert message.thread_id == thread.id
    assert message.content == "alice added a new member to the project"
    assert message.payload == {
        "type": "member_added",
        "userId": str(bob.id),
        "projectId": project.id,
    }
    [(event_name, payload)] = publisher.on(Topics.thread(thread.id))
    assert event_name == MESSAGE_SENT
    assert payload["id"] == message.id


@pytest.mark.asyncio
async def test_add_member_without_channel_posts_nothing(client, db_session, users, project):
    await client.post(
        f"/api/v1/projects/{project.id}/members", json={"user_id": str(users["bob"].id)}
    )
    rows = (await db_session.execute(select(Message))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_system_message_failure_keeps_member(
    client, db_session, users, project, thread, monkeypatch
):
    project.channel_id = thread.channel_id
    await db_session.commit()

    async def broken(self, thread_id, content, metadata=None):
        raise OperationalError("INSERT INTO messages", {}, Exception("disk full"))

    monkeypatch.setattr(MessageService, "create_system_message", broken)

    resp = await client.post(
        f"/api/v1/projects/{project.id}/members", json={"user_id": str(users["bob"].id)}
    )
    assert resp.status_code == 201
    assert resp.json()["project_id"] == project.id
    [row] = await _rows(db_session, users["bob"])
    assert row.type == "project_invitation"


@pytest.mark.asyncio
async def test_add_member_twice_conflicts(client, users, project):
    body = {"user_id": str(users["bob"].id)}
    await client.post(f"/api/v1/projects/{project.id}/members", json=body)
    resp = await client.post(f"/api/v1/projects/{project.id}/members", json=body)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_add_self_is_silent(client, db_session, users, project):
    alice = users["alice"]
    resp = await client.post(
        f"/api/v1/projects/{project.id}/members",
        json={"user_id": str(alice.id), "role": "owner"},
    )
    assert resp.status_code == 201
    assert await _rows(db_session, alice) == []


@pytest.mark.asyncio
async def test_add_member_missing_project_or_user(client, users, project):
    import uuid

    resp = await client.post(
        "/api/v1/projects/9999/members", json={"user_id": str(users["bob"].id)}
    )
    assert resp.status_code == 404

    resp = await client.post(
        f"/api/v1/projects/{project.id}/members", json={"user_id": str(uuid.uuid4())}
    )
    assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════
# Note sharing
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_share_note(client, db_session, publisher, users, note):
    carol = users["carol"]
    resp = await client.post(
        f"/api/v1/notes/{note.id}/share", json={"user_id": str(carol.id)}
    )
    assert resp.status_code == 200
    assert resp.json()["shared"] is True

    assert publisher.named(NOTE_SHARED) == [
        (
            Topics.user(carol.id),
            {"noteId": note.id, "title": "Retro notes", "sharedBy": str(users["alice"].id)},
        )
    ]
    [row] = await _rows(db_session, carol)
    assert row.type == "note_shared"
    assert row.message == 'alice shared "Retro notes" with you'


@pytest.mark.asyncio
async def test_share_note_again_is_noop(client, db_session, publisher, users, note):
    body = {"user_id": str(users["carol"].id)}
    await client.post(f"/api/v1/notes/{note.id}/share", json=body)
    publisher.events.clear()

    resp = await client.post(f"/api/v1/notes/{note.id}/share", json=body)
    assert resp.json()["shared"] is False
    assert publisher.events == []
    assert len(await _rows(db_session, users["carol"])) == 1


@pytest.mark.asyncio
async def test_only_owner_can_share(client, users, note):
    client.login(users["bob"])
    resp = await client.post(
        f"/api/v1/notes/{note.id}/share", json={"user_id": str(users["carol"].id)}
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_share_missing_note_404(client, users):
    resp = await client.post(
        "/api/v1/notes/9999/share", json={"user_id": str(users["carol"].id)}
    )
    assert resp.status_code == 404
