"""Tests for Expo push delivery.

Learn: httpx.MockTransport stands in for the Expo API, so the real
request-building and ticket-parsing code runs without network access.
"""

import json

import httpx
import pytest
from sqlalchemy import select

from teamchat.db.models import DeviceToken, PushNotificationLog
from teamchat.notifications.push import ExpoPushSender, NullPushSender, get_push_sender

EXPO_URL = "https://expo.test/push/send"


def _expo(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _add_device(db, user, token, platform="ios", is_active=True) -> DeviceToken:
    device = DeviceToken(user_id=user.id, token=token, platform=platform, is_active=is_active)
    db.add(device)
    await db.commit()
    return device


async def _logs(db) -> list[PushNotificationLog]:
    result = await db.execute(select(PushNotificationLog).order_by(PushNotificationLog.id))
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_sends_to_each_active_device(db_session, users):
    bob = users["bob"]
    await _add_device(db_session, bob, "ExponentPushToken[a]", "ios")
    await _add_device(db_session, bob, "ExponentPushToken[b]", "android")
    await _add_device(db_session, bob, "ExponentPushToken[old]", "ios", is_active=False)

    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"status": "ok", "id": "ticket-1"}})

    async with _expo(handler) as client:
        sender = ExpoPushSender(db_session, client=client, url=EXPO_URL, access_token="")
        results = await sender.send(
            bob.id, "Task Updated", "alice updated it", data={"type": "task_updated"},
            notification_id=None,
        )

    assert sorted(r["to"] for r in requests) == ["ExponentPushToken[a]", "ExponentPushToken[b]"]
    assert requests[0]["title"] == "Task Updated"
    assert requests[0]["data"]["type"] == "task_updated"
    assert all(r.success and r.ticket_id == "ticket-1" for r in results)
    assert [log.status for log in await _logs(db_session)] == ["sent", "sent"]


@pytest.mark.asyncio
async def test_no_devices_sends_nothing(db_session, users):
    def handler(request):
        raise AssertionError("should not be called")

    async with _expo(handler) as client:
        sender = ExpoPushSender(db_session, client=client, url=EXPO_URL)
        assert await sender.send(users["bob"].id, "t", "b") == []


@pytest.mark.asyncio
async def test_unregistered_token_deactivated(db_session, users):
    device = await _add_device(db_session, users["bob"], "ExponentPushToken[gone]")

    def handler(request):
        return httpx.Response(
            200,
            json={
                "data": {
                    "status": "error",
                    "message": "not a registered push token",
                    "details": {"error": "DeviceNotRegistered"},
                }
            },
        )

    async with _expo(handler) as client:
        sender = ExpoPushSender(db_session, client=client, url=EXPO_URL)
        [result] = await sender.send(users["bob"].id, "t", "b")

    assert not result.success
    assert device.is_active is False
    [log] = await _logs(db_session)
    assert log.status == "failed"
    assert "not a registered" in log.error


@pytest.mark.asyncio
async def test_unsupported_platform_logged_as_failed(db_session, users):
    await _add_device(db_session, users["bob"], "web-subscription-1", "web")

    def handler(request):
        raise AssertionError("web tokens never reach Expo")

    async with _expo(handler) as client:
        sender = ExpoPushSender(db_session, client=client, url=EXPO_URL)
        [result] = await sender.send(users["bob"].id, "t", "b")

    assert not result.success
    assert "Unsupported platform" in result.error
    [log] = await _logs(db_session)
    assert log.platform == "web"
    assert log.status == "failed"


@pytest.mark.asyncio
async def test_http_error_recorded(db_session, users):
    device = await _add_device(db_session, users["bob"], "ExponentPushToken[x]")

    def handler(request):
        return httpx.Response(503, json={"errors": [{"message": "unavailable"}]})

    async with _expo(handler) as client:
        sender = ExpoPushSender(db_session, client=client, url=EXPO_URL)
        [result] = await sender.send(users["bob"].id, "t", "b")

    assert not result.success
    assert device.is_active is True
    assert [log.status for log in await _logs(db_session)] == ["failed"]


def test_push_disabled_by_default():
    assert isinstance(get_push_sender(None), NullPushSender)
