"""Push delivery to registered devices.

Mobile tokens (ios/android) go through the Expo push API; other
platforms are logged as unsupported. Every attempt leaves a
PushNotificationLog row, and tokens Expo reports as no longer registered
are deactivated so we stop trying them.
"""

import abc
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.config import settings
from teamchat.db.models import DeviceToken, PushNotificationLog

logger = structlog.get_logger()

EXPO_PLATFORMS = frozenset({"ios", "android"})


class PushDeliveryError(Exception):
    """The push provider refused a message."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


@dataclass
class PushResult:
    token: str
    platform: str
    success: bool
    ticket_id: Optional[str] = None
    error: Optional[str] = None


class PushSender(abc.ABC):
    @abc.abstractmethod
    async def send(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        data: Optional[dict[str, str]] = None,
        notification_id: Optional[int] = None,
    ) -> list[PushResult]:
        """Deliver to every active device of the user. One result per device."""


class NullPushSender(PushSender):
    """Push disabled: nothing is sent."""

    async def send(self, user_id, title, body, data=None, notification_id=None):
        return []


class ExpoPushSender(PushSender):
    def __init__(
        self,
        db: AsyncSession,
        client: Optional[httpx.AsyncClient] = None,
        url: Optional[str] = None,
        access_token: Optional[str] = None,
    ):
        self.db = db
        self.client = client
        self.url = url or settings.expo_push_url
        self.access_token = settings.expo_access_token if access_token is None else access_token

    async def send(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        data: Optional[dict[str, str]] = None,
        notification_id: Optional[int] = None,
    ) -> list[PushResult]:
        result = await self.db.execute(
            select(DeviceToken).where(
                DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True)
            )
        )
        devices = list(result.scalars().all())
        if not devices:
            logger.debug("push.no_devices", user_id=str(user_id))
            return []

        payload_data = {**(data or {}), "notificationId": str(notification_id or "")}

        if self.client is not None:
            results = [
                await self._send_one(self.client, d, title, body, payload_data, notification_id)
                for d in devices
            ]
        else:
            async with httpx.AsyncClient(timeout=settings.push_timeout_seconds) as client:
                results = [
                    await self._send_one(client, d, title, body, payload_data, notification_id)
                    for d in devices
                ]

        await self.db.commit()
        return results

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        device: DeviceToken,
        title: str,
        body: str,
        data: dict[str, str],
        notification_id: Optional[int],
    ) -> PushResult:
        log = logger.bind(user_id=str(device.user_id), platform=device.platform)
        try:
            if device.platform not in EXPO_PLATFORMS:
                raise PushDeliveryError(f"Unsupported platform: {device.platform}")
            ticket = await self._post(client, device.token, title, body, data)
        except (PushDeliveryError, httpx.HTTPError) as e:
            log.warning("push.delivery_failed", error=str(e))
            self._record(device, notification_id, title, body, data, "failed", str(e))
            if isinstance(e, PushDeliveryError) and e.code == "DeviceNotRegistered":
                device.is_active = False
                log.info("push.token_deactivated")
            return PushResult(
                token=device.token, platform=device.platform, success=False, error=str(e)
            )

        self._record(device, notification_id, title, body, data, "sent", None)
        return PushResult(
            token=device.token,
            platform=device.platform,
            success=True,
            ticket_id=ticket.get("id"),
        )

    async def _post(
        self,
        client: httpx.AsyncClient,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        response = await client.post(
            self.url,
            json={
                "to": token,
                "sound": "default",
                "title": title,
                "body": body,
                "data": data,
                "badge": 1,
                "priority": "high",
            },
            headers=headers,
        )
        response.raise_for_status()

        ticket = response.json().get("data") or {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}
        if ticket.get("status") == "error":
            raise PushDeliveryError(
                ticket.get("message") or "Expo push failed",
                code=(ticket.get("details") or {}).get("error"),
            )
        return ticket

    def _record(
        self,
        device: DeviceToken,
        notification_id: Optional[int],
        title: str,
        body: str,
        data: dict[str, str],
        status: str,
        error: Optional[str],
    ) -> None:
        self.db.add(
            PushNotificationLog(
                user_id=device.user_id,
                notification_id=notification_id,
                platform=device.platform,
                device_token=device.token,
                title=title,
                body=body,
                data=data,
                status=status,
                error=error,
            )
        )


def get_push_sender(db: AsyncSession) -> PushSender:
    """Push sender for this request, per TEAMCHAT_PUSH_ENABLED."""
    if not settings.push_enabled:
        return NullPushSender()
    return ExpoPushSender(db)
