"""Notification fan-out: one domain event in, one row per interested user out.

Who counts as interested differs per entity (task watchers, mentioned
users, project members...), so the caller passes an audience resolver and
the fan-out itself never branches on entity kind.
"""

from teamchat.notifications.fanout import (
    FanoutResult,
    NotificationEvent,
    NotificationFanout,
)

__all__ = ["FanoutResult", "NotificationEvent", "NotificationFanout"]
