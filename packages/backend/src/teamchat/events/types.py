"""Real-time event names and topic naming.

Centralizing event names as constants prevents typos and makes it easy to
discover everything a client may receive. Topics are derived from an
entity kind and id, so a client that subscribes late computes the same
topic the server publishes on.
"""

# ─── Messages ────────────────────────────────────────────

MESSAGE_SENT = "message:sent"
MESSAGE_UPDATED = "message:updated"
MESSAGE_DELETED = "message:deleted"
MESSAGE_REACTION = "message:reaction"
MESSAGE_REPLY = "message:reply"

# ─── Tasks / projects / notes ────────────────────────────

TASK_CREATED = "task:created"
TASK_UPDATED = "task:updated"
PROJECT_MEMBER_ADDED = "project:member:added"
NOTE_SHARED = "note:shared"

# ─── Notifications + presence ────────────────────────────

NOTIFICATION = "notification"
TYPING_START = "typing:start"
TYPING_STOP = "typing:stop"
USER_JOINED = "user:joined"
USER_LEFT = "user:left"

# ─── DMs / workspace / channels ──────────────────────────

DM_RECEIVED = "dm:received"
WORKSPACE_UPDATED = "workspace:updated"
CHANNEL_CREATED = "channel:created"
CHANNEL_UPDATED = "channel:updated"
CHANNEL_DELETED = "channel:deleted"


# ─── Topics ──────────────────────────────────────────────

TOPIC_KINDS = frozenset(
    {
        "channel",
        "thread",
        "project",
        "user",
        "notifications",
        "presence",
        "dm",
        "workspace",
    }
)


def topic_for(kind: str, entity_id) -> str:
    """Build the broadcast topic for an entity: ``"{kind}:{id}"``."""
    if kind not in TOPIC_KINDS:
        raise ValueError(f"Unknown topic kind: {kind!r}")
    return f"{kind}:{entity_id}"


def parse_topic(topic: str) -> tuple[str, str]:
    """Split a topic back into (kind, entity_id). Raises ValueError if malformed."""
    kind, sep, entity_id = topic.partition(":")
    if not sep or not entity_id or kind not in TOPIC_KINDS:
        raise ValueError(f"Invalid topic: {topic!r}")
    return kind, entity_id


class Topics:
    """Shorthand builders, one per entity kind."""

    @staticmethod
    def channel(channel_id) -> str:
        return topic_for("channel", channel_id)

    @staticmethod
    def thread(thread_id) -> str:
        return topic_for("thread", thread_id)

    @staticmethod
    def project(project_id) -> str:
        return topic_for("project", project_id)

    @staticmethod
    def user(user_id) -> str:
        return topic_for("user", user_id)

    @staticmethod
    def notifications(user_id) -> str:
        return topic_for("notifications", user_id)

    @staticmethod
    def presence(channel_id) -> str:
        return topic_for("presence", channel_id)

    @staticmethod
    def dm(conversation_id) -> str:
        return topic_for("dm", conversation_id)

    @staticmethod
    def workspace(workspace_id) -> str:
        return topic_for("workspace", workspace_id)
