"""Service-layer exceptions. Routers translate these into HTTP errors."""


class TeamchatError(Exception):
    """Base for expected, user-facing failures."""


class NotFoundError(TeamchatError):
    """The target entity does not exist (404)."""


class ForbiddenError(TeamchatError):
    """The caller may not act on the target entity (403)."""


class ConflictError(TeamchatError):
    """The change collides with existing state (409)."""
