"""Error types shared across the package.

Guard failures (wrong turn, role full, access denied, ...) are ordinary
outcomes of an operation and are returned as ``LobbyError`` values.
Failures talking to collaborators (the remote lobby service, the access
store, the Discord member roster) are raised as exceptions.
"""

from dataclasses import dataclass, field
from typing import Any

# LobbyError codes
VALIDATION_ERROR = "validation_error"
NOT_FOUND = "not_found"
ACCESS_DENIED = "access_denied"
ROLE_UNAVAILABLE = "role_unavailable"
ALREADY_QUEUED = "already_queued"
LOBBY_FULL = "lobby_full"
NOT_QUEUED = "not_queued"
NOT_YOUR_TURN = "not_your_turn"
DRAFT_FINISHED = "draft_finished"
INVALID_STATE = "invalid_state"
NOT_CREATOR = "not_creator"
REMOTE_ERROR = "remote_error"


@dataclass
class LobbyError:
    """Error result from a lobby or access operation."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class RemoteServiceError(Exception):
    """A collaborator call failed (network, HTTP status or storage error)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error
        self.applied: list[str] = []  # Mutations that went through before the failure


class MembershipLookupError(RemoteServiceError):
    """Looking up a player's chat-platform groups failed."""
