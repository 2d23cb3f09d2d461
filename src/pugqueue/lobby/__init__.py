"""Lobby queues: models, requirement tracking, distribution and drafting."""

from pugqueue.lobby.manager import LobbyEvent, QueueManager
from pugqueue.lobby.models import (
    Distribution,
    DraftPhase,
    DraftState,
    Lobby,
    LobbyStatus,
    QueuedPlayer,
    Requirement,
)

__all__ = [
    "Distribution",
    "DraftPhase",
    "DraftState",
    "Lobby",
    "LobbyEvent",
    "LobbyStatus",
    "QueueManager",
    "QueuedPlayer",
    "Requirement",
]
