"""Queue manager for pugqueue.

This module provides the QueueManager class, the single mutation point for
lobby queues. Queue state lives in the remote lobby service; the manager
validates actions against distribution rules and access configs, forwards
them to the service, and drives the captain draft of captain-draft lobbies.

Mutations of one lobby are serialized by a per-lobby lock. Draft state is
kept in memory and optionally persisted when a session factory is provided.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pugqueue.errors import (
    ACCESS_DENIED,
    ALREADY_QUEUED,
    INVALID_STATE,
    LOBBY_FULL,
    NOT_CREATOR,
    NOT_FOUND,
    NOT_QUEUED,
    REMOTE_ERROR,
    ROLE_UNAVAILABLE,
    VALIDATION_ERROR,
    LobbyError,
    RemoteServiceError,
)
from pugqueue.lobby.client import LobbyServiceClient
from pugqueue.lobby.draft import DraftStateMachine
from pugqueue.lobby.models import (
    Distribution,
    DraftPhase,
    DraftState,
    Lobby,
    QueuedPlayer,
)
from pugqueue.lobby.requirements import RequirementTracker
from pugqueue.lobby.strategies import build_strategies
from pugqueue.roles import TEAM_TAGS, ClassRole, RoleTag, Team, is_known_tag

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from pugqueue.access.resolver import AccessResolver
    from pugqueue.formats import FormatCatalogue

logger = logging.getLogger(__name__)

# Tags a queued player may add to or remove from themselves
SELF_SERVICE_TAGS = frozenset(
    {RoleTag.ACTIVE.value, RoleTag.CAPTAIN_A.value, RoleTag.CAPTAIN_B.value}
)

# Tags only the draft and substitution flows assign
MANAGED_TAGS = frozenset(
    {RoleTag.PLAYER.value, RoleTag.PICKED.value, RoleTag.NEEDS_SUBSTITUTE.value}
)


@dataclass
class LobbyEvent:
    """Something players of a lobby should be told about.

    Kinds: lobby_ready, all_active, draft_started, pick_made, pick_expired,
    draft_complete, assignment_failed, draft_failed, lobby_closed.
    """

    kind: str
    lobby_id: str
    data: dict[str, Any] = field(default_factory=dict)


Notifier = Callable[[LobbyEvent], Awaitable[None]]


class QueueManager:
    """Serialized mutation point for lobby queues.

    This class is responsible for:
    - Creating and closing lobbies
    - Join, leave, kick and role changes, gated by the lobby's access config
    - Substitutes (ringers) for players who have to drop out
    - Running the captain draft and its pick deadlines
    - Persisting draft state to the database (if session factory provided)
    """

    def __init__(
        self,
        client: LobbyServiceClient,
        resolver: "AccessResolver",
        catalogue: "FormatCatalogue",
        tracker: RequirementTracker | None = None,
        session_factory: "async_sessionmaker[AsyncSession] | None" = None,
        default_pick_timeout: int = 60,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the queue manager.

        Args:
            client: Client for the remote lobby service
            resolver: Access resolver gating role-assuming actions
            catalogue: Formats lobbies can be created with
            tracker: Requirement tracker (a new one if not provided)
            session_factory: Optional SQLAlchemy async session factory for
                persisting drafts. If not provided, drafts are in-memory only.
            default_pick_timeout: Seconds per pick when a lobby sets none
            notifier: Optional callback receiving lobby events
            clock: Source of the current time
        """
        self.client = client
        self.resolver = resolver
        self.catalogue = catalogue
        self.tracker = tracker or RequirementTracker()
        self.strategies = build_strategies(self.tracker)
        self.draft_machine = DraftStateMachine(self.tracker)
        self.default_pick_timeout = default_pick_timeout
        self._session_factory = session_factory
        self._notifier = notifier
        self._now = clock or (lambda: datetime.now(UTC))

        # Locks exist only while an operation on the lobby is running or waiting
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._drafts: dict[str, DraftState] = {}  # lobby_id -> DraftState
        self._expiry_tasks: set[asyncio.Task] = set()

    # Persistence

    async def _persist_draft(self, draft: DraftState) -> None:
        """Persist a draft to the database if persistence is enabled."""
        if self._session_factory is None:
            return

        from pugqueue.db.repositories.drafts import DraftRepository

        try:
            async with self._session_factory() as session:
                await DraftRepository(session).save(draft)
                await session.commit()
        except Exception as e:
            # In-memory state is the source of truth
            logger.warning(
                f"Failed to persist draft of lobby {draft.lobby_id}: {e}. "
                "In-memory state remains valid."
            )

    async def _delete_draft(self, lobby_id: str) -> None:
        """Delete a draft from the database if persistence is enabled."""
        if self._session_factory is None:
            return

        from pugqueue.db.repositories.drafts import DraftRepository

        try:
            async with self._session_factory() as session:
                await DraftRepository(session).delete(lobby_id)
                await session.commit()
        except Exception as e:
            logger.warning(
                f"Failed to delete draft of lobby {lobby_id}: {e}. "
                "Draft already removed from memory."
            )

    async def restore(self) -> int:
        """Load unfinished drafts from the database and re-arm their deadlines.

        Returns:
            Number of drafts restored
        """
        if self._session_factory is None:
            return 0

        from pugqueue.db.repositories.drafts import DraftRepository

        async with self._session_factory() as session:
            drafts = await DraftRepository(session).list_open()

        for draft in drafts:
            self._drafts[draft.lobby_id] = draft
            if draft.phase is DraftPhase.DRAFTING:
                self._schedule_expiry(draft)

        logger.info(f"Restored {len(drafts)} drafts from database")
        return len(drafts)

    async def shutdown(self) -> None:
        """Stop pending pick deadline timers."""
        for task in list(self._expiry_tasks):
            task.cancel()
        if self._expiry_tasks:
            await asyncio.gather(*self._expiry_tasks, return_exceptions=True)
        self._expiry_tasks.clear()

    # Helpers

    @asynccontextmanager
    async def _lobby_lock(self, lobby_id: str) -> AsyncIterator[None]:
        """Serialize mutations of one lobby.

        The lock is dropped once nobody holds or waits for it, so lobby IDs
        that were only looked up once don't accumulate.
        """
        lock = self._locks.get(lobby_id)
        if lock is None:
            lock = self._locks[lobby_id] = asyncio.Lock()
        self._lock_users[lobby_id] = self._lock_users.get(lobby_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[lobby_id] -= 1
            if not self._lock_users[lobby_id]:
                del self._lock_users[lobby_id]
                del self._locks[lobby_id]

    async def _discard_draft(self, lobby_id: str) -> None:
        """Forget the draft of a lobby that is gone."""
        if self._drafts.pop(lobby_id, None) is not None:
            await self._delete_draft(lobby_id)

    async def _notify(self, event: LobbyEvent) -> None:
        logger.info(f"Lobby {event.lobby_id}: {event.kind} {event.data}")
        if self._notifier is None:
            return
        try:
            await self._notifier(event)
        except Exception as e:
            logger.warning(f"Failed to deliver {event.kind} for lobby {event.lobby_id}: {e}")

    def _remote_error(
        self, action: str, lobby_id: str | None, player_id: str | None, error: RemoteServiceError
    ) -> LobbyError:
        logger.error(
            f"{action} failed for lobby {lobby_id}, player {player_id}: {error.message}"
        )
        return LobbyError(
            code=REMOTE_ERROR,
            message="The lobby service could not complete the request",
            details={"action": action, "status": error.status_code, "error": error.error},
        )

    async def _fetch(self, lobby_id: str) -> Lobby | LobbyError:
        lobby = await self.client.get_by_id(lobby_id)
        if lobby is None:
            return LobbyError(code=NOT_FOUND, message="Lobby not found")
        return lobby

    def _pick_timeout(self, lobby: Lobby) -> int:
        return lobby.pick_timeout or self.default_pick_timeout

    def _draft_for(self, lobby: Lobby) -> DraftState | None:
        if not self.strategies[lobby.distribution].drafts:
            return None
        draft = self._drafts.get(lobby.id)
        if draft is None:
            draft = DraftState(lobby_id=lobby.id)
            self._drafts[lobby.id] = draft
        return draft

    def _roster_locked(self, lobby: Lobby) -> LobbyError | None:
        """Reject queue changes once a captain draft has started."""
        draft = self._draft_for(lobby)
        if draft is not None and draft.phase is not DraftPhase.COLLECTING:
            return LobbyError(
                code=INVALID_STATE,
                message="The draft has started, ask the creator for a substitute instead",
                details={"phase": draft.phase.value},
            )
        return None

    async def _check_access(
        self, lobby: Lobby, player_id: str, roles: list[str]
    ) -> LobbyError | None:
        for role in roles:
            decision = await self.resolver.can_assume_role(lobby, player_id, role)
            if decision.allowed:
                continue
            if role == RoleTag.PLAYER.value:
                message = "You cannot join this lobby"
            else:
                message = f"You are not allowed to play {role}"
            logger.info(
                f"Access denied in lobby {lobby.id}: {player_id} as {role} "
                f"({decision.reason}, list {decision.list_name})"
            )
            return LobbyError(
                code=ACCESS_DENIED,
                message=message,
                details={"role": role, **decision.to_dict()},
            )
        return None

    # Lobby lifecycle

    async def create_lobby(
        self,
        creator_id: str,
        format_name: str,
        distribution: Distribution,
        region: str,
        access_config: str | None = None,
        afk_check: bool = True,
        pick_timeout: int | None = None,
    ) -> Lobby | LobbyError:
        """Create a lobby.

        Args:
            creator_id: Player creating the lobby
            format_name: Name of a format in the catalogue
            distribution: How players are distributed into roles
            region: Server region
            access_config: Access config gating roles, looked up in the
                creator's scope and then the shared scope
            afk_check: Whether an AFK check runs once the queue fills
            pick_timeout: Seconds per captain pick (default from settings)

        Returns:
            The created lobby or LobbyError
        """
        lobby_format = self.catalogue.get(format_name)
        if lobby_format is None or lobby_format.hidden:
            return LobbyError(
                code=VALIDATION_ERROR,
                message=f"Unknown format '{format_name}'",
                details={"format": format_name},
            )
        if not lobby_format.supports(distribution):
            return LobbyError(
                code=VALIDATION_ERROR,
                message=(
                    f"{lobby_format.name} can't be played with "
                    f"{distribution.display_name} distribution"
                ),
            )
        if pick_timeout is not None and pick_timeout <= 0:
            return LobbyError(code=VALIDATION_ERROR, message="Pick timeout must be positive")

        try:
            if access_config:
                access_config = access_config.lower()
                scopes = self.resolver.scopes_for(creator_id)
                if await self.resolver.resolve_config(access_config, scopes) is None:
                    return LobbyError(
                        code=NOT_FOUND,
                        message=f"Access config '{access_config}' does not exist",
                        details={"accessConfig": access_config},
                    )

            lobby = await self.client.create(
                creator_id=creator_id,
                distribution=distribution,
                requirements=lobby_format.requirements_for(distribution),
                max_players=lobby_format.max_players,
                region=region,
                data={
                    "format": lobby_format.name,
                    "afkCheck": afk_check,
                    "accessConfig": access_config or None,
                    "captainPickTimeout": pick_timeout or self.default_pick_timeout,
                },
            )
        except RemoteServiceError as e:
            return self._remote_error("create", None, creator_id, e)

        if self.strategies[distribution].drafts:
            draft = DraftState(lobby_id=lobby.id)
            self._drafts[lobby.id] = draft
            await self._persist_draft(draft)

        return lobby

    async def close_lobby(self, lobby_id: str, actor_id: str) -> Lobby | LobbyError:
        """Close a lobby (creator only) and discard its draft."""
        async with self._lobby_lock(lobby_id):
            try:
                lobby = await self._fetch(lobby_id)
                if isinstance(lobby, LobbyError):
                    return lobby
                if lobby.created_by != actor_id:
                    return LobbyError(code=NOT_CREATOR, message="Only the creator can close the lobby")

                closed = await self.client.close(lobby_id)
            except RemoteServiceError as e:
                return self._remote_error("close", lobby_id, actor_id, e)

            await self._discard_draft(lobby_id)

        await self._notify(LobbyEvent("lobby_closed", lobby_id))
        return closed

    # Queue membership

    async def join(
        self,
        lobby_id: str,
        player_id: str,
        name: str,
        roles: list[str],
        steam_id: str | None = None,
    ) -> Lobby | LobbyError:
        """Queue a player with the roles they declare.

        Args:
            lobby_id: Lobby to join
            player_id: Joining player
            name: Display name
            roles: Declared roles, validated by the lobby's distribution
            steam_id: Linked Steam account

        Returns:
            The updated lobby or LobbyError
        """
        async with self._lobby_lock(lobby_id):
            try:
                return await self._join(lobby_id, player_id, name, roles, steam_id)
            except RemoteServiceError as e:
                return self._remote_error("join", lobby_id, player_id, e)

    async def _join(
        self,
        lobby_id: str,
        player_id: str,
        name: str,
        roles: list[str],
        steam_id: str | None,
    ) -> Lobby | LobbyError:
        lobby = await self._fetch(lobby_id)
        if isinstance(lobby, LobbyError):
            return lobby

        if not lobby.status.is_queueing:
            return LobbyError(
                code=INVALID_STATE,
                message="This lobby is no longer accepting players",
                details={"status": lobby.status.value},
            )
        if lobby.has_player(player_id):
            return LobbyError(code=ALREADY_QUEUED, message="You are already queued in this lobby")
        if lobby.is_full:
            return LobbyError(code=LOBBY_FULL, message="This lobby is full")
        locked = self._roster_locked(lobby)
        if locked is not None:
            return locked

        strategy = self.strategies[lobby.distribution]
        plan = strategy.plan_join(lobby, roles)
        if isinstance(plan, LobbyError):
            return plan

        denied = await self._check_access(lobby, player_id, plan.access_checks)
        if denied is not None:
            return denied

        unavailable = strategy.check_capacity(lobby, plan)
        if unavailable is not None:
            return unavailable

        tags = set(plan.roles)
        if player_id == lobby.created_by:
            tags.add(RoleTag.CREATOR.value)
        if not lobby.afk_check:
            tags.add(RoleTag.ACTIVE.value)

        player = QueuedPlayer(player_id=player_id, name=name, steam_id=steam_id, roles=tags)
        updated = await self.client.join(lobby_id, player)
        logger.info(f"Player {player_id} joined lobby {lobby_id} as {sorted(tags)}")

        await self._evaluate_draft(updated)
        return updated

    async def leave(self, lobby_id: str, player_id: str) -> Lobby | LobbyError:
        """Remove a player from a queue."""
        async with self._lobby_lock(lobby_id):
            try:
                lobby = await self._fetch(lobby_id)
                if isinstance(lobby, LobbyError):
                    return lobby
                if not lobby.has_player(player_id):
                    return LobbyError(code=NOT_QUEUED, message="You are not queued in this lobby")
                locked = self._roster_locked(lobby)
                if locked is not None:
                    return locked

                updated = await self.client.leave(lobby_id, player_id)
            except RemoteServiceError as e:
                return self._remote_error("leave", lobby_id, player_id, e)

            logger.info(f"Player {player_id} left lobby {lobby_id}")
            return updated

    async def kick(self, lobby_id: str, actor_id: str, player_id: str) -> Lobby | LobbyError:
        """Remove another player from a queue (creator only)."""
        async with self._lobby_lock(lobby_id):
            try:
                lobby = await self._fetch(lobby_id)
                if isinstance(lobby, LobbyError):
                    return lobby
                if lobby.created_by != actor_id:
                    return LobbyError(code=NOT_CREATOR, message="Only the creator can kick players")
                if actor_id == player_id:
                    return LobbyError(code=VALIDATION_ERROR, message="You cannot kick yourself")
                if not lobby.has_player(player_id):
                    return LobbyError(code=NOT_QUEUED, message="That player is not queued")
                locked = self._roster_locked(lobby)
                if locked is not None:
                    return locked

                updated = await self.client.leave(lobby_id, player_id)
            except RemoteServiceError as e:
                return self._remote_error("kick", lobby_id, player_id, e)

            logger.info(f"Player {player_id} kicked from lobby {lobby_id} by {actor_id}")
            return updated

    # Role changes

    async def add_role(
        self, lobby_id: str, actor_id: str, player_id: str, role: str
    ) -> Lobby | LobbyError:
        """Add a tag to a queued player.

        Players may add self-service tags (``active``, captain tags) to
        themselves; the creator may also add class and team tags. Tags owned
        by the draft and substitution flows are rejected.
        """
        async with self._lobby_lock(lobby_id):
            try:
                return await self._change_role(lobby_id, actor_id, player_id, role, add=True)
            except RemoteServiceError as e:
                return self._remote_error("add_role", lobby_id, player_id, e)

    async def remove_role(
        self, lobby_id: str, actor_id: str, player_id: str, role: str
    ) -> Lobby | LobbyError:
        """Remove a tag from a queued player."""
        async with self._lobby_lock(lobby_id):
            try:
                return await self._change_role(lobby_id, actor_id, player_id, role, add=False)
            except RemoteServiceError as e:
                return self._remote_error("remove_role", lobby_id, player_id, e)

    async def _change_role(
        self, lobby_id: str, actor_id: str, player_id: str, role: str, add: bool
    ) -> Lobby | LobbyError:
        if not is_known_tag(role):
            return LobbyError(
                code=VALIDATION_ERROR, message=f"Unknown role '{role}'", details={"role": role}
            )
        if role in MANAGED_TAGS or role == RoleTag.CREATOR.value:
            return LobbyError(
                code=VALIDATION_ERROR,
                message=f"The {role} role can't be changed directly",
                details={"role": role},
            )

        lobby = await self._fetch(lobby_id)
        if isinstance(lobby, LobbyError):
            return lobby

        player = lobby.get_player(player_id)
        if player is None:
            return LobbyError(code=NOT_QUEUED, message="That player is not queued")
        if actor_id != player_id and actor_id != lobby.created_by:
            return LobbyError(
                code=NOT_CREATOR, message="Only the creator can change other players' roles"
            )
        if role not in SELF_SERVICE_TAGS and actor_id != lobby.created_by:
            return LobbyError(
                code=NOT_CREATOR,
                message=f"Only the creator can change the {role} role",
                details={"role": role},
            )
        if role != RoleTag.ACTIVE.value:
            locked = self._roster_locked(lobby)
            if locked is not None:
                return locked

        if add:
            if player.has(role):
                return LobbyError(
                    code=VALIDATION_ERROR,
                    message=f"{player.name} already has the {role} role",
                    details={"role": role},
                )
            if role in (t.captain_tag for t in Team):
                if not self.strategies[lobby.distribution].drafts:
                    return LobbyError(
                        code=VALIDATION_ERROR, message="This lobby has no captains"
                    )
                if player.captain_of is not None:
                    return LobbyError(
                        code=VALIDATION_ERROR,
                        message=f"{player.name} is already a captain",
                    )
            requirement = lobby.requirement(role)
            if requirement is not None and not self.tracker.is_role_available(role, lobby):
                return LobbyError(
                    code=ROLE_UNAVAILABLE,
                    message=f"The {role} role is already full",
                    details={"role": role},
                )
            if ClassRole.parse(role) is not None or role in TEAM_TAGS:
                denied = await self._check_access(lobby, player_id, [role])
                if denied is not None:
                    return denied

            updated = await self.client.add_role(lobby_id, player_id, role)
        else:
            if not player.has(role):
                return LobbyError(
                    code=VALIDATION_ERROR,
                    message=f"{player.name} doesn't have the {role} role",
                    details={"role": role},
                )
            updated = await self.client.remove_role(lobby_id, player_id, role)

        logger.info(
            f"{'Added' if add else 'Removed'} {role} for {player_id} in lobby {lobby_id} "
            f"(by {actor_id})"
        )
        await self._evaluate_draft(updated)
        return updated

    async def confirm_active(self, lobby_id: str, player_id: str) -> Lobby | LobbyError:
        """Mark a player as present for the AFK check."""
        async with self._lobby_lock(lobby_id):
            try:
                lobby = await self._fetch(lobby_id)
                if isinstance(lobby, LobbyError):
                    return lobby
                player = lobby.get_player(player_id)
                if player is None:
                    return LobbyError(code=NOT_QUEUED, message="You are not queued in this lobby")
                if player.has(RoleTag.ACTIVE):
                    return LobbyError(
                        code=VALIDATION_ERROR, message="You've already been marked as not AFK"
                    )

                updated = await self.client.add_role(lobby_id, player_id, RoleTag.ACTIVE.value)
            except RemoteServiceError as e:
                return self._remote_error("confirm_active", lobby_id, player_id, e)

            remaining = [p.player_id for p in updated.players if not p.has(RoleTag.ACTIVE)]
            if not remaining:
                await self._notify(LobbyEvent("all_active", lobby_id))
            return updated

    # Substitutes

    async def request_substitute(
        self, lobby_id: str, actor_id: str, player_id: str
    ) -> Lobby | LobbyError:
        """Flag a player as needing a substitute (creator only, one at a time)."""
        async with self._lobby_lock(lobby_id):
            try:
                lobby = await self._fetch(lobby_id)
                if isinstance(lobby, LobbyError):
                    return lobby
                if lobby.created_by != actor_id:
                    return LobbyError(
                        code=NOT_CREATOR, message="Only the creator can request a substitute"
                    )
                player = lobby.get_player(player_id)
                if player is None:
                    return LobbyError(code=NOT_QUEUED, message="That player is not queued")
                pending = [p for p in lobby.players if p.has(RoleTag.NEEDS_SUBSTITUTE)]
                if pending:
                    return LobbyError(
                        code=INVALID_STATE,
                        message=f"{pending[0].name} is still waiting for a substitute",
                        details={"player": pending[0].player_id},
                    )

                updated = await self.client.add_role(
                    lobby_id, player_id, RoleTag.NEEDS_SUBSTITUTE.value
                )
            except RemoteServiceError as e:
                return self._remote_error("request_substitute", lobby_id, player_id, e)

            logger.info(f"Substitute requested for {player_id} in lobby {lobby_id}")
            return updated

    async def substitute(
        self,
        lobby_id: str,
        player_id: str,
        name: str,
        steam_id: str | None = None,
    ) -> Lobby | LobbyError:
        """Take over the queue entry of the player needing a substitute.

        The new player inherits every role of the replaced player except the
        substitute flag.
        """
        async with self._lobby_lock(lobby_id):
            try:
                lobby = await self._fetch(lobby_id)
                if isinstance(lobby, LobbyError):
                    return lobby
                flagged = next(
                    (p for p in lobby.players if p.has(RoleTag.NEEDS_SUBSTITUTE)), None
                )
                if flagged is None:
                    return LobbyError(code=NOT_FOUND, message="Nobody needs a substitute")
                if flagged.player_id == player_id:
                    return LobbyError(
                        code=VALIDATION_ERROR, message="You cannot substitute yourself"
                    )
                if lobby.has_player(player_id):
                    return LobbyError(
                        code=ALREADY_QUEUED, message="You are already queued in this lobby"
                    )

                inherited = set(flagged.roles) - {
                    RoleTag.NEEDS_SUBSTITUTE.value,
                    RoleTag.CREATOR.value,
                }
                class_tags = sorted(r for r in inherited if ClassRole.parse(r) is not None)
                denied = await self._check_access(
                    lobby, player_id, [RoleTag.PLAYER.value, *class_tags]
                )
                if denied is not None:
                    return denied
                if player_id == lobby.created_by:
                    inherited.add(RoleTag.CREATOR.value)

                replacement = QueuedPlayer(
                    player_id=player_id, name=name, steam_id=steam_id, roles=inherited
                )
                updated = await self.client.substitute(lobby_id, flagged.player_id, replacement)
            except RemoteServiceError as e:
                return self._remote_error("substitute", lobby_id, player_id, e)

            draft = self._drafts.get(lobby_id)
            if draft is not None and flagged.player_id in draft.picks:
                # A substituted captain keeps their turns
                draft = replace(
                    draft,
                    picks=[player_id if c == flagged.player_id else c for c in draft.picks],
                    version=draft.version + 1,
                )
                self._drafts[lobby_id] = draft
                await self._persist_draft(draft)

            logger.info(f"{player_id} substituted {flagged.player_id} in lobby {lobby_id}")
            return updated

    # Draft

    async def _evaluate_draft(self, lobby: Lobby) -> None:
        """Announce a ready lobby and start its draft once captains are in.

        Must be called with the lobby's lock held.
        """
        if lobby.status.is_terminal:
            await self._discard_draft(lobby.id)
            return

        draft = self._draft_for(lobby)
        if draft is None or draft.phase is not DraftPhase.COLLECTING:
            return

        if not self.tracker.is_ready(lobby):
            return

        if not draft.announced:
            draft = replace(draft, announced=True)
            self._drafts[lobby.id] = draft
            await self._persist_draft(draft)
            await self._notify(
                LobbyEvent("lobby_ready", lobby.id, {"pickTimeout": self._pick_timeout(lobby)})
            )

        started = self.draft_machine.begin(lobby, draft, self._now(), self._pick_timeout(lobby))
        if isinstance(started, LobbyError):
            logger.info(f"Lobby {lobby.id} is ready but can't draft yet: {started.message}")
            return

        self._drafts[lobby.id] = started
        await self._persist_draft(started)
        self._schedule_expiry(started)
        await self._notify(
            LobbyEvent(
                "draft_started",
                lobby.id,
                {"picks": list(started.picks), "captain": started.current_captain},
            )
        )

    async def pick(
        self, lobby_id: str, captain_id: str, target_id: str, role: str
    ) -> Lobby | LobbyError:
        """Pick a player into a class for the captain's team.

        Args:
            lobby_id: Lobby being drafted
            captain_id: Captain making the pick
            target_id: Player being picked
            role: Plain class the player is picked as

        Returns:
            The updated lobby or LobbyError
        """
        async with self._lobby_lock(lobby_id):
            try:
                return await self._pick(lobby_id, captain_id, target_id, role)
            except RemoteServiceError as e:
                return self._remote_error("pick", lobby_id, target_id, e)

    async def _pick(
        self, lobby_id: str, captain_id: str, target_id: str, role: str
    ) -> Lobby | LobbyError:
        lobby = await self._fetch(lobby_id)
        if isinstance(lobby, LobbyError):
            return lobby
        if lobby.status.is_terminal:
            await self._discard_draft(lobby_id)
            return LobbyError(
                code=INVALID_STATE,
                message="This lobby has been closed",
                details={"status": lobby.status.value},
            )
        draft = self._draft_for(lobby)
        if draft is None:
            return LobbyError(code=VALIDATION_ERROR, message="This lobby has no captain draft")

        now = self._now()
        plan = self.draft_machine.validate_pick(lobby, draft, captain_id, target_id, role, now)
        if isinstance(plan, LobbyError):
            return plan

        try:
            updated = await self.client.pick(lobby_id, target_id, plan.tags)
        except RemoteServiceError as e:
            if e.applied:
                logger.error(
                    f"Pick in lobby {lobby_id} partially applied: {target_id} got {e.applied} "
                    f"of {plan.tags}, rolling back"
                )
                await self._rollback_pick(draft, target_id, e.applied)
            raise

        advanced = self.draft_machine.advance(draft, now, self._pick_timeout(lobby))
        self._drafts[lobby_id] = advanced
        await self._persist_draft(advanced)

        logger.info(
            f"{captain_id} picked {target_id} as {plan.role} in lobby {lobby_id}"
            f"{' after the deadline' if plan.expired else ''}"
        )
        await self._notify(
            LobbyEvent(
                "pick_made",
                lobby_id,
                {
                    "captain": captain_id,
                    "player": target_id,
                    "role": plan.role.tag,
                    "expired": plan.expired,
                    "next": advanced.current_captain,
                },
            )
        )

        if advanced.phase is DraftPhase.DRAFTING:
            self._schedule_expiry(advanced)
            return updated

        assigned = await self._assign_captains(updated, advanced)
        if isinstance(assigned, LobbyError):
            # The pick itself went through; assignment is retried separately
            return updated
        return assigned

    async def complete_assignment(self, lobby_id: str) -> Lobby | LobbyError:
        """Retry giving the captains their residual roles."""
        async with self._lobby_lock(lobby_id):
            try:
                lobby = await self._fetch(lobby_id)
                if isinstance(lobby, LobbyError):
                    return lobby
                draft = self._draft_for(lobby)
                if draft is None or draft.phase is not DraftPhase.ASSIGNING:
                    return LobbyError(
                        code=INVALID_STATE, message="This lobby has no roles left to assign"
                    )
                return await self._assign_captains(lobby, draft)
            except RemoteServiceError as e:
                return self._remote_error("complete_assignment", lobby_id, None, e)

    async def _assign_captains(self, lobby: Lobby, draft: DraftState) -> Lobby | LobbyError:
        """Give each captain their team's last open role, all or nothing."""
        assignments = self.draft_machine.residual_assignments(lobby, draft)
        if isinstance(assignments, LobbyError):
            await self._notify(
                LobbyEvent("assignment_failed", lobby.id, {"reason": assignments.message})
            )
            return assignments

        applied: list[tuple[str, str]] = []
        updated = lobby
        try:
            for assignment in assignments:
                for tag in assignment.tags:
                    updated = await self.client.add_role(lobby.id, assignment.captain_id, tag)
                    applied.append((assignment.captain_id, tag))
        except RemoteServiceError as e:
            error = self._remote_error("assign_captains", lobby.id, None, e)
            await self._rollback_assignment(lobby.id, applied)
            await self._notify(
                LobbyEvent("assignment_failed", lobby.id, {"reason": error.message})
            )
            return error

        completed = self.draft_machine.complete(draft)
        self._drafts[lobby.id] = completed
        await self._persist_draft(completed)
        await self._notify(
            LobbyEvent(
                "draft_complete",
                lobby.id,
                {a.captain_id: a.role.tag for a in assignments},
            )
        )
        return updated

    async def _rollback_pick(self, draft: DraftState, target_id: str, applied: list[str]) -> None:
        """Remove the tags of a failed pick so it can be retried.

        If a tag can't be removed the queue no longer matches the draft, and
        the draft is marked failed so no further picks are taken.
        """
        lobby_id = draft.lobby_id
        for tag in reversed(applied):
            try:
                await self.client.remove_role(lobby_id, target_id, tag)
            except RemoteServiceError as e:
                logger.error(
                    f"Failed to roll back {tag} of {target_id} in lobby {lobby_id}: "
                    f"{e.message}. Queue state has diverged from the draft."
                )
                failed = replace(
                    draft,
                    phase=DraftPhase.FAILED,
                    pick_expires=None,
                    version=draft.version + 1,
                )
                self._drafts[lobby_id] = failed
                await self._persist_draft(failed)
                await self._notify(
                    LobbyEvent("draft_failed", lobby_id, {"player": target_id, "role": tag})
                )
                return

    async def _rollback_assignment(self, lobby_id: str, applied: list[tuple[str, str]]) -> None:
        for captain_id, tag in reversed(applied):
            try:
                await self.client.remove_role(lobby_id, captain_id, tag)
            except RemoteServiceError as e:
                logger.error(
                    f"Failed to roll back {tag} of captain {captain_id} in lobby {lobby_id}: "
                    f"{e.message}. Queue state has diverged from the draft."
                )

    def _schedule_expiry(self, draft: DraftState) -> None:
        if draft.pick_expires is None:
            return
        delay = max((draft.pick_expires - self._now()).total_seconds(), 0.0)
        task = asyncio.create_task(self._expire_after(draft.lobby_id, draft.position, delay))
        self._expiry_tasks.add(task)
        task.add_done_callback(self._expiry_tasks.discard)

    async def _expire_after(self, lobby_id: str, position: int, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.handle_pick_expiry(lobby_id, position)

    async def handle_pick_expiry(self, lobby_id: str, expected_position: int) -> DraftState | None:
        """Handle the deadline of a pick.

        Does nothing when the draft has moved past ``expected_position``, has
        finished, or the lobby was closed. Otherwise the captain on the clock
        is reminded; the pick stays theirs.

        Returns:
            The draft if the deadline was still current, else None
        """
        async with self._lobby_lock(lobby_id):
            draft = self._drafts.get(lobby_id)
            if (
                draft is None
                or draft.phase is not DraftPhase.DRAFTING
                or draft.position != expected_position
            ):
                return None

            try:
                lobby = await self.client.get_by_id(lobby_id)
            except RemoteServiceError as e:
                logger.warning(
                    f"Could not check lobby {lobby_id} at its pick deadline: {e.message}"
                )
            else:
                if lobby is None or lobby.status.is_terminal:
                    logger.info(f"Lobby {lobby_id} is gone, dropping its draft")
                    await self._discard_draft(lobby_id)
                    return None

            await self._notify(
                LobbyEvent(
                    "pick_expired",
                    lobby_id,
                    {"captain": draft.current_captain, "position": draft.position},
                )
            )
            return draft

    # Reads

    async def get_lobby(self, lobby_id: str) -> Lobby | LobbyError:
        try:
            return await self._fetch(lobby_id)
        except RemoteServiceError as e:
            return self._remote_error("get_lobby", lobby_id, None, e)

    async def get_active_lobbies(self) -> list[Lobby] | LobbyError:
        try:
            return await self.client.get_active()
        except RemoteServiceError as e:
            return self._remote_error("get_active_lobbies", None, None, e)

    def get_draft(self, lobby_id: str) -> DraftState | None:
        return self._drafts.get(lobby_id)

    async def available_roles(
        self,
        lobby_id: str,
        player_id: str | None = None,
        team: Team | None = None,
    ) -> list[str] | LobbyError:
        """Roles still open in a lobby.

        Args:
            lobby_id: Lobby to inspect
            player_id: Limit to the roles this queued player declared
            team: Per-team view of a captain draft

        Returns:
            Role names or LobbyError
        """
        lobby = await self.get_lobby(lobby_id)
        if isinstance(lobby, LobbyError):
            return lobby

        if player_id is not None:
            player = lobby.get_player(player_id)
            if player is None:
                return LobbyError(code=NOT_QUEUED, message="That player is not queued")
            candidate = player.roles
        else:
            candidate = {r.name for r in lobby.requirements}

        return self.tracker.available_roles(
            candidate, lobby.players, lobby.requirements, team=team
        )

    async def pickable_players(self, lobby_id: str) -> list[QueuedPlayer] | LobbyError:
        """Players a captain can still pick."""
        lobby = await self.get_lobby(lobby_id)
        if isinstance(lobby, LobbyError):
            return lobby
        ids = set(self.draft_machine.pickable_players(lobby))
        return [p for p in lobby.players if p.player_id in ids]
