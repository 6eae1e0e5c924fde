# src/teamboard/sync/team_context.py

from __future__ import annotations

"""
Team Context: the active team and its live membership roster.

The roster is a join between two live collections:
- the active team's membership sub-collection (one subscription),
- one user-profile document per membership (N nested subscriptions).

Nested pushes only update an index (membership id -> profile); the roster
itself is re-derived from (memberships, index) on every change, so a late
profile push can never clobber a newer membership list.
"""

import logging
from dataclasses import dataclass

from ..core.errors import NotFoundError, TeamboardError, ValidationError
from ..core.models import TEAMS, USERS, Membership, Role, Team, User, members_path
from ..core.ports import SERVER_TIMESTAMP, Document, DocumentStore, Query, Unsubscribe
from .directory import DirectoryCache
from .live import Observable, SubscriptionSlot
from .session import SessionIdentity, SessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RosterEntry:
    membership: Membership
    username: str

    @property
    def user_id(self) -> str:
        return self.membership.user_id

    @property
    def role(self) -> Role:
        return self.membership.role


class TeamContext(Observable):
    """
    Holds at most one active team.

    Listeners receive the active Team (or None) whenever it is replaced.
    Roster listeners (add_roster_listener) receive the derived roster list.
    """

    def __init__(
            self,
            store: DocumentStore,
            session: SessionManager,
            directory: DirectoryCache,
    ) -> None:
        super().__init__()
        self._store = store
        self._session = session
        self._directory = directory
        self._roster_obs = Observable()

        self._team: Team | None = None
        self._team_uid: str | None = None  # uid the team was adopted under

        self._members_sub = SubscriptionSlot("team.members")
        self._memberships: list[Membership] = []
        self._profile_subs: dict[str, SubscriptionSlot] = {}
        self._profiles: dict[str, User] = {}  # membership id -> resolved profile
        self._roster: list[RosterEntry] = []

        self._session_unsub: Unsubscribe | None = None

    # ---- read side ----

    @property
    def active_team(self) -> Team | None:
        return self._team

    @property
    def roster(self) -> list[RosterEntry]:
        return list(self._roster)

    @property
    def memberships(self) -> list[Membership]:
        return list(self._memberships)

    def add_roster_listener(self, callback) -> Unsubscribe:
        return self._roster_obs.add_listener(callback)

    # ---- lifecycle ----

    def start(self) -> None:
        if self._session_unsub is None:
            self._session_unsub = self._session.add_listener(self._on_session)

    def close(self) -> None:
        if self._session_unsub is not None:
            self._session_unsub()
            self._session_unsub = None
        self.clear()

    def _on_session(self, identity: SessionIdentity | None) -> None:
        if self._team is None:
            return
        if identity is None or identity.uid != self._team_uid:
            logger.info("Identity changed; dropping active team %s", self._team.id)
            self.clear()

    def adopt(self, team: Team) -> None:
        """Make `team` the active team, re-establishing every dependent subscription."""
        self._teardown_roster()
        self._team = team
        cur = self._session.current_identity
        self._team_uid = cur.uid if cur is not None else None
        path = members_path(team.id)
        self._members_sub.open(
            lambda cb: self._store.subscribe(Query(path), cb),
            self._on_members_push,
        )
        logger.info("Active team: %s (%s)", team.name, team.id)
        self.emit(team)
        self._publish_roster()

    def clear(self) -> None:
        had_team = self._team is not None
        self._teardown_roster()
        self._team = None
        self._team_uid = None
        if had_team:
            self.emit(None)
            self._publish_roster()

    def _teardown_roster(self) -> None:
        self._members_sub.close()
        for slot in self._profile_subs.values():
            slot.close()
        self._profile_subs.clear()
        self._profiles.clear()
        self._memberships = []
        self._roster = []

    # ---- roster join ----

    def _on_members_push(self, docs: list[Document]) -> None:
        memberships = [Membership.from_doc(d) for d in docs]
        wanted = {m.id: m for m in memberships}

        for mid in list(self._profile_subs):
            if mid not in wanted:
                self._profile_subs.pop(mid).close()
                self._profiles.pop(mid, None)

        self._memberships = memberships

        for mid, m in wanted.items():
            if mid in self._profile_subs:
                continue
            slot = SubscriptionSlot(f"team.member_profile[{mid}]")
            self._profile_subs[mid] = slot
            user_id = m.user_id
            slot.open(
                lambda cb, uid=user_id: self._store.subscribe_document(USERS, uid, cb),
                lambda doc, mid=mid: self._on_profile_push(mid, doc),
            )

        self._publish_roster()

    def _on_profile_push(self, membership_id: str, doc: Document | None) -> None:
        if doc is None:
            self._profiles.pop(membership_id, None)
        else:
            self._profiles[membership_id] = User.from_doc(doc)
        self._publish_roster()

    def _publish_roster(self) -> None:
        self._roster = derive_roster(self._memberships, self._profiles)
        self._roster_obs.emit(self.roster)

    # ---- writes (called through the MutationCoordinator) ----

    async def create_team(self, name: str) -> Team:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Enter a team name.")
        me = self._session.current_identity
        if me is None:
            raise ValidationError("Sign in first.")

        team_id = await self._store.create(
            TEAMS,
            {
                "name": name,
                "ownerId": me.uid,
                "ownerEmail": me.email,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        # Sequential, not transactional: if this fails the team stays without an owner membership.
        await self._store.create(
            members_path(team_id),
            {
                "userId": me.uid,
                "userEmail": me.email,
                "role": Role.OWNER.value,
                "joinedAt": SERVER_TIMESTAMP,
            },
        )
        team = Team(id=team_id, name=name, owner_id=me.uid, owner_email=me.email)
        logger.info("Created team %s (%s) owner=%s", name, team_id, me.uid)

        now = self._session.current_identity
        if now is None or now.uid != me.uid:
            logger.warning("Session changed while creating team %s; not opening it", team_id)
            raise TeamboardError("signed out before the team could be opened")
        self.adopt(team)
        return team

    async def add_member(self, user_id: str) -> Membership:
        team = self._team
        if team is None:
            raise ValidationError("No active team.")
        if not user_id or user_id == "all":
            raise ValidationError("Select a user.")

        candidate = self._directory.find(user_id)
        if candidate is None:
            raise NotFoundError("User not found.")

        # No duplicate check: adding the same user twice creates two memberships.
        mid = await self._store.create(
            members_path(team.id),
            {
                "userId": candidate.id,
                "userEmail": candidate.email,
                "role": Role.MEMBER.value,
                "joinedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("Added member %s to team %s (membership %s)", candidate.id, team.id, mid)
        return Membership(id=mid, user_id=candidate.id, user_email=candidate.email, role=Role.MEMBER)


def derive_roster(memberships: list[Membership], profiles: dict[str, User]) -> list[RosterEntry]:
    """Pure projection: memberships in push order, skipping unresolved profiles."""
    out: list[RosterEntry] = []
    for m in memberships:
        profile = profiles.get(m.id)
        if profile is None:
            continue
        out.append(RosterEntry(membership=m, username=profile.display_name))
    return out
