"""
Identity resolution for raw attendance sessions.

Every session resolves to a key by priority (stable user id, email,
registrant id, provider participant id, then a synthesized name/webinar/
join-time key). Sessions that share any identifier are joined
transitively, and registrants contribute a registrant-id <-> email link,
so one person reported once by email and once by user id ends up in a
single group keyed by the best identifier the group has.
"""

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass, field

from webinarwise.features.webinar_sync.domain import ParticipantSession, RegistrantRecord

# Namespaces in priority order.
IDENTITY_PRIORITY = ("uid", "email", "reg", "pid")


def normalize_email(email: str | None) -> str | None:
    value = (email or "").strip().lower()
    return value or None


def identity_candidates(session: ParticipantSession) -> list[str]:
    """Namespaced identifiers carried by a session, best first."""
    candidates = []
    if session.user_id:
        candidates.append(f"uid:{session.user_id}")
    email = normalize_email(session.email)
    if email:
        candidates.append(f"email:{email}")
    if session.registrant_id:
        candidates.append(f"reg:{session.registrant_id}")
    if session.participant_id:
        candidates.append(f"pid:{session.participant_id}")
    return candidates


def synthesized_key(session: ParticipantSession) -> str:
    join = session.join_time.isoformat() if session.join_time else ""
    basis = f"{(session.name or '').strip().lower()}|{session.webinar_id}|{join}"
    return "anon:" + hashlib.sha256(basis.encode("utf-8")).hexdigest()[:32]


def resolve_identity_key(session: ParticipantSession) -> str:
    """First non-empty identifier by priority; never empty."""
    candidates = identity_candidates(session)
    return candidates[0] if candidates else synthesized_key(session)


def _priority(identifier: str) -> tuple[int, str]:
    namespace = identifier.split(":", 1)[0]
    if namespace in IDENTITY_PRIORITY:
        return IDENTITY_PRIORITY.index(namespace), identifier
    return len(IDENTITY_PRIORITY), identifier


@dataclass(slots=True)
class IdentityGroup:
    identity_key: str
    sessions: list[ParticipantSession]
    identifiers: set[str] = field(default_factory=set)

    def _values(self, namespace: str) -> set[str]:
        prefix = f"{namespace}:"
        return {item[len(prefix):] for item in self.identifiers if item.startswith(prefix)}

    @property
    def emails(self) -> set[str]:
        return self._values("email")

    @property
    def registrant_ids(self) -> set[str]:
        return self._values("reg")


class _DisjointSet:
    def __init__(self):
        self.parent: dict[str, str] = {}

    def add(self, item: str) -> None:
        self.parent.setdefault(item, item)

    def find(self, item: str) -> str:
        self.add(item)
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, left: str, right: str) -> None:
        left_root, right_root = self.find(left), self.find(right)
        if left_root != right_root:
            self.parent[right_root] = left_root


def group_sessions(
    sessions: list[ParticipantSession], registrants: Iterable[RegistrantRecord] = ()
) -> list[IdentityGroup]:
    """
    Partition sessions into identity groups.

    Also stamps `identity_key_raw` on each session. Groups come back in
    order of their first session.
    """
    links = _DisjointSet()

    for registrant in registrants:
        email = normalize_email(registrant.email)
        if registrant.registrant_id and email:
            links.union(f"reg:{registrant.registrant_id}", f"email:{email}")

    session_nodes = []
    for index, session in enumerate(sessions):
        session.identity_key_raw = resolve_identity_key(session)
        node = f"session:{index}"
        links.add(node)
        for identifier in identity_candidates(session) or [session.identity_key_raw]:
            links.union(node, identifier)
        session_nodes.append(node)

    identifiers_by_root: dict[str, set[str]] = {}
    for item in list(links.parent):
        if not item.startswith("session:"):
            identifiers_by_root.setdefault(links.find(item), set()).add(item)

    groups: dict[str, IdentityGroup] = {}
    for node, session in zip(session_nodes, sessions):
        root = links.find(node)
        group = groups.get(root)
        if group is None:
            identifiers = identifiers_by_root.get(root, set())
            group = IdentityGroup(
                identity_key=min(identifiers, key=_priority),
                sessions=[],
                identifiers=identifiers,
            )
            groups[root] = group
        group.sessions.append(session)

    return list(groups.values())
