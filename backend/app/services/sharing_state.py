"""In-memory snapshots the sharing engine computes on.

Every sharing mutation reads a ``SharingState`` from the stored dashboard,
derives the next state with a pure function and hands it back to the store for
one atomic replace.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Principal:
    """The caller of an operation. ``user_id`` is None for anonymous viewers."""

    user_id: str | None = None
    role: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id

    @property
    def is_admin(self) -> bool:
        return bool(self.user_id) and self.role == "admin"

    @classmethod
    def from_user(cls, user) -> Principal:
        if user is None:
            return ANONYMOUS
        return cls(user_id=str(user.id), role=user.role)


ANONYMOUS = Principal()


@dataclass(frozen=True)
class AclEntry:
    user_id: str
    access_level: str
    granted_by: str | None = None
    granted_at: str | None = None

    @classmethod
    def from_dict(cls, raw) -> AclEntry | None:
        """Parse a stored row; accepts legacy camelCase keys and skips malformed rows."""
        if not isinstance(raw, dict):
            return None
        user_id = raw.get("user_id", raw.get("userId"))
        if not user_id:
            return None
        level = str(raw.get("access_level", raw.get("accessLevel")) or "viewer").strip().lower()
        return cls(
            user_id=str(user_id),
            access_level="editor" if level == "editor" else "viewer",
            granted_by=raw.get("granted_by", raw.get("grantedBy")),
            granted_at=raw.get("granted_at", raw.get("grantedAt")),
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "access_level": self.access_level,
            "granted_by": self.granted_by,
            "granted_at": self.granted_at,
        }


def dedupe_acl(entries) -> tuple[AclEntry, ...]:
    """Unique by user id, last write wins, first-seen order kept."""
    by_user: dict[str, AclEntry] = {}
    for entry in entries:
        by_user[entry.user_id] = entry
    return tuple(by_user.values())


@dataclass(frozen=True)
class SharingState:
    dashboard_id: str
    owner_id: str
    visibility: str = "private"
    share_token: str | None = None
    acl: tuple[AclEntry, ...] = field(default_factory=tuple)

    @classmethod
    def from_dashboard(cls, dashboard) -> SharingState:
        parsed = (AclEntry.from_dict(raw) for raw in (dashboard.acl or []))
        return cls(
            dashboard_id=str(dashboard.id),
            owner_id=str(dashboard.owner_id),
            visibility=dashboard.visibility or "private",
            share_token=dashboard.share_token,
            acl=dedupe_acl(e for e in parsed if e is not None),
        )

    def acl_entry_for(self, user_id: str | None) -> AclEntry | None:
        if not user_id:
            return None
        for entry in self.acl:
            if entry.user_id == user_id:
                return entry
        return None

    def acl_grants(self) -> frozenset[tuple[str, str]]:
        """The (user, level) set audit comparisons are made on."""
        return frozenset((e.user_id, e.access_level) for e in self.acl)

    def acl_dicts(self) -> list[dict]:
        return [e.to_dict() for e in self.acl]

    def evolve(self, **changes) -> SharingState:
        return replace(self, **changes)
