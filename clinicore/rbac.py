"""
Role-Based Access Control – loading actors, resolving permissions and gating access.

Every check takes the actor explicitly and returns a bool. Nothing here raises
for missing or unrecognised input: no actor, an inactive actor, an unknown role,
module or capability all mean "denied".
"""

from typing import Iterable, List, Optional, Set, FrozenSet

from sqlalchemy import text

from clinicore.models import Actor
from clinicore.permissions import (
    ALL_CAPABILITIES,
    DOCUMENT_CAPABILITIES,
    MODULES,
    ROLE_CAPABILITIES,
    ROLE_LABELS,
    ROLE_MODULES,
    parse_role,
)


# ── Storage ──────────────────────────────────────────────────────────

def load_actor(engine, api_key: str) -> Actor:
    """Look up a user by API key and return their Actor."""
    sql = text("""
        SELECT id, username, display_name, role, is_active
        FROM users
        WHERE api_key = :k
    """)
    with engine.connect() as conn:
        row = conn.execute(sql, {"k": api_key}).mappings().first()

    if not row:
        raise ValueError("Invalid key (no match in users).")
    if not row["is_active"]:
        raise ValueError("User account is deactivated.")

    role = str(row["role"]).strip().lower()
    if parse_role(role) is None:
        raise ValueError(f"Unsupported role '{row['role']}' in users.")

    return Actor(
        id=int(row["id"]),
        username=str(row["username"]),
        display_name=str(row["display_name"] or row["username"]),
        role=role,
        is_active=bool(row["is_active"]),
    )


def load_permission_overrides(engine, user_id: int) -> Optional[Set[str]]:
    """
    Return the admin-assigned capability list for a user, or None when the user
    has no override and runs on role defaults.
    """
    sql = text("""
        SELECT permissions_overridden
        FROM users
        WHERE id = :uid
    """)
    grants_sql = text("""
        SELECT permission
        FROM user_permissions
        WHERE user_id = :uid
        ORDER BY permission
    """)
    with engine.connect() as conn:
        row = conn.execute(sql, {"uid": user_id}).mappings().first()
        if not row:
            raise ValueError(f"No user with id {user_id}.")
        if not row["permissions_overridden"]:
            return None
        rows = conn.execute(grants_sql, {"uid": user_id}).mappings().all()
    return {str(r["permission"]) for r in rows}


def save_permission_overrides(engine, user_id: int, grants: Optional[Iterable[str]]) -> Optional[Set[str]]:
    """
    Replace a user's override list. ``None`` clears the override so the user falls
    back to role defaults. Unknown capability keys are rejected.
    """
    if grants is not None:
        grants = set(grants)
        unknown = grants - ALL_CAPABILITIES
        if unknown:
            raise ValueError(f"Unknown permission(s): {', '.join(sorted(unknown))}")

    with engine.begin() as conn:
        conn.execute(text("DELETE FROM user_permissions WHERE user_id = :uid"), {"uid": user_id})
        for perm in sorted(grants or ()):
            conn.execute(
                text("INSERT INTO user_permissions (user_id, permission) VALUES (:uid, :perm)"),
                {"uid": user_id, "perm": perm},
            )
        conn.execute(
            text("UPDATE users SET permissions_overridden = :flag WHERE id = :uid"),
            {"flag": grants is not None, "uid": user_id},
        )
    return grants


# ── Role checks ──────────────────────────────────────────────────────

def _plain(role) -> str:
    # str-enum members hash by name, so compare on the plain value
    return getattr(role, "value", role)


def has_role(actor: Optional[Actor], role: str) -> bool:
    return actor is not None and actor.role == _plain(role)


def has_any_role(actor: Optional[Actor], roles: Iterable[str]) -> bool:
    return actor is not None and actor.role in {_plain(r) for r in roles}


def display_role(role: str) -> str:
    """Human-readable role label, or the raw role string when unknown."""
    parsed = parse_role(role)
    if parsed is None:
        return role or "Unknown"
    return ROLE_LABELS[parsed]


# ── Permissions ──────────────────────────────────────────────────────

def resolve_permissions(role: str) -> FrozenSet[str]:
    """Default capability set for *role*; empty for roles not in the table."""
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_CAPABILITIES.get(parsed, frozenset())


def apply_overrides(role: str, explicit_grants: Optional[Iterable[str]]) -> FrozenSet[str]:
    """
    Explicit grants replace the role defaults outright; they are not merged.
    ``None`` means no override. Unknown roles get nothing whatever the grants.
    """
    if parse_role(role) is None:
        return frozenset()
    if explicit_grants is None:
        return resolve_permissions(role)
    return frozenset(explicit_grants) & ALL_CAPABILITIES


def effective_permissions(actor: Optional[Actor], overrides: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    if actor is None or not actor.is_active:
        return frozenset()
    return apply_overrides(actor.role, overrides)


def has_capability(actor: Optional[Actor], capability: str,
                   overrides: Optional[Iterable[str]] = None) -> bool:
    return capability in effective_permissions(actor, overrides)


# ── Gates ────────────────────────────────────────────────────────────

def can_access_module(actor: Optional[Actor], module_key: str) -> bool:
    """Whether *actor* may open *module_key*. Inactive actors are refused first."""
    if actor is None or not actor.is_active:
        return False
    role = parse_role(actor.role)
    if role is None:
        return False
    return module_key in ROLE_MODULES.get(role, frozenset())


def accessible_modules(actor: Optional[Actor]) -> List[str]:
    """Module keys the actor may open, in navigation order."""
    return [m for m in MODULES if can_access_module(actor, m)]


def can_render_document(actor: Optional[Actor], kind: str,
                        overrides: Optional[Iterable[str]] = None) -> bool:
    required = DOCUMENT_CAPABILITIES.get(_plain(kind))
    if not required:
        return False
    return bool(required & effective_permissions(actor, overrides))
