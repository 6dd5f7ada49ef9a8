# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Rotation logic. Pure computation, no side effects.
"""

from typing import Iterable, Mapping, Optional

from oncall_rotation.models.domain import Override, RotationList


def find_approved_override(
    sprint_index: int,
    role: str,
    overrides: Iterable[Override],
) -> Optional[Override]:
    """
    The approved override for a (sprint, role) slot, if any.
    Duplicate approvals are malformed data; the most recent approval wins.
    """
    matches = [
        o for o in overrides
        if o.approved and o.sprint_index == sprint_index and o.role == role
    ]
    if not matches:
        return None
    return max(matches, key=lambda o: (o.approval_timestamp or "", o.id or 0))


def resolve_assignments(
    sprint_index: int,
    rotation_lists: Mapping[str, RotationList],
    overrides: Iterable[Override] = (),
    fallback_users: Optional[Mapping[str, str]] = None,
    roles: Optional[Iterable[str]] = None,
) -> dict[str, Optional[str]]:
    """
    Return role -> user_id for ``sprint_index``.
    Approved overrides take absolute precedence; an empty rotation list
    degrades to the role's fallback user, else None.
    """
    if sprint_index < 0:
        raise ValueError(f"sprint_index must be >= 0, got {sprint_index}")

    fallback_users = fallback_users or {}
    overrides = list(overrides)
    role_names = list(roles) if roles is not None else list(rotation_lists)
    for role in fallback_users:
        if role not in role_names:
            role_names.append(role)

    assignments: dict[str, Optional[str]] = {}
    for role in role_names:
        override = find_approved_override(sprint_index, role, overrides)
        if override is not None:
            assignments[role] = override.replacement_user_id
            continue
        rotation = rotation_lists.get(role)
        member = rotation.member_for(sprint_index) if rotation else None
        assignments[role] = member.user_id if member else fallback_users.get(role)
    return assignments


def find_duplicate_assignees(assignments: Mapping[str, Optional[str]]) -> dict[str, list[str]]:
    """user_id -> roles, for users assigned to more than one role."""
    by_user: dict[str, list[str]] = {}
    for role, user_id in assignments.items():
        if user_id:
            by_user.setdefault(user_id, []).append(role)
    return {user: roles for user, roles in by_user.items() if len(roles) > 1}


def find_cross_role_members(rotation_lists: Mapping[str, RotationList]) -> dict[str, list[str]]:
    """user_id -> roles, for users listed in more than one rotation."""
    by_user: dict[str, list[str]] = {}
    for role, rotation in rotation_lists.items():
        for member in rotation.members:
            by_user.setdefault(member.user_id, []).append(role)
    return {user: roles for user, roles in by_user.items() if len(roles) > 1}


def diff_roles(
    old: Mapping[str, Optional[str]],
    new: Mapping[str, Optional[str]],
) -> list[dict[str, Optional[str]]]:
    """Roles whose assignee differs, as {role, old_user, new_user}."""
    changes = []
    for role in list(dict.fromkeys([*old.keys(), *new.keys()])):
        if old.get(role) != new.get(role):
            changes.append({
                "role": role,
                "old_user": old.get(role),
                "new_user": new.get(role),
            })
    return changes


def assignees(assignments: Mapping[str, Optional[str]]) -> list[str]:
    """Distinct non-empty user ids in role order."""
    return list(dict.fromkeys(u for u in assignments.values() if u))
