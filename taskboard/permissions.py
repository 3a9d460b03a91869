"""Rank-based authorization rules."""

from __future__ import annotations

from .models import Role, User


def can_manage(actor: User, target: User) -> bool:
    """Return ``True`` if ``actor`` may assign tasks to or delete ``target``.

    The rule fails closed when either user has no role. Otherwise the actor
    needs a strictly lower rank value than the target, so users never manage
    themselves or peers that share their rank.
    """

    if actor.role is None or target.role is None:
        return False
    return actor.role.rank < target.role.rank


def can_grant(actor: User, role: Role) -> bool:
    """Return ``True`` if ``actor`` may create a user holding ``role``.

    Same ordering as :func:`can_manage`: a new account must end up manageable
    by the user who created it.
    """

    if actor.role is None:
        return False
    return actor.role.rank < role.rank


__all__ = ["can_grant", "can_manage"]
