"""User provisioning and login session handling."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .database import Database
from .errors import (
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
)
from .models import Role, User
from .permissions import can_grant, can_manage
from .sessions import SessionManager

logger = logging.getLogger("taskboard.accounts")


class AccountService:
    """Create and remove users, and bind them to login sessions."""

    def __init__(self, database: Database, sessions: SessionManager) -> None:
        self._database = database
        self._sessions = sessions

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def list_roles(self) -> List[Role]:
        return self._database.list_roles()

    def list_users(self) -> List[User]:
        return self._database.list_users()

    def create_user(self, actor: User, name: str, email: str, password: str, role_id: int) -> User:
        normalized_name = name.strip()
        normalized_email = email.strip()
        if not normalized_name or not normalized_email or not password:
            raise InvalidRequestError("Name, email and password are required")

        role = self._database.get_role(role_id)
        if role is None:
            raise NotFoundError("Role does not exist")
        if not can_grant(actor, role):
            logger.warning("User %s may not create users with role %s", actor.id, role.name)
            raise ForbiddenError("You are not allowed to create users with this role")

        user = self._database.create_user(normalized_name, normalized_email, password, role_id)
        logger.info("User %s created user %s (%s) with role %s", actor.id, user.id, user.email, role.name)
        return user

    def delete_user(self, actor: User, user_id: int) -> None:
        target = self._database.get_user(user_id)
        if target is None:
            raise NotFoundError("User to delete not found")
        if not can_manage(actor, target):
            logger.warning("User %s is not allowed to delete user %s", actor.id, user_id)
            raise ForbiddenError("You are not allowed to delete this user")

        if not self._database.delete_user(user_id):
            raise NotFoundError("User to delete not found")
        logger.info("User %s deleted user %s", actor.id, user_id)

    def login(self, email: str, password: str) -> Tuple[User, str]:
        """Verify credentials and issue a new session token."""

        if not email or not email.strip() or not password:
            raise InvalidRequestError("Email and password are required")

        user = self._database.get_user_by_email(email)
        if user is None:
            logger.warning("Login attempt for unknown email %s", email)
            raise NotFoundError("User not found")

        if not self._database.verify_user_password(user.id, password):
            logger.warning("Failed login attempt for %s", user.email)
            raise UnauthorizedError("Invalid password")

        token = self._sessions.create(user.id)
        logger.info("User %s signed in", user.id)
        return user, token

    def resolve_session(self, token: Optional[str]) -> Optional[User]:
        """Return the user bound to ``token`` or ``None`` when unauthenticated."""

        if not token:
            return None
        user_id = self._sessions.resolve(token)
        if user_id is None:
            return None
        user = self._database.get_user(user_id)
        if user is None:
            self._sessions.destroy(token)
            return None
        return user

    def require_session(self, token: Optional[str]) -> User:
        user = self.resolve_session(token)
        if user is None:
            raise UnauthorizedError("Not authenticated")
        return user

    def logout(self, token: Optional[str]) -> None:
        if token:
            self._sessions.destroy(token)


__all__ = ["AccountService"]
