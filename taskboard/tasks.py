"""Task lifecycle operations on a user's embedded task list."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from .database import Database, new_task
from .errors import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from .models import Task, User
from .permissions import can_manage

logger = logging.getLogger("taskboard.tasks")


def _locate(user: User, index: int, task_id: Optional[str]) -> Task:
    if index < 0 or index >= len(user.tasks):
        raise NotFoundError("Task not found")
    task = user.tasks[index]
    if task_id is not None and task.id != task_id:
        raise ConflictError("The task list has changed; reload and try again")
    return task


class TaskLifecycle:
    """Assign, toggle and remove tasks.

    Tasks are addressed by their position in the owner's list. Callers that
    remember a task's ``id`` can pass it along so an operation aimed at a
    position that has since shifted is rejected instead of hitting a
    neighbouring task.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def assign(self, actor: User, target_user_id: int, name: str) -> User:
        task_name = name.strip() if name else ""
        if not task_name:
            raise InvalidRequestError("Task name is required")

        def _append(target: User) -> List[Task]:
            if not can_manage(actor, target):
                logger.warning("User %s may not assign tasks to user %s", actor.id, target.id)
                raise ForbiddenError("You are not allowed to assign tasks to this user")
            return [*target.tasks, new_task(task_name)]

        updated = self._database.modify_tasks(target_user_id, _append)
        logger.info("User %s assigned task '%s' to user %s", actor.id, task_name, target_user_id)
        return updated

    def toggle_completion(
        self,
        actor: User,
        target_user_id: int,
        index: int,
        task_id: Optional[str] = None,
    ) -> User:
        """Flip a task between active and completed.

        Owners may toggle their own tasks; anyone else needs to outrank the
        owner.
        """

        def _toggle(target: User) -> List[Task]:
            if actor.id != target.id and not can_manage(actor, target):
                logger.warning("User %s may not update tasks of user %s", actor.id, target.id)
                raise ForbiddenError("You are not allowed to update this task")
            task = _locate(target, index, task_id)
            tasks = list(target.tasks)
            tasks[index] = replace(task, is_completed=not task.is_completed)
            return tasks

        updated = self._database.modify_tasks(target_user_id, _toggle)
        logger.info("User %s toggled task %s of user %s", actor.id, index, target_user_id)
        return updated

    def remove(
        self,
        actor: User,
        target_user_id: int,
        index: int,
        task_id: Optional[str] = None,
    ) -> User:
        def _remove(target: User) -> List[Task]:
            if not can_manage(actor, target):
                logger.warning("User %s may not remove tasks of user %s", actor.id, target.id)
                raise ForbiddenError("You are not allowed to remove this task")
            _locate(target, index, task_id)
            tasks = list(target.tasks)
            del tasks[index]
            return tasks

        updated = self._database.modify_tasks(target_user_id, _remove)
        logger.info("User %s removed task %s of user %s", actor.id, index, target_user_id)
        return updated


__all__ = ["TaskLifecycle"]
