"""HTTP API for managing users, roles and their assigned tasks."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .accounts import AccountService
from .config import Settings
from .database import Database
from .errors import InternalError, TaskboardError
from .models import Role, Task, User
from .sessions import SessionManager
from .tasks import TaskLifecycle
from .web import (
    SESSION_COOKIE_NAME,
    clear_session_cookie,
    issue_session_cookie,
    register_ui_routes,
)

logger = logging.getLogger("taskboard.service")


class RoleView(BaseModel):
    id: int
    name: str
    rank: int


class TaskView(BaseModel):
    id: str
    name: str
    is_completed: bool
    created_at: Optional[datetime] = None


class UserView(BaseModel):
    id: int
    name: str
    email: str
    role: Optional[RoleView] = None
    tasks: List[TaskView] = Field(default_factory=list)
    created_at: datetime


class CreateUserRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)
    role_id: int


class AssignTaskRequest(BaseModel):
    task_name: str = Field(..., min_length=1, max_length=500)


class TaskGuardRequest(BaseModel):
    task_id: Optional[str] = Field(default=None, max_length=64)


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class MessageResponse(BaseModel):
    message: str


class SessionStatusResponse(BaseModel):
    authenticated: bool
    user: Optional[UserView] = None


def _role_to_view(role: Role) -> RoleView:
    return RoleView(id=role.id, name=role.name, rank=role.rank)


def _task_to_view(task: Task) -> TaskView:
    return TaskView(
        id=task.id,
        name=task.name,
        is_completed=task.is_completed,
        created_at=task.created_at,
    )


def _user_to_view(user: User) -> UserView:
    return UserView(
        id=user.id,
        name=user.name,
        email=user.email,
        role=_role_to_view(user.role) if user.role else None,
        tasks=[_task_to_view(task) for task in user.tasks],
        created_at=user.created_at,
    )


def _build_session_dependency(accounts: AccountService) -> Callable[..., User]:
    def dependency(request: Request) -> User:
        return accounts.require_session(request.cookies.get(SESSION_COOKIE_NAME))

    return dependency


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TaskboardError)
    async def handle_taskboard_error(request: Request, exc: TaskboardError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "invalid",
                "detail": "Request is missing required fields or has invalid values",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(sqlite3.Error)
    async def handle_store_error(request: Request, exc: sqlite3.Error):
        logger.exception("Store failure while handling %s %s", request.method, request.url.path, exc_info=exc)
        error = InternalError("Internal server error")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error while handling %s %s", request.method, request.url.path, exc_info=exc)
        error = InternalError("Internal server error")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_api_routes(
    app: FastAPI,
    accounts: AccountService,
    task_lifecycle: TaskLifecycle,
    *,
    current_user: Callable[..., User],
    secure_cookies: bool,
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    router = APIRouter(prefix="/api")

    @router.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @router.get("/roles", response_model=List[RoleView])
    def list_roles() -> List[RoleView]:
        return [_role_to_view(role) for role in accounts.list_roles()]

    @router.get("/users", response_model=List[UserView])
    def list_users(user: User = Depends(current_user)) -> List[UserView]:
        return [_user_to_view(entry) for entry in accounts.list_users()]

    @router.post("/users", status_code=status.HTTP_201_CREATED, response_model=UserView)
    def create_user(
        request: CreateUserRequest,
        user: User = Depends(current_user),
    ) -> UserView:
        created = accounts.create_user(
            user,
            request.name,
            request.email,
            request.password,
            request.role_id,
        )
        return _user_to_view(created)

    @router.delete("/users/{user_id}", response_model=MessageResponse)
    def delete_user(user_id: int, user: User = Depends(current_user)) -> MessageResponse:
        accounts.delete_user(user, user_id)
        return MessageResponse(message="User deleted")

    @router.post("/users/{user_id}/tasks", response_model=UserView)
    def assign_task(
        user_id: int,
        request: AssignTaskRequest,
        user: User = Depends(current_user),
    ) -> UserView:
        updated = task_lifecycle.assign(user, user_id, request.task_name)
        return _user_to_view(updated)

    @router.post("/users/{user_id}/tasks/{task_index}/toggle", response_model=UserView)
    def toggle_task(
        user_id: int,
        task_index: int,
        request: Optional[TaskGuardRequest] = None,
        user: User = Depends(current_user),
    ) -> UserView:
        task_id = request.task_id if request is not None else None
        updated = task_lifecycle.toggle_completion(user, user_id, task_index, task_id)
        return _user_to_view(updated)

    @router.delete("/users/{user_id}/tasks/{task_index}", response_model=UserView)
    def delete_task(
        user_id: int,
        task_index: int,
        task_id: Optional[str] = Query(default=None, max_length=64),
        user: User = Depends(current_user),
    ) -> UserView:
        updated = task_lifecycle.remove(user, user_id, task_index, task_id)
        return _user_to_view(updated)

    @router.post("/login", response_model=UserView)
    def login(request: LoginRequest, http_request: Request) -> JSONResponse:
        user, token = accounts.login(request.email, request.password)
        accounts.logout(http_request.cookies.get(SESSION_COOKIE_NAME))
        response = JSONResponse(content=jsonable_encoder(_user_to_view(user)))
        issue_session_cookie(
            response,
            token,
            max_age=accounts.sessions.cookie_max_age,
            secure=secure_cookies,
        )
        return response

    @router.post("/logout", response_model=MessageResponse)
    def logout(http_request: Request) -> JSONResponse:
        accounts.logout(http_request.cookies.get(SESSION_COOKIE_NAME))
        response = JSONResponse(content={"message": "Logged out successfully"})
        clear_session_cookie(response)
        return response

    @router.get("/auth", response_model=SessionStatusResponse)
    def check_session(http_request: Request) -> JSONResponse:
        user = accounts.resolve_session(http_request.cookies.get(SESSION_COOKIE_NAME))
        if user is None:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"authenticated": False},
            )
        payload = SessionStatusResponse(authenticated=True, user=_user_to_view(user))
        return JSONResponse(content=jsonable_encoder(payload))

    app.include_router(router)


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    session_manager: SessionManager | None = None,
    include_api: bool = True,
    include_web: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application for the taskboard."""

    app_settings = settings or Settings.from_env()
    db = database or Database(app_settings.database_path)
    db.initialize()

    sessions = session_manager or SessionManager(ttl=app_settings.session_ttl)
    accounts = AccountService(db, sessions)
    task_lifecycle = TaskLifecycle(db)

    app = FastAPI(
        title="Taskboard",
        version=__version__,
        description="Assign and track tasks among users with ranked roles.",
    )
    app.state.database = db
    app.state.session_manager = sessions
    app.state.accounts = accounts
    app.state.tasks = task_lifecycle

    register_exception_handlers(app)

    if include_api:
        register_api_routes(
            app,
            accounts,
            task_lifecycle,
            current_user=_build_session_dependency(accounts),
            secure_cookies=app_settings.secure_cookies,
        )

    if include_web:
        register_ui_routes(
            app,
            accounts,
            task_lifecycle,
            secure_cookies=app_settings.secure_cookies,
        )

    return app


def create_api_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    session_manager: SessionManager | None = None,
) -> FastAPI:
    """Return an application exposing only the JSON API."""

    return create_app(
        database=database,
        settings=settings,
        session_manager=session_manager,
        include_api=True,
        include_web=False,
    )


def create_web_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    session_manager: SessionManager | None = None,
) -> FastAPI:
    """Return an application exposing only the web dashboard."""

    return create_app(
        database=database,
        settings=settings,
        session_manager=session_manager,
        include_api=False,
        include_web=True,
    )


__all__ = ["create_app", "create_api_app", "create_web_app"]
