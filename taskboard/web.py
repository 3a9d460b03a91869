"""Web dashboard for the taskboard."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .accounts import AccountService
from .errors import TaskboardError
from .models import User
from .permissions import can_grant, can_manage
from .tasks import TaskLifecycle


SESSION_COOKIE_NAME = "taskboard_session"


@dataclass(frozen=True)
class UserRow:
    """Presentation details for one user on the dashboard."""

    user: User
    can_manage: bool
    is_self: bool
    completed_tasks: int


def _template_environment() -> Jinja2Templates:
    base_dir = Path(__file__).resolve().parent
    templates = Jinja2Templates(directory=str(base_dir / "templates"))
    templates.env.filters["format_datetime"] = _format_datetime
    return templates


def _format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).strftime("%d %b %Y • %H:%M %Z")


def issue_session_cookie(response: Response, token: str, *, max_age: int, secure: bool) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=max_age,
        secure=secure,
        httponly=True,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")


async def _parse_form(request: Request) -> Dict[str, str]:
    body_bytes = await request.body()
    content_type = request.headers.get("content-type", "")
    charset = "utf-8"
    if "charset=" in content_type:
        charset = content_type.split("charset=", 1)[1].split(";", 1)[0].strip() or "utf-8"
    try:
        decoded = body_bytes.decode(charset)
    except (LookupError, UnicodeDecodeError):
        decoded = body_bytes.decode("utf-8", errors="ignore")
    data = parse_qs(decoded, keep_blank_values=True)
    return {key: values[0] for key, values in data.items() if values}


def _build_rows(viewer: User, users: List[User]) -> List[UserRow]:
    return [
        UserRow(
            user=entry,
            can_manage=can_manage(viewer, entry),
            is_self=entry.id == viewer.id,
            completed_tasks=sum(1 for task in entry.tasks if task.is_completed),
        )
        for entry in users
    ]


def register_ui_routes(
    app: FastAPI,
    accounts: AccountService,
    task_lifecycle: TaskLifecycle,
    *,
    secure_cookies: bool,
) -> None:
    """Expose the HTML dashboard on the provided FastAPI app."""

    templates = _template_environment()
    static_dir = Path(__file__).resolve().parent / "static"
    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    router = APIRouter(include_in_schema=False)

    def _load_user(request: Request) -> Tuple[Optional[User], Optional[str]]:
        token = request.cookies.get(SESSION_COOKIE_NAME)
        return accounts.resolve_session(token), token

    def _redirect_to_login(request: Request, token: Optional[str]) -> RedirectResponse:
        response = RedirectResponse(request.url_for("ui_login"), status_code=status.HTTP_303_SEE_OTHER)
        if token:
            accounts.logout(token)
            clear_session_cookie(response)
        return response

    def _redirect_to_dashboard(
        request: Request,
        *,
        notice: Optional[str] = None,
        error: Optional[str] = None,
    ) -> RedirectResponse:
        url = request.url_for("ui_dashboard")
        if notice:
            url = url.include_query_params(notice=notice)
        if error:
            url = url.include_query_params(error=error)
        return RedirectResponse(str(url), status_code=status.HTTP_303_SEE_OTHER)

    def _render_login(
        request: Request,
        *,
        email: str = "",
        error: str | None = None,
        status_code: int = status.HTTP_200_OK,
    ) -> Response:
        user, token = _load_user(request)
        if user is not None:
            return RedirectResponse(request.url_for("ui_dashboard"), status_code=status.HTTP_303_SEE_OTHER)

        context = {"user": None, "email": email, "error": error}
        response = templates.TemplateResponse(request, "login.html", context, status_code=status_code)
        if token:
            clear_session_cookie(response)
        return response

    def _parse_int(raw: str) -> Optional[int]:
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    @router.get("/", response_class=HTMLResponse, name="ui_home")
    async def homepage(request: Request):
        return _render_login(request)

    @router.get("/login", response_class=HTMLResponse, name="ui_login")
    async def login_form(request: Request):
        return _render_login(request)

    @router.post("/login", name="ui_login_submit")
    async def login_submit(request: Request):
        form = await _parse_form(request)
        email = form.get("email", "")
        password = form.get("password", "")
        if not email or not password:
            return _render_login(
                request,
                email=email,
                error="Please provide both email and password.",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        try:
            user, token = accounts.login(email, password)
        except TaskboardError:
            return _render_login(
                request,
                email=email,
                error="Invalid email or password. Please try again.",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        existing_token = request.cookies.get(SESSION_COOKIE_NAME)
        if existing_token:
            accounts.logout(existing_token)

        response = RedirectResponse(request.url_for("ui_dashboard"), status_code=status.HTTP_303_SEE_OTHER)
        issue_session_cookie(
            response,
            token,
            max_age=accounts.sessions.cookie_max_age,
            secure=secure_cookies,
        )
        return response

    @router.get("/logout", name="ui_logout")
    async def logout(request: Request):
        token = request.cookies.get(SESSION_COOKIE_NAME)
        accounts.logout(token)
        response = RedirectResponse(request.url_for("ui_login"), status_code=status.HTTP_303_SEE_OTHER)
        clear_session_cookie(response)
        return response

    @router.get("/dashboard", response_class=HTMLResponse, name="ui_dashboard")
    async def dashboard(request: Request):
        user, token = _load_user(request)
        if user is None:
            return _redirect_to_login(request, token)

        users = accounts.list_users()
        rows = _build_rows(user, users)
        total_tasks = sum(len(entry.tasks) for entry in users)
        completed = sum(row.completed_tasks for row in rows)

        context = {
            "user": user,
            "rows": rows,
            "roles": [role for role in accounts.list_roles() if can_grant(user, role)],
            "assignable": [row.user for row in rows if row.can_manage],
            "user_count": len(users),
            "task_count": total_tasks,
            "completed_count": completed,
            "notice": request.query_params.get("notice"),
            "error": request.query_params.get("error"),
        }
        return templates.TemplateResponse(request, "dashboard.html", context)

    @router.post("/dashboard/users", name="ui_create_user")
    async def create_user(request: Request):
        user, token = _load_user(request)
        if user is None:
            return _redirect_to_login(request, token)

        form = await _parse_form(request)
        role_id = _parse_int(form.get("role_id", ""))
        if role_id is None:
            return _redirect_to_dashboard(request, error="Please choose a role.")

        try:
            created = accounts.create_user(
                user,
                form.get("name", ""),
                form.get("email", ""),
                form.get("password", ""),
                role_id,
            )
        except TaskboardError as exc:
            return _redirect_to_dashboard(request, error=exc.message)
        return _redirect_to_dashboard(request, notice=f"Created user {created.name}.")

    @router.post("/dashboard/users/{user_id}/delete", name="ui_delete_user")
    async def delete_user(user_id: int, request: Request):
        user, token = _load_user(request)
        if user is None:
            return _redirect_to_login(request, token)

        try:
            accounts.delete_user(user, user_id)
        except TaskboardError as exc:
            return _redirect_to_dashboard(request, error=exc.message)
        return _redirect_to_dashboard(request, notice="User deleted.")

    @router.post("/dashboard/users/{user_id}/tasks", name="ui_assign_task")
    async def assign_task(user_id: int, request: Request):
        user, token = _load_user(request)
        if user is None:
            return _redirect_to_login(request, token)

        form = await _parse_form(request)
        try:
            task_lifecycle.assign(user, user_id, form.get("task_name", ""))
        except TaskboardError as exc:
            return _redirect_to_dashboard(request, error=exc.message)
        return _redirect_to_dashboard(request, notice="Task assigned.")

    @router.post("/dashboard/tasks", name="ui_assign_task_picker")
    async def assign_task_from_picker(request: Request):
        user, token = _load_user(request)
        if user is None:
            return _redirect_to_login(request, token)

        form = await _parse_form(request)
        target_id = _parse_int(form.get("user_id", ""))
        if target_id is None:
            return _redirect_to_dashboard(request, error="Please choose a user.")
        try:
            task_lifecycle.assign(user, target_id, form.get("task_name", ""))
        except TaskboardError as exc:
            return _redirect_to_dashboard(request, error=exc.message)
        return _redirect_to_dashboard(request, notice="Task assigned.")

    @router.post("/dashboard/users/{user_id}/tasks/{task_index}/toggle", name="ui_toggle_task")
    async def toggle_task(user_id: int, task_index: int, request: Request):
        user, token = _load_user(request)
        if user is None:
            return _redirect_to_login(request, token)

        form = await _parse_form(request)
        try:
            task_lifecycle.toggle_completion(user, user_id, task_index, form.get("task_id") or None)
        except TaskboardError as exc:
            return _redirect_to_dashboard(request, error=exc.message)
        return _redirect_to_dashboard(request, notice="Task updated.")

    @router.post("/dashboard/users/{user_id}/tasks/{task_index}/delete", name="ui_delete_task")
    async def delete_task(user_id: int, task_index: int, request: Request):
        user, token = _load_user(request)
        if user is None:
            return _redirect_to_login(request, token)

        form = await _parse_form(request)
        try:
            task_lifecycle.remove(user, user_id, task_index, form.get("task_id") or None)
        except TaskboardError as exc:
            return _redirect_to_dashboard(request, error=exc.message)
        return _redirect_to_dashboard(request, notice="Task deleted.")

    app.include_router(router)


__all__ = [
    "SESSION_COOKIE_NAME",
    "clear_session_cookie",
    "issue_session_cookie",
    "register_ui_routes",
]
