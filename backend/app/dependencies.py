"""FastAPI dependency providers."""

from fastapi import Request

from app.services.auth import require_session_user
from app.services.state import AppState


def get_app_state(req: Request) -> AppState:
    return req.app.state.services


def current_user_id(req: Request) -> str:
    return require_session_user(req)


def optional_user_id(req: Request) -> str | None:
    return (req.session or {}).get("user_id") or None
