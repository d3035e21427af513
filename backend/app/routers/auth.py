from fastapi import APIRouter, Depends, HTTPException, Request
from psycopg.errors import UniqueViolation

from app.dependencies import current_user_id, get_app_state
from app.models.auth import LoginRequest, RegisterRequest, SessionUserResponse
from app.services.auth import (
    authenticate_user,
    enforce_login_rate_limit,
    enforce_register_rate_limit,
    normalize_email,
    register_user,
)
from app.services.state import AppState

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True}


@router.post("/auth/register", response_model=SessionUserResponse)
def register(payload: RegisterRequest, req: Request, state: AppState = Depends(get_app_state)):
    enforce_register_rate_limit(req, state.rate_limiter, state.settings)
    email = normalize_email(payload.email)

    with state.db_conn() as conn, conn.cursor() as cur:
        try:
            user = register_user(cur, state.settings, email, payload.password, payload.invite_code)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise
        except UniqueViolation:
            conn.rollback()
            raise HTTPException(status_code=400, detail="User already exists")

    req.session["user_id"] = user["user_id"]
    req.session["email"] = user["email"]
    return {"user_id": user["user_id"], "email": user["email"]}


@router.post("/auth/login", response_model=SessionUserResponse)
def login(payload: LoginRequest, req: Request, state: AppState = Depends(get_app_state)):
    email = normalize_email(payload.email)
    enforce_login_rate_limit(req, state.rate_limiter, state.settings, email)

    with state.db_conn() as conn, conn.cursor() as cur:
        user = authenticate_user(cur, email, payload.password)

    req.session["user_id"] = user["user_id"]
    req.session["email"] = user["email"]
    return {"user_id": user["user_id"], "email": user["email"]}


@router.post("/auth/logout")
def logout(req: Request):
    req.session.clear()
    return {"ok": True}


@router.get("/me", response_model=SessionUserResponse)
def me(req: Request, user_id: str = Depends(current_user_id)):
    return {"user_id": user_id, "email": req.session.get("email", "")}
