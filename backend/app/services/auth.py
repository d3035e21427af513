import hashlib
import logging
from typing import Any

from fastapi import HTTPException, Request
from passlib.hash import bcrypt

from app.core.config import Settings
from app.core.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status_code=401, detail=detail)


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    if req.client:
        return req.client.host
    return "unknown"


def require_session_user(req: Request) -> str:
    user_id = (req.session or {}).get("user_id")
    if not user_id:
        raise Unauthenticated()
    return user_id


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def enforce_login_rate_limit(req: Request, limiter: RateLimiter, settings: Settings, email: str) -> None:
    client_ip = get_client_ip(req)
    if limiter.exceeded(f"login:ip:{client_ip}", settings.login_rate_limit, settings.login_rate_window):
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")
    email_key = hashlib.sha256(email.encode("utf-8")).hexdigest()[:24]
    if limiter.exceeded(f"login:user:{email_key}", settings.login_user_rate_limit, settings.login_rate_window):
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")


def enforce_register_rate_limit(req: Request, limiter: RateLimiter, settings: Settings) -> None:
    client_ip = get_client_ip(req)
    if limiter.exceeded(f"register:ip:{client_ip}", settings.register_rate_limit, settings.register_rate_window):
        raise HTTPException(status_code=429, detail="Too many registration attempts. Try again later.")


def authenticate_user(cur, email: str, password: str) -> dict[str, Any]:
    if not email or not password:
        raise HTTPException(status_code=400, detail="Please fill out all fields.")
    if len(password.encode("utf-8")) > 72:
        raise HTTPException(status_code=400, detail="Password too long (max 72 bytes)")

    cur.execute(
        "SELECT user_id::text AS user_id, email, password_hash FROM users WHERE email=%s",
        (email,),
    )
    user = cur.fetchone()
    if not user or not bcrypt.verify(password, user["password_hash"]):
        logger.info("Failed login for %s", email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"user_id": user["user_id"], "email": user["email"]}


def register_user(cur, settings: Settings, email: str, password: str, invite_code: str) -> dict[str, Any]:
    if not settings.invite_code:
        raise HTTPException(status_code=403, detail="Registration disabled")
    if invite_code.strip() != settings.invite_code:
        raise HTTPException(status_code=403, detail="Invalid invite code")

    if not email or not password:
        raise HTTPException(status_code=400, detail="email and password required")
    if not settings.email_re.fullmatch(email):
        raise HTTPException(status_code=400, detail="Invalid email address")
    if len(password) < settings.password_min_len:
        raise HTTPException(status_code=400, detail=f"Password too short (min {settings.password_min_len})")
    if len(password.encode("utf-8")) > 72:
        raise HTTPException(status_code=400, detail="Password too long (max 72 bytes)")

    cur.execute(
        """
        INSERT INTO users (email, password_hash)
        VALUES (%s, %s)
        RETURNING user_id::text AS user_id, email
        """,
        (email, bcrypt.hash(password)),
    )
    return cur.fetchone()
