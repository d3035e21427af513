import os
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str | None
    redis_prefix: str
    session_secret: str
    cookie_secure: bool
    log_level: str
    list_cache_ttl: int
    login_rate_limit: int
    login_rate_window: int
    login_user_rate_limit: int
    register_rate_limit: int
    register_rate_window: int
    password_min_len: int
    email_re: re.Pattern[str]
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    db_auto_migrate: bool
    invite_code: str
    attachments_dir: str
    attachment_max_mb: int
    default_currency: str
    prune_replaced_attachments: bool
    listing_path: str
    login_path: str


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "")
    session_secret = os.getenv("SESSION_SECRET")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")
    if not session_secret:
        raise RuntimeError("SESSION_SECRET is required")

    db_pool_min = max(1, int(os.getenv("DB_POOL_MIN", "1")))
    db_pool_max = max(db_pool_min, int(os.getenv("DB_POOL_MAX", "10")))

    default_currency = (os.getenv("DEFAULT_CURRENCY") or "USD").strip().upper() or "USD"
    if not re.fullmatch(r"[A-Z]{3}", default_currency):
        raise RuntimeError("DEFAULT_CURRENCY must be a three-letter code")

    return Settings(
        database_url=database_url,
        redis_url=(os.getenv("REDIS_URL") or "").strip() or None,
        redis_prefix=(os.getenv("REDIS_PREFIX") or "financerecords").strip() or "financerecords",
        session_secret=session_secret,
        cookie_secure=_env_flag("COOKIE_SECURE"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        list_cache_ttl=int(os.getenv("LIST_CACHE_TTL", "30")),
        login_rate_limit=int(os.getenv("LOGIN_RATE_LIMIT", "10")),
        login_rate_window=int(os.getenv("LOGIN_RATE_WINDOW", "300")),
        login_user_rate_limit=int(os.getenv("LOGIN_USER_RATE_LIMIT", "5")),
        register_rate_limit=int(os.getenv("REGISTER_RATE_LIMIT", "5")),
        register_rate_window=int(os.getenv("REGISTER_RATE_WINDOW", "900")),
        password_min_len=int(os.getenv("PASSWORD_MIN_LEN", "8")),
        email_re=re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$"),
        db_pool_min=db_pool_min,
        db_pool_max=db_pool_max,
        db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_max_waiting=int(os.getenv("DB_POOL_MAX_WAITING", "100")),
        db_auto_migrate=_env_flag("DB_AUTO_MIGRATE"),
        invite_code=(os.getenv("INVITE_CODE") or "").strip(),
        attachments_dir=(os.getenv("ATTACHMENTS_DIR") or "/app/storage/attachments").strip()
        or "/app/storage/attachments",
        attachment_max_mb=max(1, int(os.getenv("ATTACHMENT_MAX_MB", "10"))),
        default_currency=default_currency,
        prune_replaced_attachments=_env_flag("PRUNE_REPLACED_ATTACHMENTS"),
        listing_path=(os.getenv("LISTING_PATH") or "/records").rstrip("/") or "/records",
        login_path=(os.getenv("LOGIN_PATH") or "/login").strip() or "/login",
    )


settings = load_settings()
