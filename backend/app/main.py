import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from app.core.config import settings
from app.core.errors import IOFailure
from app.core.log import configure_logging
from app.db.schema import apply_schema
from app.routers.auth import router as auth_router
from app.routers.records import router as records_router
from app.services.state import build_app_state

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = build_app_state(settings)
    state.pool.open()
    if settings.db_auto_migrate:
        apply_schema(state.db_conn)
    app.state.services = state
    logger.info("Attachments stored under %s", state.store.root)
    try:
        yield
    finally:
        state.pool.close()


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="records_session",
    same_site="lax",
    https_only=settings.cookie_secure,
)


app.include_router(auth_router)
app.include_router(records_router)


@app.exception_handler(HTTPException)
def http_exc_handler(_, exc: HTTPException):
    if isinstance(exc, IOFailure):
        logger.error("Storage failure: %s", exc.reason)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "detail": exc.detail})
