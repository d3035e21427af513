from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass

from psycopg_pool import ConnectionPool

from app.core.cache import TimedCache
from app.core.config import Settings
from app.core.rate_limit import RateLimiter
from app.db.pool import build_db_pool, connection_factory
from app.models.records import RecordKind
from app.services.attachments import AttachmentStore
from app.services.mutations import RecordMutationService
from app.services.records import RecordRepository
from app.services.retrieval import AttachmentGate


@dataclass
class AppState:
    """Process-wide collaborators, built once at startup and handed to each request."""

    settings: Settings
    db_conn: Callable[[], AbstractContextManager]
    store: AttachmentStore
    cache: TimedCache
    rate_limiter: RateLimiter
    pool: ConnectionPool | None = None

    def repository(self, kind: RecordKind) -> RecordRepository:
        return RecordRepository(self.db_conn, kind)

    def mutations(self, kind: RecordKind) -> RecordMutationService:
        return RecordMutationService(
            self.repository(kind),
            self.store,
            default_currency=self.settings.default_currency,
            listing_path=self.settings.listing_path,
            prune_replaced_attachments=self.settings.prune_replaced_attachments,
        )

    def attachment_gate(self, kind: RecordKind) -> AttachmentGate:
        return AttachmentGate(self.repository(kind), self.store, listing_path=self.settings.listing_path)

    def invalidate_records(self, owner_id: str, kind: RecordKind) -> None:
        self.cache.invalidate_prefix(list_cache_prefix(owner_id, kind))


def list_cache_prefix(owner_id: str, kind: RecordKind) -> str:
    return f"{owner_id}:{kind.value}:"


def build_app_state(settings: Settings) -> AppState:
    pool = build_db_pool(settings)
    return AppState(
        settings=settings,
        db_conn=connection_factory(pool),
        store=AttachmentStore(settings.attachments_dir, max_bytes=settings.attachment_max_mb * 1024 * 1024),
        cache=TimedCache(redis_url=settings.redis_url, key_prefix=settings.redis_prefix),
        rate_limiter=RateLimiter(redis_url=settings.redis_url, key_prefix=settings.redis_prefix),
        pool=pool,
    )
