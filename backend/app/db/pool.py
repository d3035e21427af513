from contextlib import contextmanager

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from app.core.config import Settings


def build_db_pool(settings: Settings) -> ConnectionPool:
    return ConnectionPool(
        settings.database_url,
        min_size=settings.db_pool_min,
        max_size=settings.db_pool_max,
        timeout=settings.db_pool_timeout,
        max_waiting=settings.db_pool_max_waiting,
        open=False,
        kwargs={"row_factory": dict_row},
    )


def connection_factory(pool: ConnectionPool):
    """Wrap ``pool`` in a ``db_conn()`` context manager for the repositories."""

    @contextmanager
    def db_conn():
        with pool.connection() as conn:
            yield conn

    return db_conn
