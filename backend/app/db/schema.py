import logging

logger = logging.getLogger(__name__)

_RECORD_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id uuid NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    title text NOT NULL,
    description text NOT NULL DEFAULT '',
    amount numeric NOT NULL,
    currency_code text NOT NULL DEFAULT 'USD',
    attachment text,
    created_at timestamptz NOT NULL DEFAULT now(),
    updated_at timestamptz NOT NULL DEFAULT now(),
    UNIQUE (id, user_id)
);
CREATE INDEX IF NOT EXISTS {table}_user_created_idx ON {table} (user_id, created_at DESC);
"""

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
        email text NOT NULL UNIQUE,
        password_hash text NOT NULL,
        created_at timestamptz NOT NULL DEFAULT now()
    )
    """,
    _RECORD_TABLE_DDL.format(table="expenses"),
    _RECORD_TABLE_DDL.format(table="invoices"),
]


def apply_schema(db_conn) -> None:
    with db_conn() as conn, conn.cursor() as cur:
        for statement in SCHEMA_STATEMENTS:
            cur.execute(statement)
        conn.commit()
    logger.info("Database schema ensured")
