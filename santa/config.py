import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./santa.db"

# параметры, которые ломают PgBouncer в режиме transaction pooling
_PG_BAD_PARAMS = {
    "prepared_statement_cache_size",
    "statement_cache_size",
    "prepared_statements",
    "server_prepared_statements",
}


def sanitize_pg_url(url: str) -> str:
    if not url.startswith(("postgres://", "postgresql://", "postgresql+psycopg://")):
        return url
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    parts = urlsplit(url)
    q = dict(parse_qsl(parts.query, keep_blank_values=True))
    for k in list(q):
        if k in _PG_BAD_PARAMS:
            q.pop(k, None)
    q.setdefault("sslmode", "require")
    return urlunsplit(parts._replace(query=urlencode(q)))


@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_id: str
    database_url: str = DEFAULT_DATABASE_URL
    webhook_url: Optional[str] = None
    port: int = 10000
    derangement_trials: int = 200
    log_level: str = "INFO"


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env

    token = env.get("BOT_TOKEN", "").strip()
    if not token:
        raise RuntimeError("BOT_TOKEN is required")
    admin_id = env.get("ADMIN_ID", "").strip()
    if not admin_id:
        raise RuntimeError("ADMIN_ID is required")

    return Settings(
        bot_token=token,
        admin_id=admin_id,
        database_url=sanitize_pg_url(env.get("DATABASE_URL", DEFAULT_DATABASE_URL)),
        webhook_url=env.get("WEBHOOK_URL") or None,
        port=int(env.get("PORT", "10000")),
        derangement_trials=int(env.get("DERANGEMENT_TRIALS", "200")),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
