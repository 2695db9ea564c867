from __future__ import annotations

import os
from typing import Any, MutableMapping, Optional
from urllib.parse import urlsplit, urlunsplit

from .core import ENV_PREFIX, DatabaseSettings


def build_database_url(
    *,
    user: str,
    password: Optional[str],
    host: str,
    port: str | int,
    name: str,
) -> str:
    auth = f"{user}:{password}" if password else f"{user}"
    return f"postgresql+asyncpg://{auth}@{host}:{port}/{name}"


def ensure_env_database_url(environ: Optional[MutableMapping[str, str]] = None) -> dict[str, Any]:
    """Compose BITREDICT_DATABASE__URL from its parts when no URL is exported."""
    env = os.environ if environ is None else environ
    existing = env.get(f"{ENV_PREFIX}DATABASE__URL") or env.get("DATABASE_URL")
    if existing:
        return {"composed": False, "url_already_set": True}

    user = env.get(f"{ENV_PREFIX}DATABASE__USER")
    name = env.get(f"{ENV_PREFIX}DATABASE__NAME")
    if not (user and name):
        return {"composed": False, "reason": "missing_fields"}

    port = env.get(f"{ENV_PREFIX}DATABASE__PORT") or "5432"
    url = build_database_url(
        user=user,
        password=env.get(f"{ENV_PREFIX}DATABASE__PASSWORD") or "",
        host=env.get(f"{ENV_PREFIX}DATABASE__HOST") or "127.0.0.1",
        port=port,
        name=name,
    )
    env[f"{ENV_PREFIX}DATABASE__URL"] = url
    env["DATABASE_URL"] = url
    return {"composed": True, "reason": "missing_url", "port": port}


def resolve_database_url(settings: DatabaseSettings) -> str:
    """Return the configured URL, composing it from parts if needed."""
    if settings.url:
        return settings.url
    if settings.user and settings.name:
        return build_database_url(
            user=settings.user,
            password=settings.password,
            host=settings.host,
            port=settings.port,
            name=settings.name,
        )
    raise ValueError("database url is not configured (set BITREDICT_DATABASE__URL or user/name)")


def sanitize_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = f"{parts.username}:***@{parts.hostname}"
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


__all__ = [
    "build_database_url",
    "ensure_env_database_url",
    "resolve_database_url",
    "sanitize_url",
]
