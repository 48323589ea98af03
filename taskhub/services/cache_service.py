"""
Task listing cache.

Short-lived cache for the task listing endpoint, keyed per tenant, per
actor scope and per filter set:

    tasks:<tenant_id>:<scope>:<digest of filters + day>

The engine (task/justification services) never imports this module. The
transport layer reads through ``get_task_listing`` and every mutating
endpoint calls ``invalidate_task_listings(tenant_id)`` whether or not it succeeds.

Uses Redis when REDIS_URL is a redis:// URL, otherwise a simple in-memory
dict for development/testing.
"""

import fnmatch
import hashlib
import json
import logging
import time

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

# ── In-memory backend ────────────────────────────────────────────────────

_memory_store: dict[str, tuple[str, float]] = {}


class _MemoryBackend:
    """The subset of the redis-py client this module calls, over a dict."""

    def get(self, key):
        hit = _memory_store.get(key)
        if hit is None:
            return None
        if hit[1] <= time.monotonic():
            del _memory_store[key]
            return None
        return hit[0]

    def setex(self, key, ttl_seconds, value):
        _memory_store[key] = (value, time.monotonic() + ttl_seconds)

    def delete(self, *keys):
        return sum(_memory_store.pop(k, None) is not None for k in keys)

    def scan_iter(self, match="*"):
        return [k for k in list(_memory_store) if fnmatch.fnmatchcase(k, match)]

    def flushdb(self):
        _memory_store.clear()

    def ping(self):
        return True


# ── Singleton cache backend ──────────────────────────────────────────────

_backend = None


def _configured_url() -> str:
    if has_app_context():
        return current_app.config.get("REDIS_URL") or "memory://"
    return "memory://"


def _get_backend():
    """Lazy-initialise Redis or the in-memory store."""
    global _backend
    if _backend is not None:
        return _backend

    redis_url = _configured_url()
    if redis_url.startswith(("redis://", "rediss://")):
        import redis as _redis

        client = _redis.from_url(redis_url, decode_responses=True)
        try:
            client.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
            _backend = client
        except _redis.exceptions.RedisError as exc:
            logger.warning("Redis unavailable (%s), falling back to memory cache", exc)
            _backend = _MemoryBackend()
    else:
        _backend = _MemoryBackend()
    return _backend


def reset_backend():
    """Forget the chosen backend and any in-memory entries."""
    global _backend
    _backend = None
    _memory_store.clear()


# ── Key builders ─────────────────────────────────────────────────────────

DEFAULT_TTL = 30


def _ttl() -> int:
    if has_app_context():
        return int(current_app.config.get("TASK_LIST_CACHE_TTL", DEFAULT_TTL))
    return DEFAULT_TTL


def actor_scope(actor) -> str:
    """Cache partition matching what the actor can see."""
    if actor.is_admin:
        return "admin"
    if actor.is_leader:
        return f"leader:{actor.role.area}"
    return f"user:{actor.email}"


def _listing_key(tenant_id, scope, filters, day):
    raw = json.dumps({"f": filters or {}, "d": day}, sort_keys=True, default=str)
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]
    return f"tasks:{tenant_id}:{scope}:{digest}"


# ── Public API ───────────────────────────────────────────────────────────


def get_task_listing(tenant_id, scope, filters, day, loader):
    """Return the cached listing, or run *loader* and cache its result."""
    backend = _get_backend()
    key = _listing_key(tenant_id, scope, filters, day)
    cached = backend.get(key)
    if cached is not None:
        try:
            return json.loads(cached)
        except ValueError:
            logger.warning("Dropping unreadable cache entry %s", key)
            backend.delete(key)
    rows = loader()
    backend.setex(key, _ttl(), json.dumps(rows, default=str))
    return rows


def invalidate_task_listings(tenant_id):
    """Drop every cached listing of *tenant_id*, across all scopes."""
    backend = _get_backend()
    keys = list(backend.scan_iter(match=f"tasks:{tenant_id}:*"))
    if keys:
        backend.delete(*keys)
    logger.debug("Invalidated %d task listing keys", len(keys), extra={"tenant_id": tenant_id})


def clear_all():
    _get_backend().flushdb()


def health_check() -> dict:
    """Ping the backend for the readiness check."""
    backend = _get_backend()
    kind = "memory" if isinstance(backend, _MemoryBackend) else "redis"
    try:
        backend.ping()
    except Exception as exc:  # any backend failure means "not ready"
        logger.warning("Cache health check failed: %s", exc)
        return {"status": "error", "backend": kind, "detail": str(exc)}
    return {"status": "ok", "backend": kind}
