"""
Rationalization Suggestion Workflow
Housekeeping sweep.

A daemon thread wakes every ``HOUSEKEEPING_INTERVAL_SECONDS`` and runs the
registered jobs inside an app context. Jobs are diagnostic only: they log
pool and cache figures and evict expired cache entries. They never touch
suggestion data, so a failing job is logged and the loop carries on.

Architecture:
    - Jobs are registered via the ``@register_job`` decorator
    - HousekeepingService owns the thread; ``run_job`` can be called directly
      (tests, manual trigger)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from flask import Flask

from suggestion_hub.middleware.timing import get_recent_metrics
from suggestion_hub.models import db
from suggestion_hub.services import cache_service

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("cache_sweep")
        def sweep_cache(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


# ═══════════════════════════════════════════════════════════════════════════
#  Jobs
# ═══════════════════════════════════════════════════════════════════════════


def pool_status() -> dict:
    """Connection-pool figures where the pool exposes them."""
    pool = db.engine.pool
    info = {"class": type(pool).__name__}
    for attr in ("size", "checkedin", "checkedout", "overflow"):
        fn = getattr(pool, attr, None)
        if callable(fn):
            try:
                info[attr] = fn()
            except Exception:
                continue
    return info


@register_job("cache_sweep")
def sweep_cache(app: Flask) -> dict:
    """Evict expired cache entries and report cache statistics."""
    cache = cache_service.get_cache()
    evicted = cache.sweep()
    stats = cache.stats()
    logger.info("Cache sweep: evicted=%d entries=%d hit_rate=%.3f",
                evicted, stats["entries"], stats["hit_rate"])
    return {"evicted": evicted, **stats}


@register_job("pool_stats")
def report_pool(app: Flask) -> dict:
    """Log connection-pool usage."""
    info = pool_status()
    logger.info("DB pool: %s", info)
    return info


@register_job("request_stats")
def report_requests(app: Flask) -> dict:
    """Summarize request timings since the previous sweep."""
    interval = app.config.get("HOUSEKEEPING_INTERVAL_SECONDS") or 300
    recent = get_recent_metrics(seconds=interval)
    if not recent:
        return {"count": 0}
    durations = sorted(m["ms"] for m in recent)
    summary = {
        "count": len(recent),
        "errors": sum(1 for m in recent if m["status"] >= 500),
        "p50_ms": durations[len(durations) // 2],
        "max_ms": durations[-1],
    }
    logger.info("Requests: %s", summary)
    return summary


# ═══════════════════════════════════════════════════════════════════════════
#  Service
# ═══════════════════════════════════════════════════════════════════════════


class HousekeepingService:
    """Interval-driven background sweep, one daemon thread per process."""

    _app: Flask | None = None
    _interval: int = 0
    _stop: threading.Event | None = None
    _thread: threading.Thread | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        cls._interval = int(app.config.get("HOUSEKEEPING_INTERVAL_SECONDS") or 0)
        app.extensions["housekeeping"] = cls
        logger.info("HousekeepingService initialized with %d registered jobs (interval=%ss)",
                    len(_job_registry), cls._interval)
        if cls._interval > 0 and not app.testing:
            cls.start()

    @classmethod
    def start(cls) -> None:
        if cls._thread and cls._thread.is_alive():
            return
        cls._stop = threading.Event()
        cls._thread = threading.Thread(
            target=cls._loop, name="housekeeping", daemon=True,
        )
        cls._thread.start()

    @classmethod
    def stop(cls, timeout: float = 5.0) -> None:
        if cls._stop:
            cls._stop.set()
        if cls._thread:
            cls._thread.join(timeout)
        cls._thread = None

    @classmethod
    def _loop(cls) -> None:
        while not cls._stop.wait(cls._interval):
            cls.run_all()

    @classmethod
    def run_all(cls) -> list[dict]:
        return [cls.run_job(name) for name in list(_job_registry)]

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Housekeeping not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc)

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": int((time.monotonic() - start) * 1000),
            "result": result,
            "error": error,
        }
