# Overview: Fire-and-forget dispatch for best-effort side effects (shop usage counters).

from __future__ import annotations

import atexit
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from flask import current_app, has_app_context


class UsageDispatcher:
    """
    Runs side effects that must never fail or block the request that
    triggered them.

    Each job runs inside its own application context (and therefore its own
    database session), after the originating transaction has committed. Job
    failures are logged with app.logger and dropped.

    USAGE_DISPATCH_MODE:
    - "thread": jobs go to a small ThreadPoolExecutor
    - "inline": jobs run immediately in the calling thread (tests, CLI)

    The pool is process-wide and sized by USAGE_WORKERS of the first app that
    dispatches in thread mode. It is shut down once, at interpreter exit.
    """

    def __init__(self, app=None):
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()
        self._atexit_registered = False
        self.app = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        # First app is the fallback for submits made outside an app context
        if self.app is None:
            self.app = app
        app.extensions["usage_dispatcher"] = self
        with self._lock:
            if not self._atexit_registered:
                atexit.register(self.shutdown, False)
                self._atexit_registered = True

    def _get_executor(self, app) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=app.config.get("USAGE_WORKERS", 2),
                    thread_name_prefix="usage",
                )
            return self._executor

    def submit(self, job: Callable[..., object], *args, **kwargs) -> Future | None:
        # Jobs run against the app that submitted them
        app = current_app._get_current_object() if has_app_context() else self.app
        if app is None:
            raise RuntimeError("UsageDispatcher is not bound to an application")

        if app.config.get("USAGE_DISPATCH_MODE", "thread") == "inline":
            self._run(app, job, *args, **kwargs)
            return None
        return self._get_executor(app).submit(self._run, app, job, *args, **kwargs)

    @staticmethod
    def _run(app, job, *args, **kwargs) -> None:
        from ..extensions import db

        with app.app_context():
            try:
                job(*args, **kwargs)
            except Exception:
                db.session.rollback()
                app.logger.exception("Best-effort job %s failed", getattr(job, "__name__", job))
            finally:
                db.session.remove()

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None
