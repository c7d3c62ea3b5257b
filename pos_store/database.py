# Overview: Explicitly owned handle to the embedded store (open/close lifecycle).

from __future__ import annotations

from flask import Flask, current_app, has_app_context

from .extensions import db
from .services.schema_service import upgrade_schema


class PosDatabase:
    """
    Handle to the local store for one application.

    open() makes an application context available (pushing one if the
    caller is not already inside this app's context) and applies
    upgrade_schema(). close() releases the session and pops only the
    context this handle pushed. Usable as a context manager.
    """

    def __init__(self, app: Flask):
        self.app = app
        self.schema_version: int | None = None
        self._ctx = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def session(self):
        if not self._open:
            raise RuntimeError("database handle is closed")
        return db.session

    def open(self) -> "PosDatabase":
        if self._open:
            return self
        if not has_app_context() or current_app._get_current_object() is not self.app:
            self._ctx = self.app.app_context()
            self._ctx.push()
        try:
            self.schema_version = upgrade_schema()
        except Exception:
            self._release()
            raise
        self._open = True
        return self

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        self._release()

    def _release(self) -> None:
        if self._ctx is not None:
            db.session.remove()
            self._ctx.pop()
            self._ctx = None

    def __enter__(self) -> "PosDatabase":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_database(app: Flask | None = None) -> PosDatabase:
    """Open (and create or upgrade) the store for `app`, defaulting to the current app."""
    if app is None:
        app = current_app._get_current_object()
    return PosDatabase(app).open()
