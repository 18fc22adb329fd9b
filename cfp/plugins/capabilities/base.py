"""Shared plumbing for capabilities."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from cfp.core import database


class Capability:
    def __init__(self, ctx) -> None:
        self._ctx = ctx

    def _require(self, permission: str) -> None:
        self._ctx.require_permission(permission)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = database.SessionLocal()
        try:
            yield db
        finally:
            db.close()
