"""
infrastructure.py

In-memory implementation of the repository interfaces and the Unit of Work.

This is a self-contained, zero-dependency backend that stores everything in
plain Python dicts keyed by UUID, which is enough for local development
and tests.

To swap in a real database (e.g. a document store) later, implement the same
Abstract* interfaces from application.py and override get_uow() in api.py:

    app.dependency_overrides[get_uow] = lambda: MongoUnitOfWork(client)

Nothing in service.py, application.py, or api.py needs to change.
"""

from __future__ import annotations

import uuid
from typing import List

from application import (
    AbstractProjectLogRepository,
    AbstractProjectRepository,
    AbstractUnitOfWork,
)
from model import Project, ProjectLogEntry


# ---------------------------------------------------------------------------
# Generic in-memory store
# ---------------------------------------------------------------------------

class _Store(dict):
    """A plain dict with typed get/save/delete helpers."""

    def fetch(self, key: uuid.UUID):
        return self.get(key)

    def put(self, obj) -> None:
        self[obj.id] = obj

    def remove(self, key: uuid.UUID) -> None:
        self.pop(key, None)

    def all(self) -> list:
        return list(self.values())


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Lives as long as the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    def __init__(self):
        self.projects:     _Store = _Store()
        self.project_logs: _Store = _Store()


# Shared by all requests
_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class InMemoryProjectRepository(AbstractProjectRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, project_id):        return self._s.fetch(project_id)
    def get_by_code(self, code):
        return next((p for p in self._s.all() if p.project_id == code), None)
    def list_all(self):               return self._s.all()
    def save(self, project: Project): self._s.put(project)
    def delete(self, project_id):     self._s.remove(project_id)


class InMemoryProjectLogRepository(AbstractProjectLogRepository):
    def __init__(self, store: _Store): self._s = store

    def list_for_project(self, project_id, limit) -> List[ProjectLogEntry]:
        # Newest first; entries of one batch keep their batch order
        entries = [e for e in self._s.all() if e.project_id == project_id]
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        return entries[:limit]

    def add_many(self, entries):
        for entry in entries:
            self._s.put(entry)

    def delete_for_project(self, project_id):
        for entry in [e for e in self._s.all() if e.project_id == project_id]:
            self._s.remove(entry.id)


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Wraps the in-memory repositories.  commit() and rollback() are no-ops
    because dict mutations are immediate.
    In a real database implementation, commit() would end the transaction.
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self.projects     = InMemoryProjectRepository(db.projects)
        self.project_logs = InMemoryProjectLogRepository(db.project_logs)

    def commit(self)   -> None: pass   # no-op for in-memory
    def rollback(self) -> None: pass   # no-op for in-memory
