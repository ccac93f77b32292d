"""
main.py

Entry point for the Project Status Tracker API.

Configures logging, wires the in-memory infrastructure into the FastAPI app
and starts uvicorn.

Usage
-----
    # Option 1: run directly
    python main.py

    # Option 2: run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

    # Option 3: override settings through the environment
    PROJECT_TRACKER_PORT=8080 PROJECT_TRACKER_LOG_LEVEL=DEBUG python main.py

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI  (try every endpoint interactively)
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
1.  POST  /api/v1/projects                              create a project,
                                                          copy the returned "id"
2.  POST  /api/v1/projects/{id}/stages/calculate-dates  preview planned stage dates
3.  PATCH /api/v1/projects/{id}/stages                  save dates, statuses, owners
4.  GET   /api/v1/projects/{id}/logs                    review the change log
5.  GET   /api/v1/dashboard                             overall counters

Role note
---------
Requests default to the admin role.  Send "X-User-Role: hod" to act as a
Head of Department (read-only) and "X-User-Name: <name>" to have saves
attributed to you in the change log.
"""

import logging

import uvicorn

from api import app, get_uow
from config import settings
from infrastructure import InMemoryUnitOfWork

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire the concrete Unit of Work into the FastAPI dependency system.
# To swap databases, replace InMemoryUnitOfWork with your own implementation.
# ---------------------------------------------------------------------------

app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork()


if __name__ == "__main__":
    log.info("Starting %s on %s:%d", settings.app_title, settings.host, settings.port)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
