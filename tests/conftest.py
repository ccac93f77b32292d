"""
Shared test fixtures for the Project Status Tracker.

Provides a fresh in-memory database per test, a unit of work bound to it,
an API client wired to the same database and a seeded project.
"""

import pytest

from infrastructure import InMemoryDatabase, InMemoryUnitOfWork


@pytest.fixture
def memory_db():
    """An empty in-memory database, isolated from the process-wide singleton."""
    return InMemoryDatabase()


@pytest.fixture
def uow(memory_db):
    return InMemoryUnitOfWork(memory_db)


@pytest.fixture
def client(memory_db):
    """FastAPI test client whose unit of work points at the per-test database."""
    from fastapi.testclient import TestClient

    from api import app, get_uow

    app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork(memory_db)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_uow, None)


@pytest.fixture
def create_cmd():
    from application import CreateProjectCommand

    return CreateProjectCommand(
        project_name="Payments Revamp",
        department="Finance",
        tech_department="Core Banking",
        project_owner="Asha",
        business_owner="Ravi",
        start_date="2025-01-01",
        end_date="2025-04-10",
    )


@pytest.fixture
def seed_project(uow, create_cmd):
    """A stored project with the default stage template. Returns its ProjectDTO."""
    from application import CreateProjectUseCase

    return CreateProjectUseCase().execute(create_cmd, uow)

