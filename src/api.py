"""
api.py

REST API layer for the Project Status Tracker.

Framework : FastAPI
Auth      : None.  The caller states its role in the X-User-Role header
            ("admin" or "hod", default admin) and its display name in the
            X-User-Name header; the name is recorded as `changed_by` on every
            change log entry.  HOD callers may read but not modify.

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /projects                            project CRUD
  │   ├── /{project_id}/stages             save an edit session (status + log)
  │   │   └── /calculate-dates             phase date allocator preview
  │   ├── /{project_id}/priority           priority-only update
  │   └── /{project_id}/logs               change log
  ├── /dashboard                           landing page counters
  └── /departments                         department / owner breakdown

Error handling
--------------
  NotFoundError      → 404
  AuthorizationError → 403
  ApplicationError   → 422
  ValueError         → 422
  Unhandled          → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn api:app --reload
"""

from __future__ import annotations

import dataclasses
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi_mcp import FastApiMCP
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator

from config import settings
from infrastructure import InMemoryUnitOfWork
from application import (
    # Exceptions
    ApplicationError,
    AuthorizationError,
    NotFoundError,
    # Use-case commands
    CreateProjectCommand,
    SaveProjectStatusCommand,
    # Use-case classes
    CreateProjectUseCase,
    SaveProjectStatusUseCase,
    AbstractUnitOfWork,
)
from model import (
    PROJECT_LEVEL,
    ChangeRecord,
    Milestone,
    Priority,
    ProjectSnapshot,
    Stage,
    StageStatus,
    UserRole,
)


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_title,
    version=settings.api_version,
    description=(
        "REST API for tracking projects through weighted stages: automatic "
        "stage date allocation, milestone tracking, an append-only change log "
        "and dashboard summaries."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def authorization_handler(request, exc: AuthorizationError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_uow() -> AbstractUnitOfWork:
    """Returns the in-memory Unit of Work (no database required)."""
    return InMemoryUnitOfWork()


def get_user_role(
    x_user_role: str = Header(default=UserRole.ADMIN.value, description="admin or hod"),
) -> UserRole:
    try:
        return UserRole(x_user_role.strip().lower())
    except ValueError:
        raise AuthorizationError(f"Unknown role '{x_user_role}'.") from None


def get_actor(
    x_user_name: Optional[str] = Header(default=None, description="Recorded as changed_by"),
) -> str:
    return (x_user_name or "").strip() or settings.default_actor


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


def _iso(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def _blank_to_none(v):
    """Forms send "" for an empty date field."""
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

# ---------------------------------------------------------------------------
# Project schemas
# ---------------------------------------------------------------------------

class CreateProjectRequest(BaseModel):
    project_name: str = Field(..., min_length=1, max_length=200)
    objectives: str = Field(default="")
    department: str = Field(..., min_length=1, max_length=200)
    tech_department: str = Field(..., min_length=1, max_length=200)
    project_status: Optional[str] = Field(
        default=None, description="One of the ProjectStatus values; invalid values fall back to the default."
    )
    project_owner: str = Field(..., min_length=1, max_length=200)
    project_owner_primary_email: Optional[EmailStr] = None
    project_owner_primary_contact: str = Field(default="")
    project_owner_alternate_email: Optional[EmailStr] = None
    business_owner: str = Field(..., min_length=1, max_length=200)
    business_owner_primary_email: Optional[EmailStr] = None
    business_owner_primary_contact: str = Field(default="")
    business_owner_alternate_email: Optional[EmailStr] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    priority: str = Field(default=Priority.P3.value, description="One of: P1, P2, P3")
    overall_project_summary: str = Field(default="")

    @field_validator(
        "start_date",
        "end_date",
        "project_owner_primary_email",
        "project_owner_alternate_email",
        "business_owner_primary_email",
        "business_owner_alternate_email",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        valid = {p.value for p in Priority}
        if v not in valid:
            raise ValueError(f"priority must be one of: {sorted(valid)}")
        return v

    def contacts(self) -> Dict[str, str]:
        names = (
            "project_owner_primary_email",
            "project_owner_primary_contact",
            "project_owner_alternate_email",
            "business_owner_primary_email",
            "business_owner_primary_contact",
            "business_owner_alternate_email",
        )
        return {name: str(getattr(self, name) or "") for name in names}


# ---------------------------------------------------------------------------
# Stage schemas
# ---------------------------------------------------------------------------

class MilestoneIn(BaseModel):
    id: int = Field(..., ge=1, description="Unique within the stage")
    title: str = Field(default="")
    stage_name: str = Field(default="", description="Free-text sub-label, not the parent stage")
    owner: str = Field(default="")
    remarks: str = Field(default="")


class StageIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    weight: float = Field(default=0.0, ge=0.0, le=100.0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    actual_start_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    status: str = Field(default=StageStatus.YET_TO_START.value)
    stage_owner: str = Field(default="")
    remarks: str = Field(default="")
    milestones: List[MilestoneIn] = Field(default_factory=list)

    @field_validator(
        "start_date", "end_date", "actual_start_date", "actual_end_date", mode="before"
    )
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        valid = {s.value for s in StageStatus}
        if v not in valid:
            raise ValueError(f"status must be one of: {sorted(valid)}")
        return v

    def to_stage(self) -> Stage:
        return Stage(
            name=self.name,
            weight=self.weight,
            start_date=_iso(self.start_date),
            end_date=_iso(self.end_date),
            actual_start_date=_iso(self.actual_start_date),
            actual_end_date=_iso(self.actual_end_date),
            status=StageStatus(self.status),
            stage_owner=self.stage_owner,
            remarks=self.remarks,
            milestones=[Milestone(**m.model_dump()) for m in self.milestones],
        )


class ChangeRecordIn(BaseModel):
    field_name: str = Field(..., min_length=1)
    previous_value: str = Field(default="")
    new_value: str = Field(default="")
    stage_name: str = Field(default=PROJECT_LEVEL)


class SaveProjectStatusRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    priority: Optional[str] = Field(
        default=None, description="One of: P1, P2, P3.  Omit to keep the stored priority."
    )
    overall_project_summary: str = Field(default="")
    stages: List[StageIn] = Field(default_factory=list)
    logs: List[ChangeRecordIn] = Field(
        default_factory=list,
        description="Change records collected while editing (weight edits, recalculated dates).",
    )

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        valid = {p.value for p in Priority}
        if v not in valid:
            raise ValueError(f"priority must be one of: {sorted(valid)}")
        return v

    def to_snapshot(self) -> ProjectSnapshot:
        return ProjectSnapshot(
            start_date=_iso(self.start_date),
            end_date=_iso(self.end_date),
            priority=Priority(self.priority) if self.priority else None,
            overall_project_summary=self.overall_project_summary,
            stages=[s.to_stage() for s in self.stages],
        )


class UpdatePriorityRequest(BaseModel):
    priority: str = Field(..., description="One of: P1, P2, P3")

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        valid = {p.value for p in Priority}
        if v not in valid:
            raise ValueError(f"priority must be one of: {sorted(valid)}")
        return v


class CalculateDatesRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    weights: Optional[Dict[str, float]] = Field(
        default=None, description="Weight overrides keyed by stage name."
    )

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

project_router = APIRouter(prefix="/projects", tags=["Projects"])


@project_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new project",
)
def create_project(
    body: CreateProjectRequest,
    role: UserRole = Depends(get_user_role),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Creates the project with the next PRJ code and the default seven-stage
    template (Concept → Go-Live and support, weights summing to 100).
    """
    cmd = CreateProjectCommand(
        project_name=body.project_name,
        department=body.department,
        tech_department=body.tech_department,
        project_owner=body.project_owner,
        business_owner=body.business_owner,
        objectives=body.objectives,
        start_date=_iso(body.start_date),
        end_date=_iso(body.end_date),
        project_status=body.project_status,
        priority=Priority(body.priority),
        overall_project_summary=body.overall_project_summary,
        contacts=body.contacts(),
        role=role,
    )
    result = CreateProjectUseCase().execute(cmd, uow)
    return _ok(result)


@project_router.get(
    "",
    summary="List projects, newest first",
)
def list_projects(
    status_filter: str = Query(
        "all", alias="status", description="One of: all, completed, inProgress, delayed"
    ),
    search: str = Query("", description="Matches project code or name, case-insensitive"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListProjectsUseCase
    result = ListProjectsUseCase().execute(uow, status_filter=status_filter, search=search)
    return _ok(result)


@project_router.get(
    "/{project_id}",
    summary="Get a project by ID",
)
def get_project(
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetProjectUseCase
    result = GetProjectUseCase().execute(project_id, uow)
    return _ok(result)


@project_router.delete(
    "/{project_id}",
    summary="Delete a project and its change log",
)
def delete_project(
    project_id: uuid.UUID = Path(...),
    role: UserRole = Depends(get_user_role),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import DeleteProjectCommand, DeleteProjectUseCase
    result = DeleteProjectUseCase().execute(
        DeleteProjectCommand(project_id=project_id, role=role), uow
    )
    return _ok(result)


# ---------------------------------------------------------------------------
# Stages & status editing
# ---------------------------------------------------------------------------

stage_router = APIRouter(
    prefix="/projects/{project_id}",
    tags=["Stages"],
)


@stage_router.patch(
    "/stages",
    summary="Save an edit session: project dates, priority, summary and stages",
)
def save_project_status(
    body: SaveProjectStatusRequest,
    project_id: uuid.UUID = Path(...),
    role: UserRole = Depends(get_user_role),
    actor: str = Depends(get_actor),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    The stored project is compared with the submitted state.  The resulting
    change records, merged with the ones sent in `logs`, are appended to the
    project's change log and returned alongside the updated project.
    """
    cmd = SaveProjectStatusCommand(
        project_id=project_id,
        working=body.to_snapshot(),
        incremental_changes=[ChangeRecord(**r.model_dump()) for r in body.logs],
        changed_by=actor,
        role=role,
    )
    result = SaveProjectStatusUseCase().execute(cmd, uow)
    return _ok(result)


@stage_router.patch(
    "/priority",
    summary="Change only the project priority",
)
def update_priority(
    body: UpdatePriorityRequest,
    project_id: uuid.UUID = Path(...),
    role: UserRole = Depends(get_user_role),
    actor: str = Depends(get_actor),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import UpdateProjectPriorityCommand, UpdateProjectPriorityUseCase
    cmd = UpdateProjectPriorityCommand(
        project_id=project_id,
        priority=Priority(body.priority),
        changed_by=actor,
        role=role,
    )
    result = UpdateProjectPriorityUseCase().execute(cmd, uow)
    return _ok(result)


@stage_router.post(
    "/stages/calculate-dates",
    summary="Preview planned stage dates from the project range and weights",
)
def calculate_stage_dates(
    body: Optional[CalculateDatesRequest] = None,
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Nothing is saved.  Omitted dates and weights default to the stored
    project's values.
    """
    from application import CalculateStageDatesCommand, CalculateStageDatesUseCase
    body = body or CalculateDatesRequest()
    cmd = CalculateStageDatesCommand(
        project_id=project_id,
        start_date=_iso(body.start_date) or None,
        end_date=_iso(body.end_date) or None,
        weights=body.weights,
    )
    result = CalculateStageDatesUseCase().execute(cmd, uow)
    return _ok(result)


# ---------------------------------------------------------------------------
# Change log
# ---------------------------------------------------------------------------

log_router = APIRouter(
    prefix="/projects/{project_id}/logs",
    tags=["Change Log"],
)


@log_router.get(
    "",
    summary="List change log entries for a project, newest first",
)
def get_project_logs(
    project_id: uuid.UUID = Path(...),
    limit: Optional[int] = Query(None, ge=1, description="Defaults to the configured log limit"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetProjectLogsUseCase
    result = GetProjectLogsUseCase().execute(project_id, uow, limit=limit)
    return _ok(result)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

dashboard_router = APIRouter(tags=["Dashboard"])


@dashboard_router.get(
    "/dashboard",
    summary="Project counts per overall status",
)
def get_dashboard(
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetDashboardUseCase
    result = GetDashboardUseCase().execute(uow)
    return _ok(result)


@dashboard_router.get(
    "/departments",
    summary="Project counts per department and owner",
)
def get_department_breakdown(
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetDepartmentBreakdownUseCase
    result = GetDepartmentBreakdownUseCase().execute(uow)
    return _ok(result)


# ===========================================================================
# REGISTER ROUTERS
# ===========================================================================

api_v1.include_router(project_router)
api_v1.include_router(stage_router)
api_v1.include_router(log_router)
api_v1.include_router(dashboard_router)

app.include_router(api_v1)

# ---------------------------------------------------------------------------
# MCP server: every API route is also an MCP tool
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok"}


# ===========================================================================
# OPENAPI CUSTOMISATION: tag order and descriptions
# ===========================================================================

tags_metadata = [
    {
        "name": "Health",
        "description": "Liveness probe.",
    },
    {
        "name": "Projects",
        "description": (
            "Create, list, view and delete projects.  New projects receive the "
            "next PRJ code and the default seven-stage template."
        ),
    },
    {
        "name": "Stages",
        "description": (
            "Save stage status, owners, actual dates, remarks, weights and "
            "milestones.  Every save appends the detected changes to the "
            "project's change log.  Planned stage dates can be previewed from "
            "the project range and the stage weights."
        ),
    },
    {
        "name": "Change Log",
        "description": (
            "Append-only, field-level history of every saved change: who, "
            "when, which stage, previous and new value."
        ),
    },
    {
        "name": "Dashboard",
        "description": "Landing page counters and the department / owner breakdown.",
    },
]

app.openapi_tags = tags_metadata
