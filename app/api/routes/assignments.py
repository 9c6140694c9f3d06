from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date

from app.core.database import get_db
from app.api.routes.assignment_endpoints import AssignmentEndpoints, assignment_filters
from app.api.routes.auth import get_current_user
from app.models.user import User
from app.models.assignment import Assignment
from app.schemas.assignment import AssignmentUpdate, AssignmentResponse, StatusChangeRequest
from app.services.assignment_query import AssignmentFilters
from app.services.assignment_service import AssignmentService
from app.services.storage import FileStorage, get_file_storage


router = APIRouter()

endpoints = AssignmentEndpoints(
    Assignment,
    AssignmentResponse,
    record_key="assignment",
    list_key="assignments",
    label="Assignment",
    storage_prefix="assignments",
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_assignment(
    background_tasks: BackgroundTasks,
    project_number: str = Form(..., alias="projectNumber"),
    customer_name: str = Form(..., alias="customerName"),
    project_description: str = Form("", alias="projectDescription"),
    region: str = Form(""),
    practice: str = Form(""),
    am: str = Form(""),
    pm: str = Form(""),
    pm_email: str = Form("", alias="pmEmail"),
    resource_assigned: str = Form("", alias="resourceAssigned"),
    request_date: str = Form("", alias="requestDate"),
    eta: str = Form(""),
    notes: str = Form(""),
    documentation_link: str = Form("", alias="documentationLink"),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """
    Intake form submission.

    New assignments start Unassigned when a practice is chosen and Pending
    (with the Pending practice placeholder) otherwise.
    """
    if not project_number.strip() or not customer_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project number and customer name are required"
        )

    if await AssignmentService(db, Assignment).find_duplicate(project_number, customer_name):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"An assignment for project {project_number} and customer {customer_name} already exists"
        )

    assignment = Assignment(
        **endpoints.intake_fields(practice, resource_assigned),
        project_number=project_number.strip(),
        customer_name=customer_name.strip(),
        project_description=project_description,
        region=region,
        am=am,
        pm=pm,
        pm_email=pm_email,
        request_date=request_date or date.today().isoformat(),
        eta=eta,
        notes=notes,
        documentation_link=documentation_link,
    )
    return await endpoints.create(db, storage, current_user, background_tasks, assignment, attachments)


@router.get("")
async def list_assignments(
    filters: AssignmentFilters = Depends(assignment_filters),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List assignments with filters, sorting and pagination."""
    return await endpoints.list(db, current_user, filters)


@router.get("/{assignment_id}")
async def get_assignment(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await endpoints.get(db, current_user, assignment_id)


@router.put("/{assignment_id}")
async def update_assignment(
    assignment_id: str,
    assignment_data: AssignmentUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Save the edit form; a status change goes through the workflow."""
    return await endpoints.update(db, current_user, background_tasks, assignment_id, assignment_data)


@router.post("/{assignment_id}/status")
async def change_assignment_status(
    assignment_id: str,
    status_change: StatusChangeRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Apply one status transition with its practice/assignee input."""
    return await endpoints.change_status(db, current_user, background_tasks, assignment_id, status_change)


@router.get("/{assignment_id}/history")
async def get_assignment_status_history(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get assignment status change history, newest first."""
    return await endpoints.history(db, assignment_id)


@router.get("/{assignment_id}/comments")
async def list_assignment_comments(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Discussion thread, oldest first."""
    return await endpoints.list_comments(db, assignment_id)


@router.post("/{assignment_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_assignment_comment(
    assignment_id: str,
    background_tasks: BackgroundTasks,
    message: str = Form(""),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    return await endpoints.add_comment(
        db, storage, current_user, background_tasks, assignment_id, message, attachments
    )
