from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date
import logging

from app.core.database import get_db
from app.api.routes.assignment_endpoints import AssignmentEndpoints, assignment_filters
from app.api.routes.auth import get_current_user
from app.models.user import User
from app.models.assignment import SaAssignment
from app.schemas.assignment import SaAssignmentUpdate, SaAssignmentResponse, StatusChangeRequest
from app.services.assignment_query import AssignmentFilters
from app.services.event_publisher import event_publisher
from app.services.storage import FileStorage, get_file_storage
from app.services.workflow import can_edit


logger = logging.getLogger(__name__)

router = APIRouter()

endpoints = AssignmentEndpoints(
    SaAssignment,
    SaAssignmentResponse,
    record_key="saAssignment",
    list_key="saAssignments",
    label="SA assignment",
    storage_prefix="sa-assignments",
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_sa_assignment(
    background_tasks: BackgroundTasks,
    customer_name: str = Form(..., alias="customerName"),
    opportunity_id: str = Form("", alias="opportunityId"),
    opportunity_name: str = Form("", alias="opportunityName"),
    region: str = Form(""),
    practice: str = Form(""),
    am: str = Form(""),
    isr: str = Form(""),
    sa_assigned: str = Form("", alias="saAssigned"),
    request_date: str = Form("", alias="requestDate"),
    eta: str = Form(""),
    notes: str = Form(""),
    scoop_url: str = Form("", alias="scoopUrl"),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """SA request intake; lands in Pending until a practice is chosen."""
    if not customer_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Customer name is required"
        )

    sa_assignment = SaAssignment(
        **endpoints.intake_fields(practice, sa_assigned),
        customer_name=customer_name.strip(),
        opportunity_id=opportunity_id,
        opportunity_name=opportunity_name,
        region=region,
        am=am,
        isr=isr,
        request_date=request_date or date.today().isoformat(),
        eta=eta,
        notes=notes,
        scoop_url=scoop_url,
        submitted_by=current_user.email,
    )
    return await endpoints.create(db, storage, current_user, background_tasks, sa_assignment, attachments)


@router.get("")
async def list_sa_assignments(
    filters: AssignmentFilters = Depends(assignment_filters),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await endpoints.list(db, current_user, filters)


@router.get("/{sa_assignment_id}")
async def get_sa_assignment(
    sa_assignment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await endpoints.get(db, current_user, sa_assignment_id)


@router.put("/{sa_assignment_id}")
async def update_sa_assignment(
    sa_assignment_id: str,
    sa_assignment_data: SaAssignmentUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await endpoints.update(db, current_user, background_tasks, sa_assignment_id, sa_assignment_data)


@router.post("/{sa_assignment_id}/status")
async def change_sa_assignment_status(
    sa_assignment_id: str,
    status_change: StatusChangeRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await endpoints.change_status(db, current_user, background_tasks, sa_assignment_id, status_change)


@router.get("/{sa_assignment_id}/history")
async def get_sa_assignment_status_history(
    sa_assignment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await endpoints.history(db, sa_assignment_id)


@router.get("/{sa_assignment_id}/comments")
async def list_sa_assignment_comments(
    sa_assignment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await endpoints.list_comments(db, sa_assignment_id)


@router.post("/{sa_assignment_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_sa_assignment_comment(
    sa_assignment_id: str,
    background_tasks: BackgroundTasks,
    message: str = Form(""),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    return await endpoints.add_comment(
        db, storage, current_user, background_tasks, sa_assignment_id, message, attachments
    )


@router.delete("/{sa_assignment_id}")
async def delete_sa_assignment(
    sa_assignment_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Hard delete, with history and comments; limited to users who may edit the record."""
    service = endpoints.service(db)
    sa_assignment = await endpoints.get_or_404(service, sa_assignment_id)

    if not can_edit(current_user, sa_assignment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to delete this SA assignment"
        )

    number = sa_assignment.sa_assignment_number
    await service.delete(sa_assignment)

    logger.info(f"SA assignment #{number} deleted by {current_user.email}")
    background_tasks.add_task(
        event_publisher.publish_record_deleted,
        SaAssignment.entity_type,
        sa_assignment_id
    )

    return {"success": True}
