"""
Endpoint bodies shared by the resource and SA assignment routers.

Both routers expose the same operations over AssignmentService; they differ
in the model, the response schema, the key the record is returned under and
the storage prefix for attachments. Each router keeps its own form fields
and update schema and delegates the rest here.
"""

from fastapi import BackgroundTasks, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date
import json
import logging

from app.models.user import User
from app.models.assignment import AssignmentStatus, PENDING_PRACTICE, join_names, split_names
from app.schemas.assignment import StatusChangeRequest, StatusHistoryResponse
from app.schemas.common import CommentResponse
from app.services.assignment_query import AssignmentFilters, query_assignments
from app.services.assignment_service import AssignmentService, NumberConflictError
from app.services.event_publisher import event_publisher
from app.services.notification_service import deliver_notifications
from app.services.storage import FileStorage, StorageError
from app.services.workflow import (
    TransitionError,
    TransitionRequest,
    WorkflowPermissionError,
    can_edit,
    transition,
    update_record,
)


logger = logging.getLogger(__name__)


def assignment_filters(
    status_filter: Optional[List[AssignmentStatus]] = Query(None, alias="status"),
    practice: Optional[List[str]] = Query(None),
    region: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    sort: str = Query("newest"),
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=200),
) -> AssignmentFilters:
    """List query parameters shared by both assignment lists."""
    return AssignmentFilters(
        status=status_filter or [],
        practice=practice or [],
        region=region,
        search=search,
        date_from=date_from,
        date_to=date_to,
        sort=sort,
        page=page,
        page_size=page_size,
    )


class AssignmentEndpoints:
    def __init__(
        self,
        model,
        response_schema,
        record_key: str,
        list_key: str,
        label: str,
        storage_prefix: str
    ):
        self.model = model
        self.response_schema = response_schema
        self.record_key = record_key
        self.list_key = list_key
        self.label = label
        self.storage_prefix = storage_prefix

    def service(self, db: AsyncSession) -> AssignmentService:
        return AssignmentService(db, self.model)

    def serialize(self, record, user: User):
        response = self.response_schema.model_validate(record)
        response.can_edit = can_edit(user, record)
        return response

    def respond(self, record, user: User) -> dict:
        return {"success": True, self.record_key: self.serialize(record, user)}

    async def get_or_404(self, service: AssignmentService, record_id: str):
        record = await service.get(record_id)
        if not record:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{self.label} not found"
            )
        return record

    def intake_fields(self, practice: str, assignees_text: str) -> dict:
        """
        Initial workflow fields for an intake submission.

        Records start Unassigned when a practice is chosen and Pending (with
        the Pending practice placeholder) otherwise.
        """
        practices = [p for p in split_names(practice) if p != PENDING_PRACTICE]
        assignees = split_names(assignees_text)
        return {
            "status": AssignmentStatus.UNASSIGNED if practices else AssignmentStatus.PENDING,
            "practice": join_names(practices) if practices else PENDING_PRACTICE,
            self.model.assignee_field: join_names(assignees),
            "date_assigned": date.today().isoformat() if assignees else "",
        }

    async def create(
        self,
        db: AsyncSession,
        storage: FileStorage,
        user: User,
        background_tasks: BackgroundTasks,
        record,
        attachments: Optional[List[UploadFile]]
    ) -> dict:
        service = self.service(db)
        try:
            await service.add_numbered(record)
        except NumberConflictError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

        try:
            uploaded = await storage.upload_many(f"{self.storage_prefix}/{record.id}", attachments or [])
        except StorageError as e:
            await db.rollback()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        record.attachments = json.dumps(uploaded)

        notifications = await service.after_status_change(record, None, user)
        logger.info(f"{self.label} #{record.display_number} created by {user.email}")

        background_tasks.add_task(deliver_notifications, notifications)
        background_tasks.add_task(event_publisher.publish_record_created, record)

        return self.respond(record, user)

    async def list(self, db: AsyncSession, user: User, filters: AssignmentFilters) -> dict:
        records, total = await query_assignments(db, self.model, filters)
        return {
            "success": True,
            self.list_key: [self.serialize(r, user) for r in records],
            "total": total,
            "page": filters.page,
            "pageSize": filters.page_size,
        }

    async def get(self, db: AsyncSession, user: User, record_id: str) -> dict:
        record = await self.get_or_404(self.service(db), record_id)
        return self.respond(record, user)

    async def update(
        self,
        db: AsyncSession,
        user: User,
        background_tasks: BackgroundTasks,
        record_id: str,
        payload
    ) -> dict:
        """Save the edit form; a status change goes through the workflow."""
        service = self.service(db)
        record = await self.get_or_404(service, record_id)

        update_data = payload.model_dump(exclude_unset=True, exclude_none=True)
        if self.model.assignee_field in update_data:
            update_data["assignees"] = split_names(update_data.pop(self.model.assignee_field))

        old_status = record.status
        try:
            rule = update_record(user, record, update_data)
        except WorkflowPermissionError as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
        except TransitionError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        notifications = []
        if rule is not None:
            notifications = await service.after_status_change(record, old_status, user)
        else:
            await service.save(record)

        background_tasks.add_task(deliver_notifications, notifications)
        background_tasks.add_task(
            event_publisher.publish_record_updated,
            record,
            old_status,
            payload.model_dump(exclude_unset=True, by_alias=True)
        )

        return self.respond(record, user)

    async def change_status(
        self,
        db: AsyncSession,
        user: User,
        background_tasks: BackgroundTasks,
        record_id: str,
        status_change: StatusChangeRequest
    ) -> dict:
        service = self.service(db)
        record = await self.get_or_404(service, record_id)

        old_status = record.status
        request = TransitionRequest(
            to_status=status_change.status,
            practices=status_change.practice,
            am=status_change.am,
            assignees=status_change.assignees,
            date_assigned=status_change.date_assigned,
        )
        try:
            rule = transition(user, record, request)
        except WorkflowPermissionError as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
        except TransitionError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        if rule is None:
            return self.respond(record, user)

        notifications = await service.after_status_change(record, old_status, user)
        background_tasks.add_task(deliver_notifications, notifications)
        background_tasks.add_task(event_publisher.publish_record_updated, record, old_status)

        return self.respond(record, user)

    async def history(self, db: AsyncSession, record_id: str) -> dict:
        service = self.service(db)
        await self.get_or_404(service, record_id)
        history = await service.list_history(record_id)
        return {"success": True, "history": [StatusHistoryResponse.model_validate(h) for h in history]}

    async def list_comments(self, db: AsyncSession, record_id: str) -> dict:
        service = self.service(db)
        await self.get_or_404(service, record_id)
        comments = await service.list_comments(record_id)
        return {"success": True, "comments": [CommentResponse.model_validate(c) for c in comments]}

    async def add_comment(
        self,
        db: AsyncSession,
        storage: FileStorage,
        user: User,
        background_tasks: BackgroundTasks,
        record_id: str,
        message: str,
        attachments: Optional[List[UploadFile]]
    ) -> dict:
        """Any signed-in user may join the discussion on a record."""
        service = self.service(db)
        record = await self.get_or_404(service, record_id)

        if not message.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Message is required"
            )

        try:
            uploaded = await storage.upload_many(
                f"{self.storage_prefix}/{record.id}/comments", attachments or []
            )
        except StorageError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        comment = await service.add_comment(record, user, message.strip(), uploaded)
        logger.info(f"Comment added to {self.label} #{record.display_number} by {user.email}")

        background_tasks.add_task(
            event_publisher.publish_comment_added, record.entity_type, record.id, comment
        )

        return {"success": True, "comment": CommentResponse.model_validate(comment)}
