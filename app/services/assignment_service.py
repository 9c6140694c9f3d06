"""
Persistence and post-change side effects shared by resource and SA
assignments.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, and_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.assignment import (
    Assignment,
    AssignmentStatus,
    AssignmentStatusHistory,
)
from app.models.comment import AssignmentComment
from app.models.user import User
from app.services.eta_service import EtaService
from app.services.notification_service import NotificationService, EmailNotification

logger = logging.getLogger(__name__)


class NumberConflictError(Exception):
    """Another request took the display number first."""


class AssignmentService:
    def __init__(self, db: AsyncSession, model):
        self.db = db
        self.model = model

    @property
    def number_column(self):
        return getattr(self.model, f"{self.model.entity_type}_number")

    async def get(self, record_id: str):
        result = await self.db.execute(select(self.model).where(self.model.id == record_id))
        return result.scalar_one_or_none()

    async def next_number(self) -> int:
        """Sequential display number: current max plus one."""
        result = await self.db.execute(select(func.max(self.number_column)))
        return (result.scalar() or 0) + 1

    async def add_numbered(self, record):
        """
        Flush a new record under the next display number.

        Two intakes racing for the same number hit the unique constraint;
        the loser is rolled back and gets NumberConflictError.
        """
        setattr(record, self.number_column.key, await self.next_number())
        self.db.add(record)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Display number collision creating {self.model.entity_type}: {e}")
            raise NumberConflictError(
                "Another request was submitted at the same time; please submit again"
            ) from e
        return record

    async def find_duplicate(self, project_number: str, customer_name: str) -> Optional[Assignment]:
        result = await self.db.execute(
            select(Assignment).where(
                and_(
                    func.lower(Assignment.project_number) == project_number.strip().lower(),
                    func.lower(Assignment.customer_name) == customer_name.strip().lower()
                )
            )
        )
        return result.scalars().first()

    def add_history(self, record, from_status: Optional[AssignmentStatus], user: User) -> AssignmentStatusHistory:
        entry = AssignmentStatusHistory(
            entity_type=record.entity_type,
            record_id=record.id,
            from_status=from_status,
            to_status=record.status,
            practice=record.practice,
            changed_by=user.email,
        )
        self.db.add(entry)
        return entry

    async def list_history(self, record_id: str) -> List[AssignmentStatusHistory]:
        result = await self.db.execute(
            select(AssignmentStatusHistory)
            .where(
                and_(
                    AssignmentStatusHistory.entity_type == self.model.entity_type,
                    AssignmentStatusHistory.record_id == record_id
                )
            )
            .order_by(AssignmentStatusHistory.changed_at.desc())
        )
        return list(result.scalars().all())

    async def list_comments(self, record_id: str) -> List[AssignmentComment]:
        result = await self.db.execute(
            select(AssignmentComment)
            .where(
                and_(
                    AssignmentComment.entity_type == self.model.entity_type,
                    AssignmentComment.record_id == record_id
                )
            )
            .order_by(AssignmentComment.created_at)
        )
        return list(result.scalars().all())

    async def add_comment(
        self,
        record,
        user: User,
        message: str,
        attachments: List[Dict[str, Any]]
    ) -> AssignmentComment:
        comment = AssignmentComment(
            entity_type=record.entity_type,
            record_id=record.id,
            user_email=user.email,
            user_name=user.name,
            is_admin=bool(user.is_admin),
            message=message,
            attachments=json.dumps(attachments),
        )
        self.db.add(comment)
        await self.db.commit()
        await self.db.refresh(comment)
        return comment

    async def delete(self, record):
        """Remove the record with its history and comments."""
        for model in (AssignmentStatusHistory, AssignmentComment):
            await self.db.execute(
                delete(model).where(
                    and_(model.entity_type == record.entity_type, model.record_id == record.id)
                )
            )
        await self.db.delete(record)
        await self.db.commit()

    async def save(self, record):
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def after_status_change(
        self,
        record,
        old_status: Optional[AssignmentStatus],
        user: User
    ) -> List[EmailNotification]:
        """
        Bookkeeping once a create or status change is committed.

        Writes the history row, folds the ETA sample and returns the emails
        to send. ETA and email preparation are best effort.
        """
        self.add_history(record, old_status, user)
        await self.save(record)

        if old_status is not None:
            try:
                await EtaService(self.db).record_transition(record, old_status, record.status)
            except Exception as e:
                logger.warning(f"Failed to record ETA for {record.entity_type} {record.id}: {e}")
                await self.db.rollback()
                await self.db.refresh(record)

        try:
            return await NotificationService(self.db).prepare_record_notifications(record, old_status)
        except Exception as e:
            logger.warning(f"Failed to prepare notifications for {record.entity_type} {record.id}: {e}")
            return []
