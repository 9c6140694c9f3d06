"""
Event Publisher Service.

Publishes events to SSE connections for live refresh. Every record event
goes to the "all" channel (list pages) and to the record's own channel
(detail page).
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from app.core.sse import connection_manager, ALL_CHANNEL
from app.models.assignment import AssignmentStatus, SaAssignment
from app.models.issue import Issue
from app.schemas.assignment import AssignmentResponse, SaAssignmentResponse
from app.schemas.common import CommentResponse
from app.schemas.issue import IssueResponse

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Service for publishing events to SSE connections.

    Provides methods for publishing:
    - Assignment and SA assignment events (created, updated, deleted)
    - Issue events (created, updated)
    - Comment events on assignments and issues

    Publishing is best effort; failures are logged and never reach the
    request that triggered them.
    """

    @staticmethod
    def _serialize_record(record) -> Dict[str, Any]:
        """Serialize an assignment or SA assignment for event payload."""
        schema = SaAssignmentResponse if isinstance(record, SaAssignment) else AssignmentResponse
        return schema.model_validate(record).model_dump(by_alias=True, mode="json")

    @staticmethod
    def _serialize_issue(issue: Issue) -> Dict[str, Any]:
        return IssueResponse.model_validate(issue).model_dump(by_alias=True, mode="json")

    @staticmethod
    async def _broadcast(
        event_type: str,
        record_id: str,
        data: Dict[str, Any],
        exclude_user_id: Optional[str] = None
    ) -> int:
        data = {"id": record_id, **data, "timestamp": datetime.utcnow().isoformat()}
        sent = 0
        for channel in (ALL_CHANNEL, record_id):
            sent += await connection_manager.broadcast(
                channel=channel,
                event_type=event_type,
                data=data,
                exclude_user_id=exclude_user_id
            )
        return sent

    @staticmethod
    async def publish_record_created(
        record,
        created_by_user_id: Optional[str] = None
    ):
        """
        Publish an assignment_created / sa_assignment_created event.

        Args:
            record: The created Assignment or SaAssignment
            created_by_user_id: Optional user ID to exclude from broadcast
        """
        event_type = f"{record.entity_type}_created"
        try:
            await EventPublisher._broadcast(
                event_type,
                record.id,
                {"record": EventPublisher._serialize_record(record)},
                exclude_user_id=created_by_user_id
            )
            logger.info(f"Published {event_type} event: {record.display_number}")

        except Exception as e:
            logger.error(f"Failed to publish {event_type} event: {e}")

    @staticmethod
    async def publish_record_updated(
        record,
        old_status: Optional[AssignmentStatus] = None,
        updated_fields: Optional[Dict[str, Any]] = None,
        updated_by_user_id: Optional[str] = None
    ):
        """
        Publish an assignment_updated / sa_assignment_updated event.

        Args:
            record: The updated record
            old_status: Status before the change, when it changed
            updated_fields: Optional dict of fields that were updated
            updated_by_user_id: Optional user ID to exclude from broadcast
        """
        event_type = f"{record.entity_type}_updated"
        try:
            status_changed = old_status is not None and old_status != record.status
            await EventPublisher._broadcast(
                event_type,
                record.id,
                {
                    "record": EventPublisher._serialize_record(record),
                    "updatedFields": updated_fields or {},
                    "oldStatus": old_status.value if status_changed else None,
                    "newStatus": record.status.value if status_changed else None,
                },
                exclude_user_id=updated_by_user_id
            )
            logger.info(f"Published {event_type} event: {record.display_number}")

        except Exception as e:
            logger.error(f"Failed to publish {event_type} event: {e}")

    @staticmethod
    async def publish_record_deleted(
        entity_type: str,
        record_id: str,
        deleted_by_user_id: Optional[str] = None
    ):
        event_type = f"{entity_type}_deleted"
        try:
            await EventPublisher._broadcast(
                event_type, record_id, {}, exclude_user_id=deleted_by_user_id
            )
            logger.info(f"Published {event_type} event: {record_id}")

        except Exception as e:
            logger.error(f"Failed to publish {event_type} event: {e}")

    @staticmethod
    async def publish_issue_created(issue: Issue):
        try:
            await EventPublisher._broadcast(
                "issue_created", issue.id, {"issue": EventPublisher._serialize_issue(issue)}
            )
            logger.info(f"Published issue_created event: {issue.issue_number}")

        except Exception as e:
            logger.error(f"Failed to publish issue_created event: {e}")

    @staticmethod
    async def publish_issue_updated(
        issue: Issue,
        updated_fields: Optional[Dict[str, Any]] = None
    ):
        try:
            await EventPublisher._broadcast(
                "issue_updated",
                issue.id,
                {
                    "issue": EventPublisher._serialize_issue(issue),
                    "updatedFields": updated_fields or {},
                }
            )
            logger.info(f"Published issue_updated event: {issue.issue_number}")

        except Exception as e:
            logger.error(f"Failed to publish issue_updated event: {e}")

    @staticmethod
    async def publish_comment_added(entity_type: str, record_id: str, comment):
        """
        Publish an assignment_comment_added / sa_assignment_comment_added /
        issue_comment_added event.
        """
        event_type = f"{entity_type}_comment_added"
        try:
            await EventPublisher._broadcast(
                event_type,
                record_id,
                {
                    "commentId": comment.id,
                    "comment": CommentResponse.model_validate(comment).model_dump(by_alias=True, mode="json"),
                }
            )
            logger.info(f"Published {event_type} event: {record_id}")

        except Exception as e:
            logger.error(f"Failed to publish {event_type} event: {e}")


# Create a singleton instance
event_publisher = EventPublisher()
