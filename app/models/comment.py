from sqlalchemy import Boolean, Column, String, DateTime, ForeignKey, Text
from datetime import datetime
import uuid
from app.core.database import Base


class CommentMixin:
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    user_email = Column(String, nullable=False)
    user_name = Column(String, default="")
    is_admin = Column(Boolean, default=False, nullable=False)  # Shown as a badge on the thread

    message = Column(Text, default="", nullable=False)
    attachments = Column(Text, default="[]")  # JSON-encoded list of file metadata

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class AssignmentComment(CommentMixin, Base):
    """Discussion thread entry on a resource or SA assignment."""
    __tablename__ = "assignment_comments"

    entity_type = Column(String, nullable=False, index=True)  # "assignment" or "sa_assignment"
    record_id = Column(String, nullable=False, index=True)


class IssueComment(CommentMixin, Base):
    __tablename__ = "issue_comments"

    issue_id = Column(String, ForeignKey("issues.id"), nullable=False, index=True)
