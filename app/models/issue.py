from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from app.core.database import Base


class IssueStatus(str, enum.Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    PENDING_TESTING = "Pending Testing"
    BACKLOG = "Backlog"
    REJECTED = "Rejected"
    CLOSED = "Closed"


class Issue(Base):
    """Feedback or question raised through the portal."""
    __tablename__ = "issues"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    issue_number = Column(Integer, unique=True, nullable=False, index=True)  # Human-readable ID

    issue_type = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    problem_link = Column(String, default="")
    practice = Column(String, default="")

    # Reporter
    email = Column(String, nullable=False, index=True)

    # Triage
    status = Column(SQLEnum(IssueStatus), nullable=False, default=IssueStatus.OPEN, index=True)
    admin_username = Column(String, default="")
    resolution_comment = Column(Text, default="")
    upvotes = Column(Integer, default=0, nullable=False)
    attachments = Column(Text, default="[]")  # JSON-encoded list of file metadata

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    upvote_records = relationship("IssueUpvote", back_populates="issue", cascade="all, delete-orphan")


class IssueUpvote(Base):
    __tablename__ = "issue_upvotes"
    __table_args__ = (
        UniqueConstraint("issue_id", "user_email", name="uq_issue_upvote_user"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    issue_id = Column(String, ForeignKey("issues.id"), nullable=False, index=True)
    user_email = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    issue = relationship("Issue", back_populates="upvote_records")
