from sqlalchemy import Column, String, DateTime, Integer, Text, Enum as SQLEnum
from datetime import datetime
from typing import List
import json
import uuid
import enum
from app.core.database import Base


class AssignmentStatus(str, enum.Enum):
    PENDING = "Pending"  # Intake received, practice not triaged yet
    UNASSIGNED = "Unassigned"  # Practice decided, nobody staffed
    ASSIGNED = "Assigned"


# Placeholder practice value meaning "practice not yet decided"
PENDING_PRACTICE = "Pending"


def split_names(value: str) -> List[str]:
    """Split a comma-joined name list, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def join_names(names: List[str]) -> str:
    return ", ".join(name.strip() for name in names if name and name.strip())


class AssignmentRecordMixin:
    """Columns and helpers shared by resource and SA assignments."""

    # Name of the column holding the comma-joined assignee list
    assignee_field = "resource_assigned"
    entity_type = "assignment"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Workflow
    status = Column(SQLEnum(AssignmentStatus), nullable=False, default=AssignmentStatus.PENDING, index=True)
    practice = Column(String, nullable=False, default=PENDING_PRACTICE, index=True)  # Comma-joined
    am = Column(String, default="")
    date_assigned = Column(String, default="")  # YYYY-MM-DD, empty until first staffed

    # Request info
    customer_name = Column(String, nullable=False, index=True)
    region = Column(String, default="")
    request_date = Column(String, default="")
    eta = Column(String, default="")
    notes = Column(Text, default="")
    attachments = Column(Text, default="[]")  # JSON-encoded list of file metadata

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def practices(self) -> List[str]:
        """Practices owning the record; empty while the sentinel is set."""
        return [p for p in split_names(self.practice) if p != PENDING_PRACTICE]

    @property
    def assignees(self) -> List[str]:
        return split_names(getattr(self, self.assignee_field))

    @assignees.setter
    def assignees(self, names: List[str]):
        setattr(self, self.assignee_field, join_names(names))

    @property
    def attachment_list(self) -> list:
        try:
            return json.loads(self.attachments or "[]")
        except ValueError:
            return []


class Assignment(AssignmentRecordMixin, Base):
    """Resource assignment: staffing request for a delivery project."""
    __tablename__ = "assignments"

    assignee_field = "resource_assigned"
    entity_type = "assignment"

    assignment_number = Column(Integer, unique=True, nullable=False, index=True)

    project_number = Column(String, nullable=False, index=True)
    project_description = Column(Text, default="")
    pm = Column(String, default="")
    pm_email = Column(String, default="")
    resource_assigned = Column(String, default="")
    documentation_link = Column(String, default="")

    @property
    def display_number(self) -> int:
        return self.assignment_number


class SaAssignment(AssignmentRecordMixin, Base):
    """Solutions Architect assignment for a sales opportunity."""
    __tablename__ = "sa_assignments"

    assignee_field = "sa_assigned"
    entity_type = "sa_assignment"

    sa_assignment_number = Column(Integer, unique=True, nullable=False, index=True)

    opportunity_id = Column(String, default="", index=True)
    opportunity_name = Column(String, default="")
    sa_assigned = Column(String, default="")
    scoop_url = Column(String, default="")
    isr = Column(String, default="")
    submitted_by = Column(String, default="")

    @property
    def display_number(self) -> int:
        return self.sa_assignment_number


class AssignmentStatusHistory(Base):
    """Status change log for both assignment kinds."""
    __tablename__ = "assignment_status_history"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String, nullable=False, index=True)  # "assignment" or "sa_assignment"
    record_id = Column(String, nullable=False, index=True)

    from_status = Column(SQLEnum(AssignmentStatus))
    to_status = Column(SQLEnum(AssignmentStatus), nullable=False)
    practice = Column(String, default="")

    changed_by = Column(String, nullable=False)  # User email
    changed_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
