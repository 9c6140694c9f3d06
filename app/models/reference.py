from sqlalchemy import Column, String, Boolean, DateTime, Float, Integer, UniqueConstraint
from datetime import datetime
import uuid
import enum
from app.core.database import Base


class Region(Base):
    __tablename__ = "regions"

    code = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class StatusTransition(str, enum.Enum):
    PENDING_TO_UNASSIGNED = "pending_to_unassigned"  # Time to triage
    UNASSIGNED_TO_ASSIGNED = "unassigned_to_assigned"  # Time to staff


class PracticeEta(Base):
    """Rolling average time a practice takes for a status transition."""
    __tablename__ = "practice_etas"
    __table_args__ = (
        UniqueConstraint("practice", "status_transition", "sa_name", name="uq_practice_eta"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    practice = Column(String, nullable=False, index=True)
    status_transition = Column(String, nullable=False)
    sa_name = Column(String, nullable=False, default="")  # Empty for practice-wide averages

    avg_duration_hours = Column(Float, nullable=False, default=0.0)
    sample_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
