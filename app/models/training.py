from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from app.core.database import Base


class TrainingCert(Base):
    """A training or certification offered to a practice."""
    __tablename__ = "training_certs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    practice = Column(String, nullable=False, index=True)

    # Classification
    type = Column(String, nullable=False)  # "Training" or "Certification"
    vendor = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    code = Column(String, default="")
    level = Column(String, default="")
    training_type = Column(String, default="")

    # Requirements
    prerequisites = Column(Text, default="")
    exams_required = Column(String, default="")
    exam_cost = Column(String, default="")
    quantity_needed = Column(Integer, default=0, nullable=False)
    incentive = Column(String, default="")
    notes = Column(Text, default="")

    # Authorship
    created_by = Column(String, nullable=False)  # Email
    created_by_name = Column(String)
    last_edited_by = Column(String)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    signups = relationship(
        "TrainingSignup",
        back_populates="training_cert",
        cascade="all, delete-orphan",
        order_by="TrainingSignup.signed_up_at",
        lazy="selectin",
    )


class TrainingSignup(Base):
    """
    A user's sign-up for a training entry.

    Tracks how many iterations the user committed to and how many are done.
    `completion_history` holds the completed count before each completion
    event so the most recent one can be reverted.
    """
    __tablename__ = "training_signups"
    __table_args__ = (
        UniqueConstraint("training_cert_id", "user_email", name="uq_training_signup_user"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    training_cert_id = Column(String, ForeignKey("training_certs.id"), nullable=False, index=True)

    user_email = Column(String, nullable=False, index=True)
    user_name = Column(String)

    iterations = Column(Integer, default=1, nullable=False)
    completed_iterations = Column(Integer, default=0, nullable=False)
    # [{"iteration": 1, "certificateUrl": "...", "notes": "..."}]
    iteration_certificates = Column(JSON, nullable=False, default=list)
    completion_history = Column(JSON, nullable=False, default=list)
    completion_notes = Column(Text, default="")

    signed_up_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime)

    training_cert = relationship("TrainingCert", back_populates="signups")

    @property
    def is_complete(self) -> bool:
        return self.completed_iterations >= self.iterations


class TrainingCertSettings(Base):
    """Per-practice option lists for the training entry form."""
    __tablename__ = "training_cert_settings"

    practice = Column(String, primary_key=True)
    vendors = Column(JSON, nullable=False, default=list)
    levels = Column(JSON, nullable=False, default=list)
    types = Column(JSON, nullable=False, default=list)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
