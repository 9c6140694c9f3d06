from sqlalchemy import Column, String, Boolean, DateTime, JSON, Enum as SQLEnum
from datetime import datetime
import uuid
import enum
from app.core.database import Base


class UserRole(str, enum.Enum):
    PRACTICE_MANAGER = "practice_manager"
    PRACTICE_PRINCIPAL = "practice_principal"
    PRACTICE_MEMBER = "practice_member"
    ACCOUNT_MANAGER = "account_manager"
    ISR = "isr"  # Inside sales rep
    EXECUTIVE = "executive"


# Roles allowed to triage and staff records for the practices they own
PRACTICE_LEAD_ROLES = (UserRole.PRACTICE_MANAGER, UserRole.PRACTICE_PRINCIPAL)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Auth
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.PRACTICE_MEMBER)

    # Profile
    name = Column(String, nullable=False, index=True)
    region = Column(String)
    practices = Column(JSON, nullable=False, default=list)  # List of practice names

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime)

    @property
    def is_practice_lead(self) -> bool:
        return self.role in PRACTICE_LEAD_ROLES
