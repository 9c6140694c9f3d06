from pydantic import Field
from datetime import datetime
from typing import List, Literal, Optional
from app.schemas.common import CamelModel


class TrainingCertCreate(CamelModel):
    practice: str
    type: str = "Training"
    vendor: str
    name: str
    code: str = ""
    level: str = ""
    training_type: str = ""
    prerequisites: str = ""
    exams_required: str = ""
    exam_cost: str = ""
    quantity_needed: int = Field(0, ge=0)
    incentive: str = ""
    notes: str = ""


class TrainingCertUpdate(CamelModel):
    practice: Optional[str] = None
    type: Optional[str] = None
    vendor: Optional[str] = None
    name: Optional[str] = None
    code: Optional[str] = None
    level: Optional[str] = None
    training_type: Optional[str] = None
    prerequisites: Optional[str] = None
    exams_required: Optional[str] = None
    exam_cost: Optional[str] = None
    quantity_needed: Optional[int] = Field(None, ge=0)
    incentive: Optional[str] = None
    notes: Optional[str] = None


class SignupRequest(CamelModel):
    action: Literal["add", "remove", "toggle"] = "toggle"
    iterations: int = 1


class IterationCertificate(CamelModel):
    iteration: int
    certificate_url: Optional[str] = None
    notes: str = ""


class SignupResponse(CamelModel):
    id: str
    user_email: str
    user_name: Optional[str] = None
    iterations: int
    completed_iterations: int
    iteration_certificates: List[IterationCertificate] = []
    completion_notes: Optional[str] = ""
    signed_up_at: datetime
    completed_at: Optional[datetime] = None


class TrainingCertResponse(CamelModel):
    id: str
    practice: str
    type: str
    vendor: str
    name: str
    code: Optional[str] = ""
    level: Optional[str] = ""
    training_type: Optional[str] = ""
    prerequisites: Optional[str] = ""
    exams_required: Optional[str] = ""
    exam_cost: Optional[str] = ""
    quantity_needed: int
    incentive: Optional[str] = ""
    notes: Optional[str] = ""
    created_by: str
    created_by_name: Optional[str] = None
    last_edited_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    signups: List[SignupResponse] = []
    signed_up_iterations: int = 0
    completed_iterations: int = 0
    can_manage: bool = False


class TrainingSettings(CamelModel):
    practice: str
    vendors: List[str] = []
    levels: List[str] = []
    types: List[str] = []


class TrainingSettingsUpdate(CamelModel):
    vendors: Optional[List[str]] = None
    levels: Optional[List[str]] = None
    types: Optional[List[str]] = None
