from pydantic import field_validator
from datetime import datetime
from typing import List, Optional
from app.models.assignment import AssignmentStatus, split_names
from app.schemas.common import CamelModel, AttachmentInfo, parse_json_list


def _names(value):
    if value is None:
        return []
    if isinstance(value, str):
        return split_names(value)
    return [v.strip() for v in value if v and v.strip()]


class StatusChangeRequest(CamelModel):
    """Single submit from the status modal."""
    status: AssignmentStatus
    practice: List[str] = []
    am: Optional[str] = None
    assignees: List[str] = []
    date_assigned: Optional[str] = None

    @field_validator("practice", "assignees", mode="before")
    @classmethod
    def split_lists(cls, value):
        return _names(value)


class AssignmentUpdate(CamelModel):
    status: Optional[AssignmentStatus] = None
    practice: Optional[str] = None
    am: Optional[str] = None
    resource_assigned: Optional[str] = None
    date_assigned: Optional[str] = None
    project_number: Optional[str] = None
    customer_name: Optional[str] = None
    project_description: Optional[str] = None
    region: Optional[str] = None
    pm: Optional[str] = None
    pm_email: Optional[str] = None
    request_date: Optional[str] = None
    eta: Optional[str] = None
    notes: Optional[str] = None
    documentation_link: Optional[str] = None


class SaAssignmentUpdate(CamelModel):
    status: Optional[AssignmentStatus] = None
    practice: Optional[str] = None
    am: Optional[str] = None
    sa_assigned: Optional[str] = None
    date_assigned: Optional[str] = None
    opportunity_id: Optional[str] = None
    opportunity_name: Optional[str] = None
    customer_name: Optional[str] = None
    region: Optional[str] = None
    request_date: Optional[str] = None
    eta: Optional[str] = None
    notes: Optional[str] = None
    scoop_url: Optional[str] = None
    isr: Optional[str] = None


class AssignmentRecordResponse(CamelModel):
    id: str
    status: AssignmentStatus
    practice: str
    am: Optional[str] = ""
    date_assigned: Optional[str] = ""
    customer_name: str
    region: Optional[str] = ""
    request_date: Optional[str] = ""
    eta: Optional[str] = ""
    notes: Optional[str] = ""
    attachments: List[AttachmentInfo] = []
    created_at: datetime
    updated_at: datetime
    can_edit: bool = False

    @field_validator("attachments", mode="before")
    @classmethod
    def decode_attachments(cls, value):
        return parse_json_list(value)


class AssignmentResponse(AssignmentRecordResponse):
    assignment_number: int
    project_number: str
    project_description: Optional[str] = ""
    pm: Optional[str] = ""
    pm_email: Optional[str] = ""
    resource_assigned: Optional[str] = ""
    documentation_link: Optional[str] = ""


class SaAssignmentResponse(AssignmentRecordResponse):
    sa_assignment_number: int
    opportunity_id: Optional[str] = ""
    opportunity_name: Optional[str] = ""
    sa_assigned: Optional[str] = ""
    scoop_url: Optional[str] = ""
    isr: Optional[str] = ""
    submitted_by: Optional[str] = ""


class StatusHistoryResponse(CamelModel):
    id: str
    entity_type: str
    record_id: str
    from_status: Optional[AssignmentStatus]
    to_status: AssignmentStatus
    practice: Optional[str]
    changed_by: str
    changed_at: datetime
