from pydantic import Field, field_validator
from datetime import datetime
from typing import List, Optional
from app.models.issue import IssueStatus
from app.schemas.common import CamelModel, AttachmentInfo, parse_json_list


class IssueCreate(CamelModel):
    issue_type: str
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    problem_link: str = ""
    practice: str = ""

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class IssueStatusUpdate(CamelModel):
    status: IssueStatus
    resolution_comment: Optional[str] = None


class IssueResponse(CamelModel):
    id: str
    issue_number: int
    issue_type: str
    title: str
    description: str
    problem_link: Optional[str] = ""
    practice: Optional[str] = ""
    email: str
    status: IssueStatus
    admin_username: Optional[str] = ""
    resolution_comment: Optional[str] = ""
    upvotes: int
    attachments: List[AttachmentInfo] = []
    created_at: datetime
    updated_at: datetime

    @field_validator("attachments", mode="before")
    @classmethod
    def decode_attachments(cls, value):
        return parse_json_list(value)


class DuplicateCheckRequest(CamelModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class SimilarIssueResponse(IssueResponse):
    similarity: float
