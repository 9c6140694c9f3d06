import json
from datetime import datetime
from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional


class CamelModel(BaseModel):
    """Base for API payloads; the client speaks camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class AttachmentInfo(CamelModel):
    filename: str
    path: str
    size: int = 0
    content_type: Optional[str] = None


def parse_json_list(value: Any) -> List[Any]:
    """Attachment columns are stored as JSON text."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return list(value)


class CommentResponse(CamelModel):
    id: str
    user_email: str
    user_name: Optional[str] = ""
    is_admin: bool = False
    message: str
    attachments: List[AttachmentInfo] = []
    created_at: datetime

    @field_validator("attachments", mode="before")
    @classmethod
    def decode_attachments(cls, value):
        return parse_json_list(value)
