from pydantic import Field
from datetime import datetime
from typing import Optional
from app.schemas.common import CamelModel


class RegionCreate(CamelModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str
    active: bool = True


class RegionResponse(CamelModel):
    code: str
    name: str
    active: bool


class PracticeEtaResponse(CamelModel):
    practice: str
    status_transition: str
    sa_name: Optional[str] = ""
    avg_duration_hours: float
    sample_count: int
    last_updated: datetime
