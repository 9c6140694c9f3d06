from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.core.database import get_db
from app.api.routes.auth import get_current_user
from app.models.user import User
from app.schemas.reference import PracticeEtaResponse
from app.services.eta_service import EtaService

router = APIRouter()


@router.get("")
async def list_practice_etas(
    practice: Optional[List[str]] = Query(None),
    sa_name: Optional[str] = Query(None, alias="saName"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Average hours each practice takes to triage and to staff requests."""
    etas = await EtaService(db).list_etas(practice, sa_name)
    return {"success": True, "etas": [PracticeEtaResponse.model_validate(e) for e in etas]}
