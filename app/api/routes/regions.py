from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.api.routes.auth import get_current_user, get_current_admin
from app.models.user import User
from app.models.reference import Region
from app.schemas.reference import RegionCreate, RegionResponse

router = APIRouter()


@router.get("")
async def list_regions(
    include_inactive: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Region selector options, sorted by name."""
    query = select(Region).order_by(Region.name)
    if not include_inactive:
        query = query.where(Region.active == True)
    result = await db.execute(query)
    return {"success": True, "regions": [RegionResponse.model_validate(r) for r in result.scalars().all()]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_region(
    region_data: RegionCreate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    code = region_data.code.strip().upper()
    if await db.get(Region, code):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Region {code} already exists"
        )

    region = Region(code=code, name=region_data.name.strip(), active=region_data.active)
    db.add(region)
    await db.commit()
    await db.refresh(region)
    return {"success": True, "region": RegionResponse.model_validate(region)}
