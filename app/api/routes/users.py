from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.core.database import get_db
from app.core.security import get_password_hash
from app.api.routes.auth import get_current_user, get_current_admin
from app.models.user import User, UserRole
from app.schemas.auth import UserCreate, UserUpdate, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


@router.get("")
async def list_users(
    role: Optional[UserRole] = Query(None),
    practice: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Candidate lists for the assignee/AM/PM selectors."""
    query = select(User).order_by(User.name)
    if not include_inactive:
        query = query.where(User.is_active == True)
    if role:
        query = query.where(User.role == role)

    result = await db.execute(query)
    users = result.scalars().all()
    if practice:
        users = [u for u in users if practice in (u.practices or [])]

    return {"success": True, "users": [UserResponse.model_validate(u) for u in users]}


@router.get("/{email}")
async def get_user(
    email: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await _get_by_email(db, email)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return {"success": True, "user": UserResponse.model_validate(user)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    if await _get_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists"
        )

    data = user_data.model_dump(exclude={"password"})
    user = User(hashed_password=get_password_hash(user_data.password), **data)
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info(f"User {user.email} created by {current_user.email}")
    return {"success": True, "user": UserResponse.model_validate(user)}


@router.put("/{email}")
async def update_user(
    email: str,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    user = await _get_by_email(db, email)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    update_data = user_data.model_dump(exclude_unset=True, exclude_none=True)
    password = update_data.pop("password", None)
    if password:
        user.hashed_password = get_password_hash(password)
    for field, value in update_data.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)

    logger.info(f"User {user.email} updated by {current_user.email}")
    return {"success": True, "user": UserResponse.model_validate(user)}
