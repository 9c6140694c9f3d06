from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.core.database import get_db
from app.api.routes.auth import get_current_user
from app.models.user import User
from app.models.training import TrainingCert, TrainingCertSettings
from app.schemas.training import (
    TrainingCertCreate,
    TrainingCertUpdate,
    TrainingCertResponse,
    TrainingSettings,
    TrainingSettingsUpdate,
    SignupRequest,
    SignupResponse,
)
from app.services.storage import FileStorage, StorageError, get_file_storage
from app.services.training_service import (
    TrainingError,
    TrainingService,
    check_completion_count,
    can_add_entry,
    can_manage_entry,
    entry_totals,
)


logger = logging.getLogger(__name__)

router = APIRouter()


def serialize_entry(entry: TrainingCert, user: User) -> TrainingCertResponse:
    totals = entry_totals(entry)
    response = TrainingCertResponse.model_validate(entry)
    response.signed_up_iterations = totals["signedUpIterations"]
    response.completed_iterations = totals["completedIterations"]
    response.can_manage = can_manage_entry(user, entry.practice)
    return response


async def get_entry_or_404(db: AsyncSession, entry_id: str) -> TrainingCert:
    # populate_existing reloads the sign-up collection after sign-up changes
    result = await db.execute(
        select(TrainingCert)
        .where(TrainingCert.id == entry_id)
        .execution_options(populate_existing=True)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Training entry not found"
        )
    return entry


def require_manage(user: User, practice: str):
    if not can_manage_entry(user, practice):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You are not a Practice Manager or Principal of {practice}"
        )


@router.get("")
async def list_training_certs(
    practice: Optional[str] = Query(None),
    vendor: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    query = select(TrainingCert)
    if practice:
        query = query.where(TrainingCert.practice == practice)
    if vendor:
        query = query.where(TrainingCert.vendor == vendor)
    if type:
        query = query.where(TrainingCert.type == type)

    query = query.order_by(TrainingCert.practice, TrainingCert.vendor, TrainingCert.name)
    result = await db.execute(query)
    entries = result.scalars().all()

    return {
        "success": True,
        "trainingCerts": [serialize_entry(e, current_user) for e in entries],
        "canAdd": can_add_entry(current_user),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_training_cert(
    entry_data: TrainingCertCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not can_add_entry(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins and practice managers or principals can add entries"
        )
    require_manage(current_user, entry_data.practice)

    entry = TrainingCert(
        created_by=current_user.email,
        created_by_name=current_user.name,
        last_edited_by=current_user.email,
        **entry_data.model_dump()
    )
    db.add(entry)
    await db.commit()

    entry = await get_entry_or_404(db, entry.id)
    logger.info(f"Training entry {entry.id} ({entry.vendor} {entry.name}) created by {current_user.email}")
    return {"success": True, "trainingCert": serialize_entry(entry, current_user)}


@router.get("/settings")
async def get_training_settings(
    practice: str = Query(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Option lists for the entry form; empty lists until configured."""
    settings_row = await db.get(TrainingCertSettings, practice)
    if settings_row is None:
        return {"success": True, "settings": TrainingSettings(practice=practice)}
    return {"success": True, "settings": TrainingSettings.model_validate(settings_row)}


@router.put("/settings/{practice}")
async def update_training_settings(
    practice: str,
    settings_data: TrainingSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    require_manage(current_user, practice)

    settings_row = await db.get(TrainingCertSettings, practice)
    if settings_row is None:
        settings_row = TrainingCertSettings(practice=practice, vendors=[], levels=[], types=[])
        db.add(settings_row)

    for field, values in settings_data.model_dump(exclude_unset=True, exclude_none=True).items():
        # De-duplicate while keeping the submitted order
        setattr(settings_row, field, list(dict.fromkeys(v.strip() for v in values if v.strip())))

    await db.commit()
    await db.refresh(settings_row)
    return {"success": True, "settings": TrainingSettings.model_validate(settings_row)}


@router.get("/{entry_id}")
async def get_training_cert(
    entry_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    entry = await get_entry_or_404(db, entry_id)
    return {"success": True, "trainingCert": serialize_entry(entry, current_user)}


@router.put("/{entry_id}")
async def update_training_cert(
    entry_id: str,
    entry_data: TrainingCertUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    entry = await get_entry_or_404(db, entry_id)
    require_manage(current_user, entry.practice)

    update_data = entry_data.model_dump(exclude_unset=True, exclude_none=True)
    if "practice" in update_data:
        require_manage(current_user, update_data["practice"])

    for field, value in update_data.items():
        setattr(entry, field, value)
    entry.last_edited_by = current_user.email

    await db.commit()
    entry = await get_entry_or_404(db, entry_id)
    return {"success": True, "trainingCert": serialize_entry(entry, current_user)}


@router.delete("/{entry_id}")
async def delete_training_cert(
    entry_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    entry = await get_entry_or_404(db, entry_id)
    require_manage(current_user, entry.practice)

    await db.delete(entry)
    await db.commit()

    logger.info(f"Training entry {entry_id} deleted by {current_user.email}")
    return {"success": True}


@router.post("/{entry_id}/signup")
async def update_signup(
    entry_id: str,
    signup_data: SignupRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Add, remove or toggle the caller's sign-up."""
    entry = await get_entry_or_404(db, entry_id)
    try:
        action, signup = await TrainingService(db).update_signup(
            entry, current_user, signup_data.action, signup_data.iterations
        )
    except TrainingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    entry = await get_entry_or_404(db, entry_id)
    return {
        "success": True,
        "action": action,
        "signup": SignupResponse.model_validate(signup) if signup else None,
        "trainingCert": serialize_entry(entry, current_user),
    }


@router.post("/{entry_id}/complete")
async def complete_iterations(
    entry_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """
    Record completed iterations.

    Multipart fields: `completedIterations` (how many more were completed),
    `notes`, and per iteration i (1-based within this batch) an optional
    `certificate_{i}` file and `iterationNotes_{i}` text.
    """
    entry = await get_entry_or_404(db, entry_id)
    form = await request.form()

    try:
        count = int(form.get("completedIterations", 1))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="completedIterations must be a number"
        )

    service = TrainingService(db)
    signup = await service.get_signup(entry.id, current_user.email)
    if signup is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Sign up for this entry before completing it"
        )

    try:
        check_completion_count(signup, count)
    except TrainingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    details = []
    for i in range(1, count + 1):
        upload = form.get(f"certificate_{i}")
        certificate_url = None
        if upload is not None and getattr(upload, "filename", None):
            iteration = signup.completed_iterations + i
            try:
                stored = await storage.upload(
                    f"training-certificates/{entry.id}/{current_user.email}/iteration-{iteration}",
                    upload
                )
            except StorageError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
            certificate_url = stored["url"]
        details.append({
            "certificateUrl": certificate_url,
            "notes": str(form.get(f"iterationNotes_{i}") or ""),
        })

    try:
        signup = await service.complete(entry, current_user, count, details, str(form.get("notes") or ""))
    except TrainingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    entry = await get_entry_or_404(db, entry_id)
    return {
        "success": True,
        "signup": SignupResponse.model_validate(signup),
        "trainingCert": serialize_entry(entry, current_user),
    }


@router.post("/{entry_id}/uncomplete")
async def uncomplete_iterations(
    entry_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revert the most recent completion."""
    entry = await get_entry_or_404(db, entry_id)
    try:
        signup = await TrainingService(db).uncomplete(entry, current_user)
    except TrainingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    entry = await get_entry_or_404(db, entry_id)
    return {
        "success": True,
        "signup": SignupResponse.model_validate(signup),
        "trainingCert": serialize_entry(entry, current_user),
    }
