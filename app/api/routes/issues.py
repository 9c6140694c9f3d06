from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import json
import logging

from app.core.config import settings
from app.core.database import get_db
from app.api.routes.auth import get_current_user, get_current_admin
from app.models.user import User
from app.models.issue import Issue, IssueStatus, IssueUpvote
from app.schemas.common import CommentResponse
from app.schemas.issue import (
    DuplicateCheckRequest,
    IssueCreate,
    IssueStatusUpdate,
    IssueResponse,
    SimilarIssueResponse,
)
from app.services.assignment_service import NumberConflictError
from app.services.event_publisher import event_publisher
from app.services.issue_service import AlreadyUpvotedError, IssueService
from app.services.storage import FileStorage, StorageError, get_file_storage


logger = logging.getLogger(__name__)

router = APIRouter()


async def get_issue_or_404(service: IssueService, issue_id: str) -> Issue:
    issue = await service.get(issue_id)
    if not issue:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Issue not found"
        )
    return issue


@router.get("/types")
async def list_issue_types(current_user: User = Depends(get_current_user)):
    return {"success": True, "issueTypes": settings.ISSUE_TYPES}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_issue(
    background_tasks: BackgroundTasks,
    issue_type: str = Form(..., alias="issueType"),
    title: str = Form(...),
    description: str = Form(...),
    problem_link: str = Form("", alias="problemLink"),
    practice: str = Form(""),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    try:
        issue_data = IssueCreate(
            issue_type=issue_type,
            title=title,
            description=description,
            problem_link=problem_link,
            practice=practice,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))

    if issue_data.issue_type not in settings.ISSUE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown issue type: {issue_data.issue_type}"
        )

    issue = Issue(
        email=current_user.email,
        status=IssueStatus.OPEN,
        **issue_data.model_dump()
    )
    try:
        await IssueService(db).add_numbered(issue)
    except NumberConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    try:
        uploaded = await storage.upload_many(f"issues/{issue.id}", attachments or [])
    except StorageError as e:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    issue.attachments = json.dumps(uploaded)

    await db.commit()
    await db.refresh(issue)

    logger.info(f"Issue #{issue.issue_number} created by {current_user.email}")
    background_tasks.add_task(event_publisher.publish_issue_created, issue)

    return {"success": True, "issue": IssueResponse.model_validate(issue)}


@router.get("")
async def list_issues(
    status_filter: Optional[List[IssueStatus]] = Query(None, alias="status"),
    issue_type: Optional[str] = Query(None, alias="issueType"),
    mine: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List issues, newest first."""
    query = select(Issue)
    if status_filter:
        query = query.where(Issue.status.in_(status_filter))
    if issue_type:
        query = query.where(Issue.issue_type == issue_type)
    if mine:
        query = query.where(Issue.email == current_user.email)

    result = await db.execute(query.order_by(Issue.created_at.desc(), Issue.issue_number.desc()))
    issues = result.scalars().all()

    upvoted = await db.execute(
        select(IssueUpvote.issue_id).where(IssueUpvote.user_email == current_user.email)
    )

    return {
        "success": True,
        "issues": [IssueResponse.model_validate(i) for i in issues],
        "upvotedIssueIds": sorted(upvoted.scalars().all()),
    }


@router.post("/check-duplicates")
async def check_duplicate_issues(
    draft: DuplicateCheckRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Open issues similar to a draft, so the reporter can merge instead of filing again."""
    matches = await IssueService(db).find_similar(
        draft.title,
        draft.description,
        threshold=settings.ISSUE_DUPLICATE_THRESHOLD,
        limit=settings.ISSUE_DUPLICATE_LIMIT,
    )
    return {
        "success": True,
        "similarIssues": [
            SimilarIssueResponse(
                **IssueResponse.model_validate(issue).model_dump(),
                similarity=round(score, 4)
            )
            for issue, score in matches
        ],
    }


@router.post("/merge-duplicate")
async def merge_duplicate_issue(
    background_tasks: BackgroundTasks,
    issue_id: str = Form(..., alias="issueId"),
    description: str = Form(""),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """
    Fold a duplicate submission into an existing issue.

    The submission becomes a comment on the issue and counts as an upvote
    from the submitter, unless it is their own issue or they already voted.
    """
    service = IssueService(db)
    issue = await get_issue_or_404(service, issue_id)

    if not description.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Description is required"
        )
    if issue.status == IssueStatus.CLOSED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot merge into a closed issue"
        )

    try:
        uploaded = await storage.upload_many(f"issues/{issue.id}/comments", attachments or [])
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    message = f"**Merged from duplicate submission:**\n\n{description.strip()}"
    if uploaded:
        message += f"\n\n*{len(uploaded)} attachment(s) merged from duplicate submission*"
    comment = service.add_comment(issue, current_user, message, uploaded)

    upvoted = False
    if issue.email != current_user.email and not await service.has_upvoted(issue_id, current_user.email):
        try:
            await service.add_upvote(issue_id, current_user.email)
        except AlreadyUpvotedError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        upvoted = True

    await db.commit()
    await db.refresh(issue)
    await db.refresh(comment)

    logger.info(
        f"Duplicate submission from {current_user.email} merged into issue #{issue.issue_number}"
        f"{' with upvote' if upvoted else ''}"
    )
    background_tasks.add_task(event_publisher.publish_comment_added, "issue", issue.id, comment)
    if upvoted:
        background_tasks.add_task(event_publisher.publish_issue_updated, issue, {"upvotes": issue.upvotes})

    return {
        "success": True,
        "message": "Successfully merged with existing issue",
        "commentId": comment.id,
        "upvoted": upvoted,
        "comment": CommentResponse.model_validate(comment),
        "issue": IssueResponse.model_validate(issue),
    }


@router.get("/{issue_id}")
async def get_issue(
    issue_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    issue = await get_issue_or_404(IssueService(db), issue_id)
    return {"success": True, "issue": IssueResponse.model_validate(issue)}


@router.put("/{issue_id}/status")
async def update_issue_status(
    issue_id: str,
    status_update: IssueStatusUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Admin triage: change status and record the resolution comment."""
    issue = await get_issue_or_404(IssueService(db), issue_id)

    old_status = issue.status
    issue.status = status_update.status
    issue.admin_username = current_user.name
    if status_update.resolution_comment is not None:
        issue.resolution_comment = status_update.resolution_comment

    await db.commit()
    await db.refresh(issue)

    logger.info(
        f"Issue #{issue.issue_number}: {old_status.value} -> {issue.status.value} "
        f"by {current_user.email}"
    )
    background_tasks.add_task(
        event_publisher.publish_issue_updated,
        issue,
        status_update.model_dump(exclude_unset=True, by_alias=True)
    )

    return {"success": True, "issue": IssueResponse.model_validate(issue)}


@router.post("/{issue_id}/upvote")
async def upvote_issue(
    issue_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = IssueService(db)
    issue = await get_issue_or_404(service, issue_id)

    if issue.email == current_user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot upvote your own issue"
        )
    if await service.has_upvoted(issue_id, current_user.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You have already upvoted this issue"
        )

    try:
        await service.add_upvote(issue_id, current_user.email)
    except AlreadyUpvotedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    await db.commit()
    await db.refresh(issue)

    background_tasks.add_task(event_publisher.publish_issue_updated, issue, {"upvotes": issue.upvotes})
    return {"success": True, "issue": IssueResponse.model_validate(issue)}


@router.get("/{issue_id}/comments")
async def list_issue_comments(
    issue_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = IssueService(db)
    await get_issue_or_404(service, issue_id)
    comments = await service.list_comments(issue_id)
    return {"success": True, "comments": [CommentResponse.model_validate(c) for c in comments]}


@router.post("/{issue_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_issue_comment(
    issue_id: str,
    background_tasks: BackgroundTasks,
    message: str = Form(""),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """Comment on an issue; closed issues are read-only."""
    service = IssueService(db)
    issue = await get_issue_or_404(service, issue_id)

    if issue.status == IssueStatus.CLOSED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot add comments to closed issues"
        )
    if not message.strip() and not attachments:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message or attachment is required"
        )

    try:
        uploaded = await storage.upload_many(f"issues/{issue.id}/comments", attachments or [])
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    comment = service.add_comment(issue, current_user, message.strip(), uploaded)
    await db.commit()
    await db.refresh(comment)

    logger.info(f"Comment added to issue #{issue.issue_number} by {current_user.email}")
    background_tasks.add_task(event_publisher.publish_comment_added, "issue", issue.id, comment)

    return {"success": True, "comment": CommentResponse.model_validate(comment)}
