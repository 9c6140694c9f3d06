"""
Issue persistence: numbering, upvotes, comment threads and duplicate
detection for the feedback portal.
"""

import json
import logging
from typing import Any, Dict, List, Tuple

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity
from sqlalchemy import select, func, and_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.models.comment import IssueComment
from app.models.issue import Issue, IssueStatus, IssueUpvote
from app.models.user import User
from app.services.assignment_service import NumberConflictError

logger = logging.getLogger(__name__)


class AlreadyUpvotedError(Exception):
    """The user already has an upvote on the issue."""


def rank_similar(query: str, documents: List[str]) -> List[float]:
    """Cosine similarity of the query against each document in TF-IDF space."""
    vectorizer = TfidfVectorizer(stop_words="english", lowercase=True)
    try:
        matrix = vectorizer.fit_transform([query] + documents)
    except ValueError:
        # Empty vocabulary: every word was a stop word
        return [0.0] * len(documents)
    return cosine_similarity(matrix[0:1], matrix[1:])[0].tolist()


class IssueService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, issue_id: str):
        result = await self.db.execute(select(Issue).where(Issue.id == issue_id))
        return result.scalar_one_or_none()

    async def next_number(self) -> int:
        result = await self.db.execute(select(func.max(Issue.issue_number)))
        return (result.scalar() or 0) + 1

    async def add_numbered(self, issue: Issue) -> Issue:
        """Flush a new issue under the next number; a lost race raises NumberConflictError."""
        issue.issue_number = await self.next_number()
        self.db.add(issue)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Issue number collision: {e}")
            raise NumberConflictError(
                "Another issue was submitted at the same time; please submit again"
            ) from e
        return issue

    async def has_upvoted(self, issue_id: str, user_email: str) -> bool:
        result = await self.db.execute(
            select(IssueUpvote.id).where(
                and_(
                    IssueUpvote.issue_id == issue_id,
                    IssueUpvote.user_email == user_email
                )
            )
        )
        return result.first() is not None

    async def add_upvote(self, issue_id: str, user_email: str):
        """
        Record an upvote without committing.

        The counter is incremented in SQL so concurrent votes are not lost;
        the unique constraint turns a concurrent double vote into
        AlreadyUpvotedError.
        """
        self.db.add(IssueUpvote(issue_id=issue_id, user_email=user_email))
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise AlreadyUpvotedError("You have already upvoted this issue") from e

        await self.db.execute(
            update(Issue)
            .where(Issue.id == issue_id)
            .values(upvotes=Issue.upvotes + 1)
            .execution_options(synchronize_session=False)
        )

    async def list_comments(self, issue_id: str) -> List[IssueComment]:
        result = await self.db.execute(
            select(IssueComment)
            .where(IssueComment.issue_id == issue_id)
            .order_by(IssueComment.created_at)
        )
        return list(result.scalars().all())

    def add_comment(
        self,
        issue: Issue,
        user: User,
        message: str,
        attachments: List[Dict[str, Any]]
    ) -> IssueComment:
        comment = IssueComment(
            issue_id=issue.id,
            user_email=user.email,
            user_name=user.name,
            is_admin=bool(user.is_admin),
            message=message,
            attachments=json.dumps(attachments),
        )
        self.db.add(comment)
        return comment

    async def find_similar(
        self,
        title: str,
        description: str,
        threshold: float,
        limit: int
    ) -> List[Tuple[Issue, float]]:
        """
        Open issues that read like the draft, most similar first.

        Closed issues are left out; anything still being worked on is a
        candidate to merge into.
        """
        result = await self.db.execute(select(Issue).where(Issue.status != IssueStatus.CLOSED))
        issues = list(result.scalars().all())
        if not issues:
            return []

        scores = await run_in_threadpool(
            rank_similar,
            f"{title} {description}",
            [f"{i.title} {i.description}" for i in issues],
        )
        matches = [(issue, score) for issue, score in zip(issues, scores) if score >= threshold]
        matches.sort(key=lambda pair: pair[1], reverse=True)
        return matches[:limit]
