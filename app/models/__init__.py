from app.core.database import Base
from app.models.user import User, UserRole
from app.models.assignment import (
    Assignment,
    SaAssignment,
    AssignmentStatus,
    AssignmentStatusHistory,
)
from app.models.training import TrainingCert, TrainingSignup, TrainingCertSettings
from app.models.issue import Issue, IssueUpvote, IssueStatus
from app.models.comment import AssignmentComment, IssueComment
from app.models.reference import Region, PracticeEta, StatusTransition

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Assignment",
    "SaAssignment",
    "AssignmentStatus",
    "AssignmentStatusHistory",
    "TrainingCert",
    "TrainingSignup",
    "TrainingCertSettings",
    "Issue",
    "IssueUpvote",
    "IssueStatus",
    "AssignmentComment",
    "IssueComment",
    "Region",
    "PracticeEta",
    "StatusTransition",
]
