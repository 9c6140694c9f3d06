"""
Training & certification sign-up bookkeeping.

A user signs up for a number of iterations of an entry and reports
completions in batches. Each completion batch remembers the count it
started from so it can be reverted, which keeps
0 <= completed_iterations <= iterations at all times.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.training import TrainingCert, TrainingSignup
from app.models.user import User

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 99


class TrainingError(ValueError):
    """Sign-up or completion request that cannot be applied."""


def can_add_entry(user: User) -> bool:
    return user.is_admin or user.is_practice_lead


def can_manage_entry(user: User, practice: str) -> bool:
    """Admins manage everything; practice leads manage their own practices."""
    if user.is_admin:
        return True
    return user.is_practice_lead and practice in (user.practices or [])


def remaining_iterations(signup: TrainingSignup) -> int:
    return max(signup.iterations - signup.completed_iterations, 0)


def check_completion_count(signup: TrainingSignup, count: int):
    remaining = remaining_iterations(signup)
    if remaining == 0:
        raise TrainingError("All iterations are already completed")
    if count < 1 or count > remaining:
        raise TrainingError(f"Completed iterations must be between 1 and {remaining}")


def record_completion(
    signup: TrainingSignup,
    count: int,
    iteration_details: Optional[List[Dict[str, Any]]] = None,
    notes: str = ""
):
    """
    Mark `count` more iterations complete.

    iteration_details holds one {"certificateUrl", "notes"} dict per completed
    iteration, in order; missing entries are recorded without a certificate.
    """
    check_completion_count(signup, count)

    details = iteration_details or []
    start = signup.completed_iterations
    certificates = list(signup.iteration_certificates or [])
    for offset in range(count):
        detail = details[offset] if offset < len(details) else {}
        certificates.append({
            "iteration": start + offset + 1,
            "certificateUrl": detail.get("certificateUrl"),
            "notes": detail.get("notes", ""),
        })

    # JSON columns are reassigned so the change is flushed
    signup.completion_history = list(signup.completion_history or []) + [start]
    signup.iteration_certificates = certificates
    signup.completed_iterations = start + count
    if notes:
        signup.completion_notes = notes
    if signup.is_complete:
        signup.completed_at = datetime.utcnow()


def revert_completion(signup: TrainingSignup):
    """Undo the most recent completion batch."""
    history = list(signup.completion_history or [])
    if history:
        previous = history.pop()
    elif signup.completed_iterations > 0:
        # Completions recorded before history tracking: reset fully
        previous = 0
    else:
        raise TrainingError("There are no completed iterations to revert")

    previous = max(0, min(previous, signup.iterations))
    signup.completion_history = history
    signup.completed_iterations = previous
    signup.iteration_certificates = [
        cert for cert in (signup.iteration_certificates or [])
        if cert.get("iteration", 0) <= previous
    ]
    signup.completed_at = None


def entry_totals(entry: TrainingCert) -> Dict[str, int]:
    """Aggregate counts shown in the training table."""
    signups = entry.signups or []
    return {
        "quantityNeeded": entry.quantity_needed or 0,
        "signedUpIterations": sum(s.iterations or 1 for s in signups),
        "completedIterations": sum(s.completed_iterations or 0 for s in signups),
    }


class TrainingService:
    """Database-facing operations for training sign-ups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_signup(self, entry_id: str, email: str) -> Optional[TrainingSignup]:
        result = await self.db.execute(
            select(TrainingSignup).where(
                and_(
                    TrainingSignup.training_cert_id == entry_id,
                    TrainingSignup.user_email == email
                )
            )
        )
        return result.scalar_one_or_none()

    async def update_signup(
        self,
        entry: TrainingCert,
        user: User,
        action: str = "toggle",
        iterations: int = 1
    ) -> Tuple[str, Optional[TrainingSignup]]:
        """
        Add, remove or toggle the user's sign-up.

        Returns the action that was applied ("added", "updated" or "removed")
        and the resulting sign-up (None after removal).
        """
        if iterations < 1 or iterations > MAX_ITERATIONS:
            raise TrainingError(f"Iterations must be between 1 and {MAX_ITERATIONS}")

        signup = await self.get_signup(entry.id, user.email)

        if action == "toggle":
            action = "remove" if signup else "add"

        if action == "remove":
            if signup is None:
                raise TrainingError("You are not signed up for this entry")
            await self.db.delete(signup)
            await self.db.commit()
            logger.info(f"{user.email} removed sign-up for training {entry.id}")
            return "removed", None

        if action != "add":
            raise TrainingError(f"Unknown sign-up action: {action}")

        if signup is not None:
            if iterations < signup.completed_iterations:
                raise TrainingError(
                    f"Iterations cannot be lower than the {signup.completed_iterations} already completed"
                )
            signup.iterations = iterations
            if not signup.is_complete:
                signup.completed_at = None
            applied = "updated"
        else:
            signup = TrainingSignup(
                training_cert_id=entry.id,
                user_email=user.email,
                user_name=user.name,
                iterations=iterations,
                completed_iterations=0,
                iteration_certificates=[],
                completion_history=[],
            )
            self.db.add(signup)
            applied = "added"

        await self.db.commit()
        await self.db.refresh(signup)
        logger.info(f"{user.email} {applied} sign-up for training {entry.id} ({iterations} iterations)")
        return applied, signup

    async def complete(
        self,
        entry: TrainingCert,
        user: User,
        count: int,
        iteration_details: Optional[List[Dict[str, Any]]] = None,
        notes: str = ""
    ) -> TrainingSignup:
        signup = await self.get_signup(entry.id, user.email)
        if signup is None:
            raise TrainingError("Sign up for this entry before completing it")

        record_completion(signup, count, iteration_details, notes)
        await self.db.commit()
        await self.db.refresh(signup)
        logger.info(
            f"{user.email} completed {count} iteration(s) of training {entry.id} "
            f"({signup.completed_iterations}/{signup.iterations})"
        )
        return signup

    async def uncomplete(self, entry: TrainingCert, user: User) -> TrainingSignup:
        signup = await self.get_signup(entry.id, user.email)
        if signup is None:
            raise TrainingError("You are not signed up for this entry")

        revert_completion(signup)
        await self.db.commit()
        await self.db.refresh(signup)
        logger.info(
            f"{user.email} reverted completion of training {entry.id} "
            f"to {signup.completed_iterations}/{signup.iterations}"
        )
        return signup
