"""
Practice ETA tracking.

Keeps a rolling average of how long each practice takes to triage
(Pending -> Unassigned) and to staff (Unassigned -> Assigned) requests.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.assignment import AssignmentStatus
from app.models.reference import PracticeEta, StatusTransition

logger = logging.getLogger(__name__)


TRACKED_TRANSITIONS = {
    (AssignmentStatus.PENDING, AssignmentStatus.UNASSIGNED): StatusTransition.PENDING_TO_UNASSIGNED,
    (AssignmentStatus.UNASSIGNED, AssignmentStatus.ASSIGNED): StatusTransition.UNASSIGNED_TO_ASSIGNED,
}


class EtaService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_sample(
        self,
        practice: str,
        status_transition: str,
        duration_hours: float,
        sa_name: str = ""
    ) -> PracticeEta:
        """Fold one duration sample into the practice's rolling average."""
        result = await self.db.execute(
            select(PracticeEta).where(
                and_(
                    PracticeEta.practice == practice,
                    PracticeEta.status_transition == status_transition,
                    PracticeEta.sa_name == sa_name
                )
            )
        )
        eta = result.scalar_one_or_none()

        if eta is None:
            eta = PracticeEta(
                practice=practice,
                status_transition=status_transition,
                sa_name=sa_name,
                avg_duration_hours=duration_hours,
                sample_count=1,
            )
            self.db.add(eta)
        else:
            count = eta.sample_count + 1
            eta.avg_duration_hours = (eta.avg_duration_hours * eta.sample_count + duration_hours) / count
            eta.sample_count = count

        await self.db.commit()
        await self.db.refresh(eta)
        return eta

    async def record_transition(
        self,
        record,
        from_status: AssignmentStatus,
        to_status: AssignmentStatus,
        now: Optional[datetime] = None
    ) -> List[PracticeEta]:
        """Record the time since creation for each of the record's practices."""
        transition = TRACKED_TRANSITIONS.get((from_status, to_status))
        if transition is None or not record.practices or record.created_at is None:
            return []

        duration_hours = ((now or datetime.utcnow()) - record.created_at).total_seconds() / 3600
        if duration_hours <= 0:
            return []

        samples = []
        for practice in record.practices:
            samples.append(await self.record_sample(practice, transition.value, duration_hours))

        logger.info(
            f"Recorded {transition.value} ETA sample ({duration_hours:.2f}h) "
            f"for {record.entity_type} {record.id}"
        )
        return samples

    async def list_etas(self, practices: Optional[List[str]] = None, sa_name: Optional[str] = None) -> List[PracticeEta]:
        query = select(PracticeEta)
        if practices:
            query = query.where(PracticeEta.practice.in_(practices))
        if sa_name:
            query = query.where(PracticeEta.sa_name == sa_name)
        result = await self.db.execute(query.order_by(PracticeEta.practice, PracticeEta.status_transition))
        return list(result.scalars().all())
