"""
Assignment status workflow.

Resource and SA assignments move through Pending -> Unassigned -> Assigned.
Every transition that needs more than a status flip (practice triage,
staffing) is described by a TransitionRule, and the whole request is
validated before the record is touched so a record can never land in
"Assigned" without assignees.

The same rules apply to both assignment kinds; records expose their
assignee list through the ``assignees`` property.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.models.assignment import AssignmentStatus, PENDING_PRACTICE, join_names, split_names
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


PRACTICE_AUTHORITY_ERROR = (
    "You are not a Practice Manager or Principal of all selected practices"
)


class TransitionError(ValueError):
    """Request is incomplete or asks for a transition that does not exist."""


class WorkflowPermissionError(Exception):
    """The user may not make this change."""


@dataclass(frozen=True)
class TransitionRule:
    from_status: AssignmentStatus
    to_status: AssignmentStatus
    sets_practice: bool  # Practice is chosen as part of this step
    requires_assignees: bool  # Staffing happens in this step

    @property
    def name(self) -> str:
        return f"{self.from_status.value.lower()}_to_{self.to_status.value.lower()}"


TRANSITION_RULES: Dict[Tuple[AssignmentStatus, AssignmentStatus], TransitionRule] = {
    (AssignmentStatus.PENDING, AssignmentStatus.UNASSIGNED): TransitionRule(
        AssignmentStatus.PENDING, AssignmentStatus.UNASSIGNED,
        sets_practice=True, requires_assignees=False,
    ),
    (AssignmentStatus.PENDING, AssignmentStatus.ASSIGNED): TransitionRule(
        AssignmentStatus.PENDING, AssignmentStatus.ASSIGNED,
        sets_practice=True, requires_assignees=True,
    ),
    (AssignmentStatus.UNASSIGNED, AssignmentStatus.ASSIGNED): TransitionRule(
        AssignmentStatus.UNASSIGNED, AssignmentStatus.ASSIGNED,
        sets_practice=False, requires_assignees=True,
    ),
}


@dataclass
class TransitionRequest:
    """Everything the status modal collects before a single submit."""
    to_status: AssignmentStatus
    practices: List[str] = field(default_factory=list)
    am: Optional[str] = None
    assignees: List[str] = field(default_factory=list)
    date_assigned: Optional[str] = None


def _clean(names: Optional[Iterable[str]]) -> List[str]:
    return [n.strip() for n in (names or []) if n and n.strip()]


@contextmanager
def _restore_on_error(record, attributes: Iterable[str]):
    """Put the record back the way it was if the block raises."""
    snapshot = {name: getattr(record, name) for name in attributes}
    try:
        yield
    except Exception:
        for name, value in snapshot.items():
            setattr(record, name, value)
        raise


def get_transition_rule(
    from_status: AssignmentStatus,
    to_status: AssignmentStatus
) -> Optional[TransitionRule]:
    """
    Look up the rule for a status change.

    Returns None for a same-state no-op. Raises TransitionError for
    transitions outside the table.
    """
    if from_status == to_status:
        return None
    rule = TRANSITION_RULES.get((from_status, to_status))
    if rule is None:
        raise TransitionError(
            f"Transition from {from_status.value} to {to_status.value} is not allowed"
        )
    return rule


def required_practice_set(record) -> Set[str]:
    """Practices a user must lead to edit the record (empty for the sentinel)."""
    return set(record.practices)


def can_edit(user: Optional[User], record) -> bool:
    """Whether the user may change the record's status or ownership fields."""
    if user is None:
        return False
    if user.is_admin:
        return True
    if not user.is_practice_lead:
        return False
    return required_practice_set(record) <= set(user.practices or [])


def check_practice_authority(user: User, practices: Iterable[str]):
    """Non-admins may only route records to practices they lead."""
    if user.is_admin:
        return
    missing = set(practices) - set(user.practices or [])
    if missing:
        logger.info(
            f"Practice authority check failed for {user.email}: "
            f"missing {sorted(missing)}"
        )
        raise WorkflowPermissionError(PRACTICE_AUTHORITY_ERROR)


def check_invariants(record):
    """Reject record states the workflow must never produce."""
    if record.status == AssignmentStatus.ASSIGNED:
        if not record.assignees:
            raise TransitionError("Assigned records require at least one assignee")
        if not record.practices:
            raise TransitionError("Assigned records require a practice")
        if not record.date_assigned:
            raise TransitionError("Assigned records require a date assigned")
    elif record.status == AssignmentStatus.UNASSIGNED and not record.practices:
        raise TransitionError("Unassigned records require a practice")


def validate_transition(
    user: User,
    record,
    request: TransitionRequest
) -> Optional[TransitionRule]:
    """
    Validate a status change without modifying the record.

    Raises WorkflowPermissionError when the user may not edit the record or
    route it to the requested practices, TransitionError when the request is
    missing required input or asks for an unsupported transition.
    """
    if not can_edit(user, record):
        raise WorkflowPermissionError("You do not have permission to change this record's status")

    rule = get_transition_rule(record.status, request.to_status)
    if rule is None:
        return None

    if rule.sets_practice:
        practices = _clean(request.practices)
        if not practices:
            raise TransitionError("At least one practice is required")
        if PENDING_PRACTICE in practices:
            raise TransitionError("Select an actual practice instead of Pending")
        check_practice_authority(user, practices)

    if rule.requires_assignees and not _clean(request.assignees):
        raise TransitionError("At least one assignee is required")

    return rule


def apply_transition(
    record,
    request: TransitionRequest,
    rule: TransitionRule,
    today: Optional[date] = None
):
    """Write the validated transition onto the record as one unit."""
    touched = ("status", "practice", "am", record.assignee_field, "date_assigned")
    with _restore_on_error(record, touched):
        if rule.sets_practice:
            record.practice = join_names(_clean(request.practices))
            if request.am is not None:
                record.am = request.am.strip()

        if rule.requires_assignees:
            record.assignees = _clean(request.assignees)
            if not record.date_assigned:
                record.date_assigned = request.date_assigned or (today or date.today()).isoformat()

        record.status = rule.to_status
        check_invariants(record)


def transition(
    user: User,
    record,
    request: TransitionRequest,
    today: Optional[date] = None
) -> Optional[TransitionRule]:
    """Validate and apply a status change; returns the rule used (None for no-op)."""
    rule = validate_transition(user, record, request)
    if rule is None:
        return None
    apply_transition(record, request, rule, today=today)
    logger.info(
        f"{record.entity_type} {record.id}: {rule.from_status.value} -> "
        f"{rule.to_status.value} by {user.email}"
    )
    return rule


# Fields only changed through the workflow or guarded by the permission gate
OWNERSHIP_FIELDS = ("practice", "am", "assignees", "date_assigned")


def apply_field_updates(
    user: User,
    record,
    updates: dict,
    today: Optional[date] = None
):
    """
    Apply non-status edits while keeping the workflow invariants.

    `updates` uses model attribute names, with `assignees` as a list. Ownership
    fields require edit permission; descriptive fields are open to any
    authenticated user, matching the detail page.
    """
    if user.role == UserRole.EXECUTIVE and not user.is_admin:
        raise WorkflowPermissionError("Executives have read-only access")

    touches_ownership = any(key in updates for key in OWNERSHIP_FIELDS)
    if touches_ownership and not can_edit(user, record):
        raise WorkflowPermissionError("You do not have permission to edit this record")

    real_practices = None
    if "practice" in updates:
        practices = _clean(updates["practice"].split(",")) if isinstance(updates["practice"], str) \
            else _clean(updates["practice"])
        real_practices = [p for p in practices if p != PENDING_PRACTICE]
        if record.status != AssignmentStatus.PENDING and not real_practices:
            raise TransitionError("A practice is required once a record leaves Pending")
        check_practice_authority(user, real_practices)

    touched = set(updates) - {"assignees"} | {"practice", record.assignee_field, "date_assigned"}
    with _restore_on_error(record, touched):
        if real_practices is not None:
            record.practice = join_names(real_practices) if real_practices else PENDING_PRACTICE

        if "assignees" in updates:
            had_assignees = bool(record.assignees)
            record.assignees = _clean(updates["assignees"])
            if record.assignees and not had_assignees and not record.date_assigned:
                record.date_assigned = updates.get("date_assigned") or (today or date.today()).isoformat()

        if updates.get("date_assigned") and not record.date_assigned:
            record.date_assigned = updates["date_assigned"]

        for key, value in updates.items():
            if key in ("practice", "assignees", "date_assigned"):
                continue
            setattr(record, key, value)

        check_invariants(record)


def _as_names(value) -> List[str]:
    if isinstance(value, str):
        return split_names(value)
    return _clean(value)


def _unchanged(record, key: str, value) -> bool:
    if key == "assignees":
        return _as_names(value) == record.assignees
    if key == "practice":
        return set(_as_names(value)) == set(split_names(record.practice))
    return getattr(record, key, None) == value


def update_record(
    user: User,
    record,
    updates: dict,
    today: Optional[date] = None
) -> Optional[TransitionRule]:
    """
    Apply a merged field set from the edit form.

    A changed `status` is routed through the transition workflow using the
    assignees and date from the same payload, plus practice and am when the
    step routes the record; the remaining fields go through
    apply_field_updates. Either everything is applied or the record is left
    untouched.
    """
    # The form posts every field; only real changes count
    updates = {k: v for k, v in updates.items() if k == "status" or not _unchanged(record, k, v)}
    to_status = updates.pop("status", None)
    if to_status is None or to_status == record.status:
        apply_field_updates(user, record, updates, today=today)
        return None

    request = TransitionRequest(
        to_status=AssignmentStatus(to_status),
        practices=_as_names(updates.get("practice", record.practice)),
        am=updates.get("am"),
        assignees=_as_names(updates.pop("assignees", record.assignees)),
        date_assigned=updates.pop("date_assigned", None) or None,
    )
    rule = validate_transition(user, record, request)
    if rule is None:
        apply_field_updates(user, record, updates, today=today)
        return None

    # Steps that do not route the record leave practice and am to the field edits
    if rule.sets_practice:
        updates.pop("practice", None)
        updates.pop("am", None)

    touched = ("status", "practice", "am", record.assignee_field, "date_assigned") + tuple(updates)
    with _restore_on_error(record, touched):
        apply_transition(record, request, rule, today=today)
        if updates:
            apply_field_updates(user, record, updates, today=today)

    logger.info(
        f"{record.entity_type} {record.id}: {rule.from_status.value} -> "
        f"{rule.to_status.value} by {user.email}"
    )
    return rule
