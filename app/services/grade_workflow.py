"""
Grade approval workflow.

draft -> pending_approval -> approved | rejected, approved -> released,
approved -> approved on a principal override. Rejected grades go back to
draft when the teacher re-enters the score, or straight to
pending_approval when they are re-submitted. Released grades are final.

``transition`` is pure: it decides the next status or raises a
``WorkflowError``. Writing the new status is left to the caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple
from uuid import UUID

from app.models.all_models import GradeStatus, UserRole


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    REVISE = "revise"
    APPROVE = "approve"
    REJECT = "reject"
    OVERRIDE = "override"
    RELEASE = "release"

class WorkflowEffect(str, Enum):
    LOCK_EDITING = "lock_editing"
    UNLOCK_EDITING = "unlock_editing"
    NOTIFY_SUBMITTER = "notify_submitter"
    NOTIFY_PARENTS = "notify_parents"


TRANSITIONS: Dict[Tuple[GradeStatus, WorkflowAction], GradeStatus] = {
    (GradeStatus.DRAFT, WorkflowAction.SUBMIT): GradeStatus.PENDING_APPROVAL,
    (GradeStatus.REJECTED, WorkflowAction.SUBMIT): GradeStatus.PENDING_APPROVAL,
    (GradeStatus.DRAFT, WorkflowAction.REVISE): GradeStatus.DRAFT,
    (GradeStatus.REJECTED, WorkflowAction.REVISE): GradeStatus.DRAFT,
    (GradeStatus.PENDING_APPROVAL, WorkflowAction.APPROVE): GradeStatus.APPROVED,
    (GradeStatus.PENDING_APPROVAL, WorkflowAction.REJECT): GradeStatus.REJECTED,
    (GradeStatus.APPROVED, WorkflowAction.OVERRIDE): GradeStatus.APPROVED,
    (GradeStatus.APPROVED, WorkflowAction.RELEASE): GradeStatus.RELEASED,
}

PRINCIPAL_ACTIONS = frozenset({
    WorkflowAction.APPROVE,
    WorkflowAction.REJECT,
    WorkflowAction.OVERRIDE,
    WorkflowAction.RELEASE,
})

SUBMITTER_ACTIONS = frozenset({WorkflowAction.SUBMIT, WorkflowAction.REVISE})

EFFECTS: Dict[WorkflowAction, Tuple[WorkflowEffect, ...]] = {
    WorkflowAction.SUBMIT: (WorkflowEffect.LOCK_EDITING,),
    WorkflowAction.REVISE: (),
    WorkflowAction.APPROVE: (WorkflowEffect.LOCK_EDITING,),
    WorkflowAction.REJECT: (WorkflowEffect.UNLOCK_EDITING, WorkflowEffect.NOTIFY_SUBMITTER),
    WorkflowAction.OVERRIDE: (),
    WorkflowAction.RELEASE: (WorkflowEffect.NOTIFY_PARENTS,),
}


# Errors
class WorkflowError(Exception):
    code = "workflow_error"
    status_code = 400

    def __init__(self, message: str, grade_id: Optional[UUID] = None):
        super().__init__(message)
        self.message = message
        self.grade_id = grade_id

class GradeNotFoundError(WorkflowError):
    code = "not_found"
    status_code = 404

class IllegalTransitionError(WorkflowError):
    code = "illegal_transition"
    status_code = 409

class TerminalStateError(IllegalTransitionError):
    code = "terminal_state"

class PermissionDeniedError(WorkflowError):
    code = "permission_denied"
    status_code = 403

class MissingRejectionReasonError(WorkflowError):
    code = "missing_rejection_reason"
    status_code = 400

class InvalidGradeError(WorkflowError):
    code = "invalid_grade"
    status_code = 422

class StaleStateError(WorkflowError):
    code = "stale_state"
    status_code = 409


@dataclass(frozen=True)
class GradeState:
    status: GradeStatus
    submitted_by: Optional[UUID] = None
    is_valid: bool = True

@dataclass(frozen=True)
class WorkflowEvent:
    action: WorkflowAction
    actor_id: UUID
    actor_role: UserRole
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None


def transition(state: GradeState, event: WorkflowEvent) -> GradeStatus:
    """Return the status ``event`` moves ``state`` to, or raise why it can't."""
    status = GradeStatus(state.status)
    target = TRANSITIONS.get((status, event.action))

    if target is None:
        if status == GradeStatus.RELEASED:
            raise TerminalStateError(f"Released grades cannot be {_past_tense(event.action)}")
        raise IllegalTransitionError(
            f"Cannot {event.action.value} a grade that is {status.value}"
        )

    if event.action in PRINCIPAL_ACTIONS and event.actor_role != UserRole.PRINCIPAL:
        raise PermissionDeniedError(f"Only a principal can {event.action.value} grades")

    if event.action in SUBMITTER_ACTIONS and event.actor_id != state.submitted_by:
        raise PermissionDeniedError(f"Only the teacher who entered a grade can {event.action.value} it")

    if event.action == WorkflowAction.REJECT and not (event.rejection_reason or "").strip():
        raise MissingRejectionReasonError("A rejection reason is required")

    if event.action == WorkflowAction.SUBMIT and not state.is_valid:
        raise InvalidGradeError("Only valid grades can be submitted for approval")

    return target


def effects_for(action: WorkflowAction) -> Tuple[WorkflowEffect, ...]:
    return EFFECTS[action]


def _past_tense(action: WorkflowAction) -> str:
    return {
        WorkflowAction.SUBMIT: "submitted",
        WorkflowAction.REVISE: "revised",
        WorkflowAction.APPROVE: "approved",
        WorkflowAction.REJECT: "rejected",
        WorkflowAction.OVERRIDE: "overridden",
        WorkflowAction.RELEASE: "released",
    }[action]
