from pydantic import BaseModel, Field
from uuid import UUID
from typing import List, Optional

from app.models.all_models import UserRole
from app.services.grade_workflow import WorkflowAction, WorkflowEffect


class BatchTransitionRequest(BaseModel):
    grade_ids: List[UUID] = Field(..., min_length=1)
    actor_id: UUID
    actor_role: UserRole

class SubmitGradesRequest(BatchTransitionRequest):
    actor_role: UserRole = UserRole.TEACHER

class ApproveGradesRequest(BatchTransitionRequest):
    principal_notes: Optional[str] = None

class RejectGradesRequest(BatchTransitionRequest):
    # blank reasons are refused per record by the workflow
    rejection_reason: Optional[str] = None

class ReleaseGradesRequest(BatchTransitionRequest):
    pass

class OverrideGradeRequest(BaseModel):
    actor_id: UUID
    actor_role: UserRole
    new_score: Optional[float] = None
    coursework_score: Optional[float] = None
    exam_score: Optional[float] = None
    principal_notes: Optional[str] = None


class TransitionErrorItem(BaseModel):
    grade_id: UUID
    code: str
    message: str

class TransitionOutcome(BaseModel):
    action: WorkflowAction
    success: bool
    affected_count: int
    failed_count: int = 0
    errors: List[TransitionErrorItem] = []
    effects: List[WorkflowEffect] = []
