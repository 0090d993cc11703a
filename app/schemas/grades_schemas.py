# schemas/grades.py

from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from app.models.all_models import CBCPerformanceLevel, CurriculumType, GradeStatus, UserRole


# Grade inputs, one model per curriculum
class StandardGradeInput(BaseModel):
    curriculum_type: Literal["standard"] = "standard"
    score: Optional[float] = None
    max_score: float = 100

class CBCGradeInput(BaseModel):
    curriculum_type: Literal["cbc"] = "cbc"
    score: Optional[float] = None
    max_score: float = 100

class IGCSEGradeInput(BaseModel):
    curriculum_type: Literal["igcse"] = "igcse"
    coursework_score: Optional[float] = None
    exam_score: Optional[float] = None
    coursework_weight: int = 30
    exam_weight: int = 70
    score: Optional[float] = None
    max_score: float = 100

GradeInput = Annotated[
    Union[StandardGradeInput, CBCGradeInput, IGCSEGradeInput],
    Field(discriminator="curriculum_type"),
]


class GradeResult(BaseModel):
    score: Optional[float] = None
    max_score: float = 100
    percentage: Optional[float] = None
    letter_grade: Optional[str] = None
    cbc_performance_level: Optional[str] = None
    total_score: Optional[float] = None
    is_valid: bool
    error: Optional[str] = None

class GradeStatistics(BaseModel):
    count: int = 0
    average: float = 0
    highest: float = 0
    lowest: float = 0
    pass_rate: float = 0

class GradeValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = []

class GradeValidationInput(BaseModel):
    score: Optional[float] = None
    max_score: Optional[float] = None
    percentage: Optional[float] = None
    letter_grade: Optional[str] = None
    curriculum_type: Optional[str] = None

class GradeBand(BaseModel):
    label: str
    min: float
    max: float
    description: Optional[str] = None


# Persisted grade records
class GradeRecordCreate(BaseModel):
    student_id: UUID
    subject_id: UUID
    class_id: Optional[UUID] = None
    term: Optional[str] = None
    exam_type: Optional[str] = None
    actor_id: UUID
    actor_role: UserRole = UserRole.TEACHER
    grade: GradeInput

class GradeRecordRevise(BaseModel):
    actor_id: UUID
    actor_role: UserRole = UserRole.TEACHER
    grade: GradeInput

class GradeRecordResponse(BaseModel):
    id: UUID
    student_id: UUID
    subject_id: UUID
    class_id: Optional[UUID] = None
    term: Optional[str] = None
    exam_type: Optional[str] = None
    curriculum_type: CurriculumType
    score: Optional[float] = None
    max_score: float
    coursework_score: Optional[float] = None
    exam_score: Optional[float] = None
    percentage: Optional[float] = None
    letter_grade: Optional[str] = None
    cbc_performance_level: Optional[CBCPerformanceLevel] = None
    is_valid: bool
    error: Optional[str] = None
    status: GradeStatus
    is_locked: bool = False
    submitted_by: UUID
    submitted_at: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    principal_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    released_to_parents: bool = False
    original_score: Optional[float] = None
    overridden_by: Optional[UUID] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class GradeAuditLogResponse(BaseModel):
    id: UUID
    grade_record_id: UUID
    action: str
    performed_by: UUID
    performed_by_role: UserRole
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="metadata_")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SheetStatisticsResponse(BaseModel):
    statistics: GradeStatistics
    class_average: float
    pass_rate: int
    passing_threshold: float

class WorkflowSummaryResponse(BaseModel):
    total: int
    draft: int = 0
    pending_approval: int = 0
    approved: int = 0
    rejected: int = 0
    released: int = 0
