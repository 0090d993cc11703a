# routers/grades.py

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.config import settings
from app.crud import grades as crud
from app.database import get_db
from app.models.all_models import CurriculumType
from app.schemas.grades_schemas import (
    GradeAuditLogResponse, GradeBand, GradeRecordCreate, GradeRecordResponse, GradeRecordRevise,
    GradeResult, GradeValidationInput, GradeValidationResult, SheetStatisticsResponse,
    WorkflowSummaryResponse
)
from app.schemas.workflow_schemas import (
    ApproveGradesRequest, OverrideGradeRequest, RejectGradesRequest, ReleaseGradesRequest,
    SubmitGradesRequest, TransitionOutcome
)
from app.services.grade_workflow import WorkflowError
from app.utils.grade_calculation import calculate_grade, get_grade_scale, validate_grade_data


router = APIRouter(prefix="/api/grades", tags=["Grades"])


def _raise_http(error: WorkflowError):
    raise HTTPException(
        status_code=error.status_code,
        detail={"code": error.code, "message": error.message},
    )


# Calculator
@router.post("/calculate", response_model=GradeResult)
def calculate(payload: Dict[str, Any] = Body(...)):
    return calculate_grade(payload)

@router.post("/validate", response_model=GradeValidationResult)
def validate(payload: GradeValidationInput):
    return validate_grade_data(payload)

@router.get("/scales/{curriculum_type}", response_model=List[GradeBand])
def grade_scale(curriculum_type: CurriculumType):
    return get_grade_scale(curriculum_type.value)


# Grade records
@router.post("/records", response_model=GradeRecordResponse, status_code=status.HTTP_201_CREATED)
def create_grade(data: GradeRecordCreate, db: Session = Depends(get_db)):
    try:
        return crud.create_grade_record(db, data)
    except WorkflowError as e:
        _raise_http(e)

@router.get("/records/{grade_id}", response_model=GradeRecordResponse)
def get_grade(grade_id: UUID, db: Session = Depends(get_db)):
    try:
        return crud.get_grade_record(db, grade_id)
    except WorkflowError as e:
        _raise_http(e)

@router.put("/records/{grade_id}/revise", response_model=GradeRecordResponse)
def revise_grade(grade_id: UUID, data: GradeRecordRevise, db: Session = Depends(get_db)):
    try:
        return crud.revise_grade_record(db, grade_id, data)
    except WorkflowError as e:
        _raise_http(e)

@router.post("/records/{grade_id}/override", response_model=GradeRecordResponse)
def override_grade(grade_id: UUID, data: OverrideGradeRequest, db: Session = Depends(get_db)):
    try:
        return crud.override_grade(db, grade_id, data)
    except WorkflowError as e:
        _raise_http(e)

@router.get("/records/{grade_id}/audit", response_model=List[GradeAuditLogResponse])
def grade_audit_trail(grade_id: UUID, db: Session = Depends(get_db)):
    try:
        return crud.get_audit_trail(db, grade_id)
    except WorkflowError as e:
        _raise_http(e)


# Workflow
@router.post("/submit", response_model=TransitionOutcome)
def submit_grades(data: SubmitGradesRequest, db: Session = Depends(get_db)):
    return crud.submit_grades(db, data)

@router.post("/approve", response_model=TransitionOutcome)
def approve_grades(data: ApproveGradesRequest, db: Session = Depends(get_db)):
    return crud.approve_grades(db, data)

@router.post("/reject", response_model=TransitionOutcome)
def reject_grades(data: RejectGradesRequest, db: Session = Depends(get_db)):
    return crud.reject_grades(db, data)

@router.post("/release", response_model=TransitionOutcome)
def release_grades(data: ReleaseGradesRequest, db: Session = Depends(get_db)):
    return crud.release_grades(db, data)


# Queries
@router.get("/pending", response_model=List[GradeRecordResponse])
def pending_grades(
    class_id: Optional[UUID] = None,
    subject_id: Optional[UUID] = None,
    db: Session = Depends(get_db)
):
    return crud.get_pending_grades(db, class_id, subject_id)

@router.get("/students/{student_id}/released", response_model=List[GradeRecordResponse])
def released_grades(student_id: UUID, db: Session = Depends(get_db)):
    return crud.get_released_grades_for_student(db, student_id)

@router.get("/sheet", response_model=List[GradeRecordResponse])
def grade_sheet(
    class_id: UUID,
    subject_id: UUID,
    term: Optional[str] = None,
    exam_type: Optional[str] = None,
    db: Session = Depends(get_db)
):
    return crud.get_grade_sheet(db, class_id, subject_id, term, exam_type)

@router.get("/sheet/statistics", response_model=SheetStatisticsResponse)
def grade_sheet_statistics(
    class_id: UUID,
    subject_id: UUID,
    term: Optional[str] = None,
    exam_type: Optional[str] = None,
    passing_threshold: Optional[float] = None,
    db: Session = Depends(get_db)
):
    threshold = passing_threshold if passing_threshold is not None else settings.DEFAULT_PASSING_THRESHOLD
    return crud.get_sheet_statistics(db, class_id, subject_id, term, exam_type, threshold)

@router.get("/workflow-summary", response_model=WorkflowSummaryResponse)
def workflow_summary(
    class_id: Optional[UUID] = None,
    subject_id: Optional[UUID] = None,
    db: Session = Depends(get_db)
):
    return crud.get_workflow_summary(db, class_id, subject_id)
