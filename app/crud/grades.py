# crud/grades.py

import logging
import uuid
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.all_models import (
    CBCPerformanceLevel, CurriculumType, GradeAuditLog, GradeRecord, GradeStatus, UserRole, now_local
)
from app.schemas.grades_schemas import (
    CBCGradeInput, GradeRecordCreate, GradeRecordRevise, GradeResult, IGCSEGradeInput,
    SheetStatisticsResponse, StandardGradeInput, WorkflowSummaryResponse
)
from app.schemas.workflow_schemas import (
    ApproveGradesRequest, OverrideGradeRequest, RejectGradesRequest, ReleaseGradesRequest,
    SubmitGradesRequest, TransitionErrorItem, TransitionOutcome
)
from app.services.grade_workflow import (
    GradeNotFoundError, GradeState, InvalidGradeError, PermissionDeniedError, StaleStateError,
    WorkflowAction, WorkflowEffect, WorkflowError, WorkflowEvent, effects_for, transition
)
from app.utils.grade_calculation import (
    calculate_class_average, calculate_grade, calculate_grade_statistics, calculate_pass_rate
)

logger = logging.getLogger(__name__)

ENTRY_ROLES = (UserRole.TEACHER, UserRole.PRINCIPAL)

AUDITED_FIELDS = (
    "status", "score", "percentage", "letter_grade", "cbc_performance_level",
    "is_valid", "principal_notes", "rejection_reason",
)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value


def _snapshot(record: GradeRecord) -> Dict[str, Any]:
    return {name: _plain(getattr(record, name)) for name in AUDITED_FIELDS}


def _state_of(record: GradeRecord) -> GradeState:
    return GradeState(
        status=record.status,
        submitted_by=record.submitted_by,
        is_valid=bool(record.is_valid),
    )


def _grade_values(grade, result: GradeResult) -> Dict[str, Any]:
    """Columns to store for a grade input and its calculated result."""
    level = result.cbc_performance_level
    return {
        "curriculum_type": CurriculumType(grade.curriculum_type),
        "score": result.score if result.score is not None else grade.score,
        "max_score": result.max_score,
        "coursework_score": getattr(grade, "coursework_score", None),
        "exam_score": getattr(grade, "exam_score", None),
        "coursework_weight": getattr(grade, "coursework_weight", None),
        "exam_weight": getattr(grade, "exam_weight", None),
        "percentage": result.percentage,
        "letter_grade": result.letter_grade,
        "cbc_performance_level": CBCPerformanceLevel(level) if level else None,
        "is_valid": result.is_valid,
        "error": result.error,
    }


def _write_audit_log(db: Session, grade_id: UUID, event: WorkflowEvent,
                     old_values: Optional[Dict[str, Any]], new_values: Dict[str, Any],
                     action: Optional[str] = None):
    db.add(GradeAuditLog(
        id=uuid.uuid4(),
        grade_record_id=grade_id,
        action=action or event.action.value,
        performed_by=event.actor_id,
        performed_by_role=event.actor_role,
        old_values=old_values,
        new_values=new_values,
        metadata_={"notes": event.notes, "reason": event.rejection_reason},
        created_at=now_local(),
    ))


def get_grade_record(db: Session, grade_id: UUID) -> GradeRecord:
    record = db.query(GradeRecord).filter(GradeRecord.id == grade_id).first()
    if not record:
        raise GradeNotFoundError(f"Grade {grade_id} not found", grade_id)
    return record


def create_grade_record(db: Session, data: GradeRecordCreate) -> GradeRecord:
    """Calculate the entered grade and store it as a draft owned by the entering teacher."""
    if data.actor_role not in ENTRY_ROLES:
        raise PermissionDeniedError("Only teachers and principals can enter grades")

    result = calculate_grade(data.grade)
    record = GradeRecord(
        id=uuid.uuid4(),
        student_id=data.student_id,
        subject_id=data.subject_id,
        class_id=data.class_id,
        term=data.term,
        exam_type=data.exam_type,
        status=GradeStatus.DRAFT,
        is_locked=False,
        submitted_by=data.actor_id,
        created_at=now_local(),
        **_grade_values(data.grade, result),
    )

    try:
        db.add(record)
        db.flush()
        _write_audit_log(
            db, record.id,
            WorkflowEvent(action=WorkflowAction.REVISE, actor_id=data.actor_id, actor_role=data.actor_role),
            None, _snapshot(record), action="create",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    if not result.is_valid:
        logger.info(f"Grade {record.id} saved as draft with invalid entry: {result.error}")
    return record


def apply_transition(db: Session, record: GradeRecord, event: WorkflowEvent,
                     values: Optional[Dict[str, Any]] = None) -> GradeStatus:
    """Move one record through the workflow with a conditional update.

    The update only matches while the row still has the status and version
    ``record`` was read with; if another writer got there first nothing is
    written and ``StaleStateError`` is raised. The caller owns the commit.
    """
    state = _state_of(record)
    target = transition(state, event)

    old_values = _snapshot(record)
    changes = dict(values or {})
    changes["status"] = target
    changes["updated_at"] = now_local()
    changes["version"] = GradeRecord.version + 1

    updated = (
        db.query(GradeRecord)
        .filter(
            GradeRecord.id == record.id,
            GradeRecord.status == state.status,
            GradeRecord.version == record.version,
        )
        .update(changes, synchronize_session=False)
    )
    if updated == 0:
        raise StaleStateError(
            f"Grade {record.id} is no longer {GradeStatus(state.status).value}", record.id
        )

    new_values = dict(old_values)
    new_values.update({name: _plain(value) for name, value in changes.items() if name in AUDITED_FIELDS})
    _write_audit_log(db, record.id, event, old_values, new_values)
    return target


def _event_values(event: WorkflowEvent) -> Dict[str, Any]:
    now = now_local()
    if event.action == WorkflowAction.SUBMIT:
        # a resubmitted grade no longer carries the earlier rejection
        return {"submitted_at": now, "is_locked": True, "rejection_reason": None}
    if event.action == WorkflowAction.APPROVE:
        return {
            "approved_by": event.actor_id,
            "approved_at": now,
            "principal_notes": event.notes,
            "is_locked": True,
        }
    if event.action == WorkflowAction.REJECT:
        return {
            "approved_by": event.actor_id,
            "approved_at": now,
            "rejection_reason": event.rejection_reason,
            "principal_notes": event.notes,
            "is_locked": False,
        }
    if event.action == WorkflowAction.RELEASE:
        return {"released_by": event.actor_id, "released_at": now, "released_to_parents": True}
    return {}


def run_batch_transition(db: Session, grade_ids: Iterable[UUID], event: WorkflowEvent) -> TransitionOutcome:
    """Apply ``event`` to every grade id, committing each record on its own.

    A refused record is rolled back and reported; the rest of the batch carries on.
    """
    errors: List[TransitionErrorItem] = []
    affected = 0

    for grade_id in dict.fromkeys(grade_ids):
        try:
            record = get_grade_record(db, grade_id)
            apply_transition(db, record, event, _event_values(event))
            db.commit()
            affected += 1
        except WorkflowError as e:
            db.rollback()
            logger.warning(f"{event.action.value} refused for grade {grade_id}: {e.code} ({e.message})")
            errors.append(TransitionErrorItem(grade_id=grade_id, code=e.code, message=e.message))
        except Exception:
            db.rollback()
            raise

    effects = list(effects_for(event.action)) if affected else []
    if WorkflowEffect.NOTIFY_PARENTS in effects:
        logger.info(f"{affected} grades released to parents by {event.actor_id}")
    if WorkflowEffect.NOTIFY_SUBMITTER in effects:
        logger.info(f"{affected} grades returned to their teachers by {event.actor_id}")

    logger.info(f"Batch {event.action.value}: {affected} succeeded, {len(errors)} failed")
    return TransitionOutcome(
        action=event.action,
        success=not errors,
        affected_count=affected,
        failed_count=len(errors),
        errors=errors,
        effects=effects,
    )


def submit_grades(db: Session, data: SubmitGradesRequest) -> TransitionOutcome:
    event = WorkflowEvent(action=WorkflowAction.SUBMIT, actor_id=data.actor_id, actor_role=data.actor_role)
    return run_batch_transition(db, data.grade_ids, event)


def approve_grades(db: Session, data: ApproveGradesRequest) -> TransitionOutcome:
    event = WorkflowEvent(
        action=WorkflowAction.APPROVE,
        actor_id=data.actor_id,
        actor_role=data.actor_role,
        notes=data.principal_notes,
    )
    return run_batch_transition(db, data.grade_ids, event)


def reject_grades(db: Session, data: RejectGradesRequest) -> TransitionOutcome:
    event = WorkflowEvent(
        action=WorkflowAction.REJECT,
        actor_id=data.actor_id,
        actor_role=data.actor_role,
        rejection_reason=data.rejection_reason,
    )
    return run_batch_transition(db, data.grade_ids, event)


def release_grades(db: Session, data: ReleaseGradesRequest) -> TransitionOutcome:
    event = WorkflowEvent(action=WorkflowAction.RELEASE, actor_id=data.actor_id, actor_role=data.actor_role)
    return run_batch_transition(db, data.grade_ids, event)


def revise_grade_record(db: Session, grade_id: UUID, data: GradeRecordRevise) -> GradeRecord:
    """Teacher re-entry of a draft or rejected grade; the record goes (back) to draft."""
    record = get_grade_record(db, grade_id)
    event = WorkflowEvent(action=WorkflowAction.REVISE, actor_id=data.actor_id, actor_role=data.actor_role)

    result = calculate_grade(data.grade)
    values = _grade_values(data.grade, result)
    values["is_locked"] = False

    try:
        apply_transition(db, record, event, values)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    return record


def _override_input(record: GradeRecord, data: OverrideGradeRequest):
    if record.curriculum_type == CurriculumType.IGCSE:
        return IGCSEGradeInput(
            coursework_score=data.coursework_score if data.coursework_score is not None else record.coursework_score,
            exam_score=data.exam_score if data.exam_score is not None else record.exam_score,
            coursework_weight=int(record.coursework_weight if record.coursework_weight is not None else 30),
            exam_weight=int(record.exam_weight if record.exam_weight is not None else 70),
        )
    if record.curriculum_type == CurriculumType.CBC:
        return CBCGradeInput(score=data.new_score)
    return StandardGradeInput(score=data.new_score, max_score=record.max_score)


def override_grade(db: Session, grade_id: UUID, data: OverrideGradeRequest) -> GradeRecord:
    """Principal replaces the score of an approved grade.

    The grade is recalculated for its curriculum and stays approved; the
    approval metadata is kept and the pre-override score is remembered.
    """
    record = get_grade_record(db, grade_id)
    event = WorkflowEvent(
        action=WorkflowAction.OVERRIDE,
        actor_id=data.actor_id,
        actor_role=data.actor_role,
        notes=data.principal_notes,
    )
    # refuse before recalculating
    transition(_state_of(record), event)

    grade_input = _override_input(record, data)
    result = calculate_grade(grade_input)
    if not result.is_valid:
        raise InvalidGradeError(result.error, record.id)

    values = _grade_values(grade_input, result)
    values.update(
        overridden_by=data.actor_id,
        overridden_at=now_local(),
        original_score=record.original_score if record.original_score is not None else record.score,
    )
    if data.principal_notes is not None:
        values["principal_notes"] = data.principal_notes

    try:
        apply_transition(db, record, event, values)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    logger.info(f"Grade {record.id} overridden by {data.actor_id}: {values['original_score']} -> {record.score}")
    return record


def get_pending_grades(db: Session, class_id: Optional[UUID] = None,
                       subject_id: Optional[UUID] = None) -> List[GradeRecord]:
    query = db.query(GradeRecord).filter(GradeRecord.status == GradeStatus.PENDING_APPROVAL)
    if class_id:
        query = query.filter(GradeRecord.class_id == class_id)
    if subject_id:
        query = query.filter(GradeRecord.subject_id == subject_id)
    return query.order_by(GradeRecord.submitted_at.desc()).all()


def get_released_grades_for_student(db: Session, student_id: UUID) -> List[GradeRecord]:
    # parents only ever see released grades
    return (
        db.query(GradeRecord)
        .filter(GradeRecord.student_id == student_id, GradeRecord.status == GradeStatus.RELEASED)
        .order_by(GradeRecord.created_at.desc())
        .all()
    )


def get_grade_sheet(db: Session, class_id: UUID, subject_id: UUID,
                    term: Optional[str] = None, exam_type: Optional[str] = None) -> List[GradeRecord]:
    query = db.query(GradeRecord).filter(
        GradeRecord.class_id == class_id,
        GradeRecord.subject_id == subject_id,
    )
    if term:
        query = query.filter(GradeRecord.term == term)
    if exam_type:
        query = query.filter(GradeRecord.exam_type == exam_type)
    return query.order_by(GradeRecord.created_at).all()


def get_audit_trail(db: Session, grade_id: UUID) -> List[GradeAuditLog]:
    get_grade_record(db, grade_id)
    return (
        db.query(GradeAuditLog)
        .filter(GradeAuditLog.grade_record_id == grade_id)
        .order_by(GradeAuditLog.created_at)
        .all()
    )


def get_workflow_summary(db: Session, class_id: Optional[UUID] = None,
                         subject_id: Optional[UUID] = None) -> WorkflowSummaryResponse:
    query = db.query(GradeRecord.status, func.count(GradeRecord.id))
    if class_id:
        query = query.filter(GradeRecord.class_id == class_id)
    if subject_id:
        query = query.filter(GradeRecord.subject_id == subject_id)

    counts = {GradeStatus(status).value: count for status, count in query.group_by(GradeRecord.status).all()}
    return WorkflowSummaryResponse(total=sum(counts.values()), **counts)


def get_sheet_statistics(db: Session, class_id: UUID, subject_id: UUID,
                         term: Optional[str] = None, exam_type: Optional[str] = None,
                         passing_threshold: float = 50) -> SheetStatisticsResponse:
    grades = [g for g in get_grade_sheet(db, class_id, subject_id, term, exam_type) if g.is_valid]
    return SheetStatisticsResponse(
        statistics=calculate_grade_statistics(grades),
        class_average=calculate_class_average(grades),
        pass_rate=calculate_pass_rate(grades, passing_threshold),
        passing_threshold=passing_threshold,
    )
