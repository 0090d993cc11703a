from sqlalchemy import Column, String, Float, Integer, DateTime, Boolean, Text, ForeignKey, Enum as SQLEnum, JSON, Uuid, Index
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
from enum import Enum
import uuid
from pytz import timezone

from app.config import settings

Base = declarative_base()


def now_local() -> datetime:
    return datetime.now(timezone(settings.TIMEZONE))


# Enum Classes
class UserRole(str, Enum):
    ADMIN = "admin"
    SCHOOL_OWNER = "school_owner"
    PRINCIPAL = "principal"
    TEACHER = "teacher"
    FINANCE_OFFICER = "finance_officer"
    PARENT = "parent"

class CurriculumType(str, Enum):
    STANDARD = "standard"
    CBC = "cbc"
    IGCSE = "igcse"

class GradeStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    RELEASED = "released"

class CBCPerformanceLevel(str, Enum):
    EE = "EE"
    ME = "ME"
    AE = "AE"
    BE = "BE"


# Model Classes
class GradeRecord(Base):
    """One student's grade for a subject and exam, plus its approval state."""
    __tablename__ = "grade_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid(as_uuid=True), nullable=False)
    subject_id = Column(Uuid(as_uuid=True), nullable=False)
    class_id = Column(Uuid(as_uuid=True))
    term = Column(String(20))
    exam_type = Column(String(50))
    curriculum_type = Column(SQLEnum(CurriculumType), nullable=False)

    # Raw entry
    score = Column(Float)
    max_score = Column(Float, nullable=False, default=100)
    coursework_score = Column(Float)
    exam_score = Column(Float)
    coursework_weight = Column(Float)
    exam_weight = Column(Float)

    # Calculated result
    percentage = Column(Float)
    letter_grade = Column(String(2))
    cbc_performance_level = Column(SQLEnum(CBCPerformanceLevel))
    is_valid = Column(Boolean, nullable=False, default=False)
    error = Column(Text)

    # Workflow
    status = Column(SQLEnum(GradeStatus), nullable=False, default=GradeStatus.DRAFT)
    is_locked = Column(Boolean, default=False)
    submitted_by = Column(Uuid(as_uuid=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True))
    approved_by = Column(Uuid(as_uuid=True))
    approved_at = Column(DateTime(timezone=True))
    principal_notes = Column(Text)
    rejection_reason = Column(Text)
    released_by = Column(Uuid(as_uuid=True))
    released_at = Column(DateTime(timezone=True))
    released_to_parents = Column(Boolean, default=False)
    overridden_by = Column(Uuid(as_uuid=True))
    overridden_at = Column(DateTime(timezone=True))
    original_score = Column(Float)
    # bumped by every workflow update
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=now_local)
    updated_at = Column(DateTime(timezone=True), default=now_local, onupdate=now_local)

    audit_logs = relationship("GradeAuditLog", back_populates="grade_record", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_grade_records_sheet", "class_id", "subject_id", "term", "exam_type"),
        Index("ix_grade_records_status", "status"),
    )

class GradeAuditLog(Base):
    __tablename__ = "grade_audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    grade_record_id = Column(Uuid(as_uuid=True), ForeignKey("grade_records.id"), nullable=False)
    action = Column(String(30), nullable=False)
    performed_by = Column(Uuid(as_uuid=True), nullable=False)
    performed_by_role = Column(SQLEnum(UserRole), nullable=False)
    old_values = Column(JSON)
    new_values = Column(JSON)
    metadata_ = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), default=now_local)

    grade_record = relationship("GradeRecord", back_populates="audit_logs")
