import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import get_db
from app.models.all_models import Base, UserRole
from app.schemas.grades_schemas import GradeRecordCreate
from main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def teacher_id():
    return uuid.uuid4()


@pytest.fixture
def principal_id():
    return uuid.uuid4()


@pytest.fixture
def class_id():
    return uuid.uuid4()


@pytest.fixture
def subject_id():
    return uuid.uuid4()


@pytest.fixture
def make_grade(teacher_id, class_id, subject_id):
    """Build a GradeRecordCreate for the shared class and subject."""
    def _make(grade=None, actor_id=None, student_id=None, term="term1", exam_type="end_term"):
        return GradeRecordCreate(
            student_id=student_id or uuid.uuid4(),
            subject_id=subject_id,
            class_id=class_id,
            term=term,
            exam_type=exam_type,
            actor_id=actor_id or teacher_id,
            actor_role=UserRole.TEACHER,
            grade=grade or {"curriculum_type": "standard", "score": 72, "max_score": 100},
        )
    return _make
