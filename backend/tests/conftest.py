import os

# Settings are read once at import time; point them at throwaway values before the app loads.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("SIS_BASE_URL", "http://sis.test")
os.environ.setdefault("SIS_SHARED_SECRET", "test-shared-secret")
os.environ.setdefault("SIS_HRMS_API_KEY", "test-hrms-key")
os.environ.setdefault("SIS_API_KEY", "test-sis-key")
os.environ.setdefault("LMS_API_KEY", "test-lms-key")

from datetime import date  # noqa: E402
import uuid  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.class_section import ClassSection  # noqa: E402
from app.models.faculty import EmployeeType, EmploymentStatus, Faculty  # noqa: E402
from app.models.leave import Leave, LeaveStatus, LeaveType  # noqa: E402
from app.models.schedule import Schedule, Weekday  # noqa: E402
from app.models.subject import Subject  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.rate_limit import clear_rate_limiter  # noqa: E402
from app.services.slot_claims import claim_slots  # noqa: E402
from app.services.time_range import parse_time_range  # noqa: E402


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    clear_rate_limiter()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_rate_limiter()


class Seeder:
    """Writes fixture rows straight through the ORM and commits each one."""

    def __init__(self, db: Session):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(self, role: UserRole = UserRole.admin, *, first_name: str = "Test", last_name: str | None = None, is_active: bool = True) -> User:
        n = self._next()
        return self._save(
            User(
                id=str(uuid.uuid4()),
                first_name=first_name,
                last_name=last_name or f"User{n}",
                email=f"user{n}-{uuid.uuid4().hex[:6]}@school.test",
                role=role,
                is_active=is_active,
            )
        )

    def faculty(
        self,
        name: str = "Maria Santos",
        *,
        employee_id: str | None = None,
        employee_type: EmployeeType = EmployeeType.full_time,
        employment_status: EmploymentStatus = EmploymentStatus.regular,
        user_active: bool = True,
    ) -> Faculty:
        first, _, last = name.partition(" ")
        user = self.user(UserRole.faculty, first_name=first, last_name=last or "Teacher", is_active=user_active)
        n = self._next()
        return self._save(
            Faculty(
                user_id=user.id,
                employee_id=employee_id or f"EMP-{n:04d}",
                employee_type=employee_type,
                employment_status=employment_status,
                position="Teacher I",
            )
        )

    def subject(self, name: str = "Mathematics", code: str | None = None) -> Subject:
        n = self._next()
        return self._save(Subject(code=code or f"SUBJ-{n}", name=name))

    def section(self, name: str = "Grade 7 - Rizal", *, is_deleted: bool = False) -> ClassSection:
        return self._save(ClassSection(name=name, grade_level="7", is_deleted=is_deleted))

    def schedule(
        self,
        faculty: Faculty,
        subject: Subject,
        section: ClassSection,
        day: Weekday = Weekday.monday,
        time: str = "08:00-09:00",
        *,
        claims: bool = True,
        sis_schedule_id: int | None = None,
    ) -> Schedule:
        parsed = parse_time_range(time)
        schedule = Schedule(
            faculty_id=faculty.id,
            subject_id=subject.id,
            class_section_id=section.id,
            day=day,
            time=time,
            duration_minutes=parsed.duration_minutes if parsed is not None else 60,
            sis_schedule_id=sis_schedule_id,
        )
        self.db.add(schedule)
        self.db.flush()
        if claims:
            claim_slots(self.db, schedule)
        self.db.commit()
        return schedule

    def leave(
        self,
        faculty: Faculty,
        start: date,
        end: date,
        *,
        status: LeaveStatus = LeaveStatus.approved,
        leave_type: LeaveType = LeaveType.sick,
    ) -> Leave:
        return self._save(
            Leave(
                faculty_id=faculty.id,
                leave_type=leave_type,
                start_date=start,
                end_date=end,
                status=status,
                reason="Fixture leave",
            )
        )


@pytest.fixture()
def seed(db):
    return Seeder(db)


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(seed):
    return auth_headers(seed.user(UserRole.admin, first_name="Admin"))


@pytest.fixture()
def headers_for():
    return auth_headers
