"""create scheduling core tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "user_role": ("admin", "scheduler", "faculty"),
    "employment_status": ("regular", "probationary", "part_time", "resigned", "retired"),
    "employee_type": ("full_time", "part_time", "probationary"),
    "leave_type": ("sick", "vacation", "emergency", "maternity", "paternity", "personal"),
    "leave_status": ("pending", "approved", "rejected"),
    "weekday": ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"),
    "claim_scope": ("faculty", "section"),
    "substitute_assignment_status": ("active", "restored"),
}


def _enum(name: str) -> sa.types.TypeEngine:
    values = ENUMS[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), "postgresql"
    )


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "faculty",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("employee_id", sa.String(length=50), nullable=True),
        sa.Column("employment_status", _enum("employment_status"), nullable=False),
        sa.Column("employee_type", _enum("employee_type"), nullable=False),
        sa.Column("position", sa.String(length=200), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_faculty_user_id", "faculty", ["user_id"], unique=False)
    op.create_index("ix_faculty_employee_id", "faculty", ["employee_id"], unique=True)

    op.create_table(
        "subjects",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_subjects_code", "subjects", ["code"], unique=True)

    op.create_table(
        "class_sections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("grade_level", sa.String(length=50), nullable=True),
        sa.Column("school_year", sa.String(length=20), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_class_sections_name", "class_sections", ["name"], unique=False)

    op.create_table(
        "leaves",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("faculty_id", sa.Integer(), sa.ForeignKey("faculty.id"), nullable=False),
        sa.Column("leave_type", _enum("leave_type"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", _enum("leave_status"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("reviewed_by_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_leaves_faculty_status", "leaves", ["faculty_id", "status"], unique=False)

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("faculty_id", sa.Integer(), sa.ForeignKey("faculty.id"), nullable=False),
        sa.Column("subject_id", sa.Integer(), sa.ForeignKey("subjects.id"), nullable=False),
        sa.Column("class_section_id", sa.Integer(), sa.ForeignKey("class_sections.id"), nullable=False),
        sa.Column("day", _enum("weekday"), nullable=False),
        sa.Column("time", sa.String(length=20), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("sis_schedule_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedules_faculty_day", "schedules", ["faculty_id", "day"], unique=False)
    op.create_index("ix_schedules_section_day", "schedules", ["class_section_id", "day"], unique=False)
    op.create_index("ix_schedules_sis_schedule_id", "schedules", ["sis_schedule_id"], unique=False)

    op.create_table(
        "schedule_slot_claims",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "schedule_id",
            sa.Integer(),
            sa.ForeignKey("schedules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("scope", _enum("claim_scope"), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("day", _enum("weekday"), nullable=False),
        sa.Column("minute", sa.Integer(), nullable=False),
        sa.UniqueConstraint("scope", "owner_id", "day", "minute", name="uq_schedule_slot_claims_slot"),
    )
    op.create_index("ix_schedule_slot_claims_schedule_id", "schedule_slot_claims", ["schedule_id"], unique=False)

    op.create_table(
        "substitute_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "schedule_id",
            sa.Integer(),
            sa.ForeignKey("schedules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("original_faculty_id", sa.Integer(), nullable=False),
        sa.Column("substitute_faculty_id", sa.Integer(), nullable=False),
        sa.Column("leave_id", sa.Integer(), nullable=True),
        sa.Column("status", _enum("substitute_assignment_status"), nullable=False),
        sa.Column("active_from", sa.Date(), nullable=False),
        sa.Column("active_to", sa.Date(), nullable=True),
        sa.Column("assigned_by_id", sa.String(length=36), nullable=True),
        sa.Column("restored_by_id", sa.String(length=36), nullable=True),
        sa.Column("restored_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    for column in ("schedule_id", "original_faculty_id", "substitute_faculty_id"):
        op.create_index(f"ix_substitute_assignments_{column}", "substitute_assignments", [column], unique=False)


def downgrade() -> None:
    for column in ("substitute_faculty_id", "original_faculty_id", "schedule_id"):
        op.drop_index(f"ix_substitute_assignments_{column}", table_name="substitute_assignments")
    op.drop_table("substitute_assignments")
    op.drop_index("ix_schedule_slot_claims_schedule_id", table_name="schedule_slot_claims")
    op.drop_table("schedule_slot_claims")
    op.drop_index("ix_schedules_sis_schedule_id", table_name="schedules")
    op.drop_index("ix_schedules_section_day", table_name="schedules")
    op.drop_index("ix_schedules_faculty_day", table_name="schedules")
    op.drop_table("schedules")
    op.drop_index("ix_leaves_faculty_status", table_name="leaves")
    op.drop_table("leaves")
    op.drop_index("ix_class_sections_name", table_name="class_sections")
    op.drop_table("class_sections")
    op.drop_index("ix_subjects_code", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_faculty_employee_id", table_name="faculty")
    op.drop_index("ix_faculty_user_id", table_name="faculty")
    op.drop_table("faculty")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in reversed(list(ENUMS)):
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)
