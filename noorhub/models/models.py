import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Table,
    Integer,
    Numeric,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


# Association table for many-to-many Task<->Employee (assignees)
task_assignments = Table(
    "task_assignments",
    Base.metadata,
    Column("task_id", UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("employee_id", UUID(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), default=utcnow),
    UniqueConstraint("task_id", "employee_id", name="uq_task_employee"),
)

# Association table for many-to-many Site<->Employee
site_assignments = Table(
    "site_assignments",
    Base.metadata,
    Column("site_id", UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), primary_key=True),
    Column("employee_id", UUID(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("site_id", "employee_id", name="uq_site_employee"),
)


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(50), default="worker", index=True)  # admin|supervisor|worker|engineer|employee
    status: Mapped[str] = mapped_column(String(20), default="Active")  # Active|Inactive
    profile_image: Mapped[Optional[str]] = mapped_column(String(1000))
    # Credential is a tagged pair: the scheme decides how password_hash is verified
    password_scheme: Mapped[str] = mapped_column(String(30), default="pbkdf2_sha256")  # pbkdf2_sha256|bcrypt|plaintext
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    tasks = relationship("Task", secondary=task_assignments, back_populates="assignees")
    sites = relationship("Site", secondary=site_assignments, back_populates="employees")


class Site(Base):
    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(500))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    client_email: Mapped[Optional[str]] = mapped_column(String(255))
    client_phone: Mapped[Optional[str]] = mapped_column(String(50))
    client_company: Mapped[Optional[str]] = mapped_column(String(255))
    budget: Mapped[Optional[float]] = mapped_column(Numeric(14, 2), default=0)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    duration: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)  # active|on_hold|completed
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    phases = relationship(
        "Phase",
        back_populates="site",
        cascade="all, delete",
        order_by="Phase.order_num",
    )
    tasks = relationship("Task", back_populates="site", cascade="all, delete")
    employees = relationship("Employee", secondary=site_assignments, back_populates="sites")


class Phase(Base):
    """A stage of a site. Holds both the explicit phase-level progress and the task-derived one."""
    __tablename__ = "phases"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    order_num: Mapped[int] = mapped_column(Integer, default=1)
    assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL"), index=True
    )
    status: Mapped[str] = mapped_column(String(30), default="not_started", index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)  # explicit, driven by phase-level updates
    derived_progress: Mapped[int] = mapped_column(Integer, default=0)  # completed tasks / all tasks
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    budget: Mapped[Optional[float]] = mapped_column(Numeric(14, 2))
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    site = relationship("Site", back_populates="phases")
    assigned_to = relationship("Employee", foreign_keys=[assigned_to_id])
    tasks = relationship(
        "Task",
        back_populates="phase",
        cascade="all, delete",
        order_by="Task.created_at",
    )
    todos = relationship("Todo", back_populates="phase", cascade="all, delete")
    updates = relationship("ProgressUpdate", back_populates="phase", cascade="all, delete")
    messages = relationship("ChatMessage", back_populates="phase", cascade="all, delete")

    __table_args__ = (Index("idx_phases_site_order", "site_id", "order_num"),)


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phase_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="not_started", index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    amount: Mapped[Optional[float]] = mapped_column(Numeric(14, 2))
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    due_date: Mapped[Optional[date]] = mapped_column(Date, index=True)
    submitted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL")
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL")
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    site = relationship("Site", back_populates="tasks")
    phase = relationship("Phase", back_populates="tasks")
    assignees = relationship("Employee", secondary=task_assignments, back_populates="tasks")
    todos = relationship("Todo", back_populates="task", cascade="all, delete")
    updates = relationship("ProgressUpdate", back_populates="task", cascade="all, delete")
    messages = relationship("ChatMessage", back_populates="task", cascade="all, delete")


class ProgressUpdate(Base):
    """Append-only progress event for a task or a phase. Integer id keeps insertion order."""
    __tablename__ = "progress_updates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(10), nullable=False)  # task|phase
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), index=True
    )
    phase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="CASCADE"), index=True
    )
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL")
    )
    previous_progress: Mapped[int] = mapped_column(Integer, nullable=False)
    new_progress: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000))
    audio_url: Mapped[Optional[str]] = mapped_column(String(1000))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="updates")
    phase = relationship("Phase", back_populates="updates")
    author = relationship("Employee")


class Todo(Base):
    __tablename__ = "todos"

    id: Mapped[uuid.UUID] = uuid_pk()
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), index=True
    )
    phase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="CASCADE"), index=True
    )
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL")
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="todos")
    phase = relationship("Phase", back_populates="todos")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), index=True
    )
    phase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="CASCADE"), index=True
    )
    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL"), index=True
    )
    type: Mapped[str] = mapped_column(String(20), default="text")  # text|image|audio|document|system
    content: Mapped[Optional[str]] = mapped_column(Text)
    media_url: Mapped[Optional[str]] = mapped_column(String(1000))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    task = relationship("Task", back_populates="messages")
    phase = relationship("Phase", back_populates="messages")
    sender = relationship("Employee")


class Notification(Base):
    """In-app notification for one employee; only is_read changes after creation."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), index=True
    )
    phase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="CASCADE")
    )
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE")
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)  # TASK_UPDATE|CHAT_UPDATE|STAGE_COMPLETED|ASSIGNMENT
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_employee_read", "employee_id", "is_read"),
        Index("idx_notifications_created", "created_at"),
    )


class PhaseTemplate(Base):
    """Master list of phase/task names used to seed a new site."""
    __tablename__ = "phase_templates"

    id: Mapped[uuid.UUID] = uuid_pk()
    phase_name: Mapped[str] = mapped_column(String(255), nullable=False)
    task_name: Mapped[str] = mapped_column(String(255), nullable=False)
    order_num: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    __table_args__ = (UniqueConstraint("phase_name", "task_name", name="uq_phase_template"),)
