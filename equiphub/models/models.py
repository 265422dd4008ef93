from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Table,
    Integer,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def int_pk() -> Mapped[int]:
    return mapped_column(Integer, primary_key=True, autoincrement=True)


# Association table for many-to-many User<->Role
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    permissions: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)

    users = relationship("User", secondary=user_roles, back_populates="roles")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = int_pk()
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    permissions_override: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    roles = relationship("Role", secondary=user_roles, back_populates="users", lazy="selectin")


# =====================
# Projects
# =====================

class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default="in_progress", index=True)  # in_progress|completed|on_hold|cancelled
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")


class ProjectMember(Base):
    __tablename__ = "project_members"

    id: Mapped[int] = int_pk()
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), default="member")  # manager|member
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    project = relationship("Project", back_populates="members")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )


# =====================
# Equipment domain
# =====================

class EquipmentType(Base):
    __tablename__ = "equipment_types"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)


class Equipment(Base):
    """Equipment items. Assignments are looked up by equipment_id, never held here."""
    __tablename__ = "equipment"

    id: Mapped[int] = int_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    type_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("equipment_types.id", ondelete="SET NULL"))
    status: Mapped[str] = mapped_column(String(50), default="operational", index=True)  # operational|maintenance|out_of_service|repair
    location: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    equipment_type = relationship("EquipmentType")


class ProjectEquipment(Base):
    """Assignment of an equipment item to a project. Active while actual_return_at is null."""
    __tablename__ = "project_equipment"

    id: Mapped[int] = int_pk()
    equipment_id: Mapped[int] = mapped_column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    expected_return_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actual_return_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    assigned_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="assigned", index=True)  # assigned|in_use|returned
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_shared: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    authorization_code: Mapped[Optional[str]] = mapped_column(String(255))  # only set when is_shared
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    @property
    def is_active(self) -> bool:
        return self.actual_return_at is None

    __table_args__ = (
        Index("idx_project_equipment_equipment_active", "equipment_id", "actual_return_at"),
        Index("idx_project_equipment_project", "project_id", "actual_return_at"),
        # At most one active exclusive assignment per equipment item
        Index(
            "uq_project_equipment_active_exclusive",
            "equipment_id",
            unique=True,
            sqlite_where=text("actual_return_at IS NULL AND is_shared = 0"),
            postgresql_where=text("actual_return_at IS NULL AND is_shared = false"),
        ),
    )


class EquipmentLog(Base):
    """Equipment assignment activity log"""
    __tablename__ = "equipment_logs"

    id: Mapped[int] = int_pk()
    equipment_id: Mapped[int] = mapped_column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    log_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # assignment|return|update
    log_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    project_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("projects.id", ondelete="SET NULL"))
    assignment_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("project_equipment.id", ondelete="SET NULL"))
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_equipment_log_equipment_date", "equipment_id", "log_date"),
    )
