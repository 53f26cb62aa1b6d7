from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    JSON,
    Text,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


ROLES = ("admin", "regional", "store", "maintenance", "staff")
JOB_FLAGS = ("normal", "urgent", "long_standing")
JOB_CATEGORIES = ("electrical", "plumbing", "building", "other")
JOB_STATUSES = ("pending", "in_progress", "completed")


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    store_code: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    joblogs = relationship("JobLog", back_populates="store")
    users = relationship("User", back_populates="store")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="staff", index=True)  # admin|regional|store|maintenance|staff
    store_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("stores.id", ondelete="SET NULL"), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    store = relationship("Store", back_populates="users")

    @property
    def display_name(self) -> str:
        return self.name or self.username


class JobLog(Base):
    __tablename__ = "joblogs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(20), default="other")  # electrical|plumbing|building|other
    flag: Mapped[str] = mapped_column(String(20), default="normal", index=True)  # normal|urgent|long_standing
    logged_by: Mapped[Optional[str]] = mapped_column(String(255))
    # Kept as text: legacy rows may hold values that do not parse
    log_date: Mapped[Optional[str]] = mapped_column(String(10), index=True)  # YYYY-MM-DD
    log_time: Mapped[Optional[str]] = mapped_column(String(8))  # HH:MM
    attachments: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|in_progress|completed
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)

    store = relationship("Store", back_populates="joblogs")
    comments = relationship(
        "JobLogComment",
        back_populates="joblog",
        order_by="JobLogComment.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_joblogs_store_date", "store_id", "log_date"),
    )


class JobLogComment(Base):
    __tablename__ = "joblog_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    joblog_id: Mapped[int] = mapped_column(Integer, ForeignKey("joblogs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    author_name: Mapped[Optional[str]] = mapped_column(String(255))
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    mentioned_users: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    joblog = relationship("JobLog", back_populates="comments")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)  # joblog_mention
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # joblog|comment
    entity_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|RESCHEDULE|UNSCHEDULE|DELETE|COMMENT
    actor_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))
