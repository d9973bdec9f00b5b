"""SQLAlchemy models for the attendance store.

This module defines the database schema using SQLAlchemy ORM. Times are
naive local datetimes, matching what the terminals report.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class Branch(Base):
    """Represents a branch (site)."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    # Relationships
    devices: Mapped[list[Device]] = relationship("Device", back_populates="branch")


class Device(Base):
    """Represents an attendance terminal."""

    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    branch_id: Mapped[int] = mapped_column(Integer, ForeignKey("branches.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    ip: Mapped[str] = mapped_column(String(45), nullable=False)
    port: Mapped[int] = mapped_column(Integer, default=4370, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    connection_status: Mapped[str] = mapped_column(
        String(50), default="NotConnected", nullable=False
    )
    last_connection_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    modified_at: Mapped[datetime | None] = mapped_column(
        DateTime, onupdate=datetime.now, nullable=True
    )

    # Relationships
    branch: Mapped[Branch] = relationship("Branch", back_populates="devices")

    # Indexes
    __table_args__ = (Index("idx_devices_endpoint", "ip", "port", unique=True),)


class AttendanceLog(Base):
    """Represents a stored attendance punch."""

    __tablename__ = "attendance_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    biometric_user_id: Mapped[str] = mapped_column(String(50), nullable=False)
    attendance_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    device_id: Mapped[int] = mapped_column(Integer, ForeignKey("devices.id"), nullable=False)
    branch_id: Mapped[int] = mapped_column(Integer, ForeignKey("branches.id"), nullable=False)
    verify_method: Mapped[str] = mapped_column(String(50), nullable=False)
    attendance_type: Mapped[str] = mapped_column(String(50), nullable=False)
    work_code: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unique_hash: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    # Indexes
    __table_args__ = (
        Index("idx_attendance_device_time", "device_id", "attendance_time"),
        Index("idx_attendance_user", "biometric_user_id"),
    )


class SyncLog(Base):
    """Represents the audit record of one device sync attempt."""

    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(Integer, nullable=False)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_record_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duplicate_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    server_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    # Indexes
    __table_args__ = (Index("idx_sync_logs_device_status", "device_id", "status", "end_time"),)


class DeviceStatusSnapshot(Base):
    """Represents a device status reading taken during a sync."""

    __tablename__ = "device_statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(Integer, nullable=False)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False)
    status_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    serial_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    firmware_version: Mapped[str | None] = mapped_column(String(100), nullable=True)
    device_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    log_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    face_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    device_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Indexes
    __table_args__ = (Index("idx_device_statuses_time", "status_time"),)
