from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bsi_telemetry.db.base import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


ROLES = ("admin", "manager", "viewer")

ANALOG_CHANNELS = 16
DIGITAL_CHANNELS = 8
OUTPUT_CHANNELS = 8

ANALOG_COLUMNS = tuple(f"Analog{i}Value" for i in range(1, ANALOG_CHANNELS + 1))
DIGITAL_COLUMNS = tuple(f"Digital{i}Value" for i in range(1, DIGITAL_CHANNELS + 1))
OUTPUT_COLUMNS = tuple(f"Output{i}Value" for i in range(1, OUTPUT_CHANNELS + 1))
VALUE_COLUMNS = ANALOG_COLUMNS + DIGITAL_COLUMNS + OUTPUT_COLUMNS


# -----------------
# Telemetry samples (written by the node gateway, read-only here)
# -----------------

node_status_table = Table(
    "node_status_table",
    Base.metadata,
    Column("NodeName", String(150), nullable=False, index=True),
    Column("NodeBaseStationName", String(150), nullable=False, index=True),
    Column("time", DateTime(timezone=True), nullable=False, index=True),
    *[Column(name, Float, nullable=True) for name in VALUE_COLUMNS],
    PrimaryKeyConstraint("NodeName", "NodeBaseStationName", "time", name="pk_node_status_table"),
)


class Sample(Base):
    """One periodic row of raw channel values for a node/base station pair."""

    __table__ = node_status_table


# -----------------
# Users / access
# -----------------


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(150), unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    password_hash: Mapped[str] = mapped_column(String(500))
    role: Mapped[str] = mapped_column(String(20), default="viewer", index=True)

    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    access_all_nodes: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    last_login: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    assignments: Mapped[List["NodeAssignment"]] = relationship(
        "NodeAssignment",
        foreign_keys="NodeAssignment.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("role IN ('admin','manager','viewer')", name="ck_users_role"),
    )


class NodeAssignment(Base):
    __tablename__ = "user_node_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    node_name: Mapped[str] = mapped_column(String(150), index=True)
    # NULL grants every base station under node_name.
    base_station_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)

    assigned_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship("User", foreign_keys=[user_id], back_populates="assignments")
    assigner: Mapped[Optional[User]] = relationship("User", foreign_keys=[assigned_by], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "node_name", "base_station_name", name="uq_user_node_assignment"),
    )


# -----------------
# Metric mappings
# -----------------


class MetricMapping(Base):
    __tablename__ = "metric_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    node_name: Mapped[str] = mapped_column(String(150), index=True)
    base_station_name: Mapped[str] = mapped_column(String(150), index=True)
    metric_name: Mapped[str] = mapped_column(String(100))
    column_name: Mapped[str] = mapped_column(String(100))
    unit: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    creator: Mapped[Optional[User]] = relationship("User", lazy="selectin")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "node_name": self.node_name,
            "base_station_name": self.base_station_name,
            "metric_name": self.metric_name,
            "column_name": self.column_name,
            "unit": self.unit,
            "display_order": self.display_order,
            "is_active": bool(self.is_active),
        }


class MetricMappingAudit(Base):
    __tablename__ = "metric_mapping_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mapping_id: Mapped[int] = mapped_column(ForeignKey("metric_mappings.id", ondelete="CASCADE"), index=True)

    node_name: Mapped[str] = mapped_column(String(150))
    base_station_name: Mapped[str] = mapped_column(String(150))
    metric_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    column_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    action: Mapped[str] = mapped_column(String(20), index=True)  # CREATE|UPDATE|DELETE
    changed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    old_values: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_values: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    changed_by_user: Mapped[Optional[User]] = relationship("User", lazy="selectin")

    __table_args__ = (
        CheckConstraint("action IN ('CREATE','UPDATE','DELETE')", name="ck_metric_mapping_audit_action"),
    )


# -----------------
# Activity / server logs
# -----------------


class ActivityLog(Base):
    __tablename__ = "user_activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(100), index=True)
    resource: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    details: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    user: Mapped[Optional[User]] = relationship("User", lazy="selectin")


class ServerLog(Base):
    __tablename__ = "server_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    level: Mapped[str] = mapped_column(String(20), index=True)
    logger: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    message: Mapped[str] = mapped_column(Text)
    meta: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
