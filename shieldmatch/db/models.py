"""Database models for ShieldMatch"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from shieldmatch.db.database import Base


class TimestampMixin:
    """Mixin for adding timestamp columns to models"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class Peril(str, enum.Enum):
    """Category of disaster damage"""
    FLOOD = "flood"
    WATER = "water"
    WIND = "wind"
    FIRE = "fire"
    MOLD = "mold"
    OTHER = "other"


class ProjectStatus(str, enum.Enum):
    """Claim lifecycle"""
    SUBMITTED = "submitted"
    MATCHED = "matched"
    SCHEDULED = "scheduled"
    ONSITE = "onsite"
    PACKET_SENT = "packet_sent"
    PAID = "paid"
    COMPLETED = "completed"


class ContractorCapacity(str, enum.Enum):
    """Whether a contractor accepts new work"""
    ACTIVE = "active"
    PAUSED = "paused"


class MatchRequestStatus(str, enum.Enum):
    """State of an invitation sent to a contractor"""
    SENT = "sent"
    ACCEPTED = "accepted"
    DECLINED = "declined"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Project(Base, TimestampMixin):
    """A damage claim filed by a homeowner or business"""
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Location
    address: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    zip: Mapped[str] = mapped_column(String(20), nullable=False)

    # Incident
    peril: Mapped[Peril] = mapped_column(
        SQLEnum(Peril, values_callable=_enum_values, native_enum=False),
        nullable=False
    )
    incident_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Inspection preferences
    preferred_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    preferred_window: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    # Homeowner contact
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    contact_phone: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[ProjectStatus] = mapped_column(
        SQLEnum(ProjectStatus, values_callable=_enum_values, native_enum=False),
        default=ProjectStatus.SUBMITTED,
        nullable=False
    )
    assigned_contractor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("contractors.id", ondelete="SET NULL"),
        nullable=True
    )

    __table_args__ = (
        Index("idx_project_status", "status"),
        Index("idx_project_zip", "zip"),
    )


class Contractor(Base, TimestampMixin):
    """A service provider that can be invited to claims"""
    __tablename__ = "contractors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    service_areas: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    trades: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    capacity: Mapped[ContractorCapacity] = mapped_column(
        SQLEnum(ContractorCapacity, values_callable=_enum_values, native_enum=False),
        default=ContractorCapacity.ACTIVE,
        nullable=False
    )
    calendly_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_contractor_capacity", "capacity"),
    )


class MatchRequest(Base, TimestampMixin):
    """Invitation record linking a project to a contractor"""
    __tablename__ = "match_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("contractors.id", ondelete="CASCADE"),
        nullable=False
    )
    status: Mapped[MatchRequestStatus] = mapped_column(
        SQLEnum(MatchRequestStatus, values_callable=_enum_values, native_enum=False),
        default=MatchRequestStatus.SENT,
        nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("project_id", "contractor_id", name="uq_match_request_project_contractor"),
        Index("idx_match_request_project", "project_id"),
    )
