"""Schemas for contractor matching and the invitation workflow"""

import enum
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from shieldmatch.db.models import ContractorCapacity, MatchRequestStatus, Peril, ProjectStatus


class ProjectDetails(BaseModel):
    """Snapshot of a project as seen by scoring and notifications"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    address: str = ""
    city: str
    state: str
    zip: str
    peril: Peril
    incident_at: datetime
    preferred_date: datetime | None = None
    preferred_window: str = ""
    description: str = ""
    contact_name: str = ""
    contact_phone: str = ""
    contact_email: str | None = None
    status: ProjectStatus = ProjectStatus.SUBMITTED
    assigned_contractor_id: UUID | None = None


class ContractorProfile(BaseModel):
    """Contractor attributes used for scoring and outreach"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_name: str
    contact_name: str = ""
    email: str | None = None
    phone: str | None = None
    service_areas: list[str] = Field(default_factory=list)
    trades: list[str] = Field(default_factory=list)
    capacity: ContractorCapacity = ContractorCapacity.ACTIVE
    calendly_url: str | None = None

    @property
    def display_name(self) -> str:
        return self.contact_name or self.company_name


class ScoredContractor(BaseModel):
    """Contractor decorated with a match score and the reasons behind it"""
    contractor: ContractorProfile
    score: int
    reasons: list[str] = Field(default_factory=list)


class MatchRequestRecord(BaseModel):
    """Persisted (project, contractor) invitation"""
    model_config = ConfigDict(from_attributes=True)

    project_id: UUID
    contractor_id: UUID
    status: MatchRequestStatus = MatchRequestStatus.SENT
    responded_at: datetime | None = None


class WorkflowOutcome(str, enum.Enum):
    """Terminal state of a matching run"""
    SUCCEEDED = "succeeded"
    FAILED_NO_CONTRACTORS = "failed_no_contractors"
    FAILED_NO_MATCH = "failed_no_match"
    FAILED_PERSISTENCE = "failed_persistence"


class WorkflowResult(BaseModel):
    """Aggregate outcome of one matching run"""
    success: bool
    outcome: WorkflowOutcome
    matched_contractors: int = 0
    notifications_sent: int = 0
    emails_sent: int = 0
    sms_sent: int = 0
    match_requests: list[MatchRequestRecord] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class AcceptTokenPayload(BaseModel):
    """Claims carried inside an accept/decline link"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    project_id: str = Field(alias="projectId", min_length=1)
    contractor_id: str = Field(alias="contractorId", min_length=1)
    action: Literal["accept", "decline"]
    exp: int


class MatchingRunResponse(BaseModel):
    """API response for a triggered matching run"""
    project_id: UUID
    result: WorkflowResult
