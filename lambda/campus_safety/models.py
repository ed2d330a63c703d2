from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

IncidentStatus = Literal["pending", "confirmed", "resolved"]
AgentStatus = Literal["active", "scanning", "alert"]
LatLng = Tuple[float, float]


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        # Lower rank is more severe
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class Incident(CamelModel):
    id: str = Field(description="Unique identifier for the incident")
    type: str = Field(description="Short category label")
    description: str = Field(default="", description="Free-text narrative")
    timestamp: datetime = Field(description="When the incident was recorded")
    location: LatLng = Field(description="Latitude and longitude of the incident")
    location_name: str = Field(default="Unknown", description="Human-readable place label")
    severity: Severity
    analysis: Optional[str] = None
    is_verified_resource: Optional[bool] = Field(
        default=None, description="Reference point, not an alert"
    )
    uri: Optional[str] = None
    status: Optional[IncidentStatus] = None

    @field_validator("timestamp")
    @classmethod
    def utc_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


class EmergencyLog(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    message: str = Field(description="Transmitted SOS text")
    location: LatLng
    building: Optional[str] = None
    operator_details: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def utc_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


class SafetyStatus(CamelModel):
    score: float = Field(ge=0, le=100)
    summary: str
    recommendations: List[str] = Field(default_factory=list)
    reasoning_steps: List[str] = Field(default_factory=list)


class IncidentAnalysis(CamelModel):
    severity: Severity = Severity.LOW
    analysis: str = "Analyzing situation..."
    type: str = Field(default="General", description="Closest incident category")
    location_name: str = Field(default="Unknown", description="Place named in the report")


class GroundingLink(CamelModel):
    title: str = ""
    uri: str


class ChatReply(CamelModel):
    text: str
    links: List[GroundingLink] = Field(default_factory=list)


class AgentSpecialty(str, Enum):
    INCIDENTS = "INCIDENTS"
    LOCATIONS = "LOCATIONS"
    COMMUNICATIONS = "COMMUNICATIONS"


class Agent(CamelModel):
    id: str
    name: str
    objective: str
    specialty: AgentSpecialty = AgentSpecialty.INCIDENTS
    icon: str = "fa-shield-halved"
    status: AgentStatus = "active"
    last_insight: str = ""
    deploy_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Landmark(CamelModel):
    name: str
    coords: LatLng


# Request / response bodies

class UpdateStatus(CamelModel):
    incident_id: str
    status: IncidentStatus


class IncidentCreate(CamelModel):
    id: str = ""
    type: str = "General"
    description: str = ""
    timestamp: Optional[datetime] = None
    location: LatLng
    location_name: str = "Unknown"
    severity: Severity = Severity.LOW
    analysis: Optional[str] = None
    is_verified_resource: Optional[bool] = None
    uri: Optional[str] = None
    status: Optional[IncidentStatus] = None


class SafetySummaryRequest(CamelModel):
    location: LatLng
    hours: Optional[float] = Field(default=None, description="Time window; defaults to config")


class SafetySummaryResponse(CamelModel):
    status: SafetyStatus
    agent_status: AgentStatus
    agents: List[Agent] = Field(default_factory=list)
    incident_count: int
    stale: bool = False


class AnalyzeRequest(CamelModel):
    description: str


class ChatRequest(CamelModel):
    message: str
    location: LatLng
    directive: Optional[str] = None


class DraftRequest(CamelModel):
    location: LatLng
    extra_details: Optional[str] = None
    directive: Optional[str] = None
    selected_building: Optional[str] = None
    hours: Optional[float] = None


class DraftResponse(CamelModel):
    draft: str


class TransmitRequest(CamelModel):
    message: str
    location: LatLng
    building: Optional[str] = None
    operator_details: Optional[str] = None
