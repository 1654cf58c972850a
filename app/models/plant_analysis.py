import base64
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Overall health verdict for an analyzed plant"""
    HEALTHY = "Healthy"
    NEEDS_ATTENTION = "Needs attention"
    UNHEALTHY = "Unhealthy"


class Severity(str, Enum):
    """Severity of a single health issue"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ImageData(BaseModel):
    """An image in transit through the pipeline; never persisted on its own."""
    data: bytes = Field(..., description="Encoded image bytes")
    mime_type: str = Field("image/jpeg", description="MIME type of the encoded bytes")
    width: int = Field(0, description="Width in pixels, 0 if unknown")
    height: int = Field(0, description="Height in pixels, 0 if unknown")

    def to_data_url(self) -> str:
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"


class Identification(BaseModel):
    model_config = ConfigDict(frozen=True)

    common_name: str = Field(..., description="Common name of the plant")
    scientific_name: str = Field(..., description="Genus and species")
    confidence: float = Field(0.0, ge=0.0, le=100.0, description="Confidence of the identification (0-100)")
    description: str = Field(..., description="Characteristics and origin of the plant")
    tags: List[str] = Field(default_factory=list, description="Unordered descriptive tags")


class HealthIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    severity: Severity = Severity.MEDIUM
    solution: Optional[str] = None


class HealthAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: HealthStatus = Field(..., description="Overall health status of the plant")
    summary: str = Field(..., description="Summary of the plant's condition")
    issues: List[HealthIssue] = Field(default_factory=list, description="Detected issues, most relevant first")


class CareRecommendation(BaseModel):
    """Care guide for one plant; every field is always filled."""
    model_config = ConfigDict(frozen=True)

    watering: str
    light: str
    soil: str
    temperature: str
    humidity: str
    additional_tips: str
    summary: str
    home_remedies: str
    cultural_notes: str


class AnalysisResult(BaseModel):
    """A complete analysis record as returned to callers and kept in the history."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    plant_id: Optional[str] = Field(None, description="Plant catalog entry this analysis belongs to")
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    image_url: str = Field(..., description="Storage-compressed image as a data URL")
    identification: Identification
    health: HealthAssessment
    care: CareRecommendation


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class ChatMessage(BaseModel):
    role: ChatRole
    text: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    reply: str
