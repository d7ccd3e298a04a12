"""
Pydantic Schemas for Claims.
Source: https://docs.pydantic.dev/latest/concepts/models/
"""

from datetime import datetime
from pathlib import PurePath
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from medclaim.core.enums import ChangeEventType, ClaimStatus


# =============================================================================
# Claim Schemas
# =============================================================================


class ClaimBase(BaseModel):
    """Fields entered by the user on the New Claim form."""

    patient_name: str = Field(..., description="Patient full name")
    diagnosis: str = Field(..., description="Diagnosis description")
    treatment: str = Field(..., description="Treatment provided")
    cost: float = Field(..., ge=0, description="Treatment cost in local currency")


class ClaimCreate(ClaimBase):
    """Schema for inserting a claim. id, status and created_at are backend-assigned."""

    def to_row(self, document_url: Optional[str] = None) -> dict[str, Any]:
        """Build the row sent to the claims table."""
        return {
            "patient_name": self.patient_name,
            "diagnosis": self.diagnosis,
            "treatment": self.treatment,
            "cost": self.cost,
            "document_url": document_url,
        }


class Claim(ClaimBase):
    """A claim row as returned by the backend."""

    model_config = ConfigDict(from_attributes=True, frozen=True, extra="ignore")

    id: str = Field(..., description="Provider-assigned identifier")
    status: ClaimStatus = Field(default=ClaimStatus.PENDING, description="Review status")
    document_url: Optional[str] = Field(None, description="Storage path of the supporting document")
    created_at: datetime = Field(..., description="Insert timestamp assigned by the backend")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Accept integer or UUID primary keys."""
        return str(v)

    @property
    def has_document(self) -> bool:
        return bool(self.document_url)


# =============================================================================
# Documents
# =============================================================================


class DocumentUpload(BaseModel):
    """A locally selected file waiting to be uploaded with a claim."""

    filename: str = Field(..., min_length=1)
    content: bytes
    content_type: str = Field(default="application/octet-stream")

    @property
    def extension(self) -> str:
        """Lower-case extension without the dot, or an empty string."""
        return PurePath(self.filename).suffix.lstrip(".").lower()

    @property
    def size(self) -> int:
        return len(self.content)


# =============================================================================
# Change Feed
# =============================================================================


class ChangeEvent(BaseModel):
    """A row-level change delivered by the realtime channel."""

    event_type: ChangeEventType
    table: str
    record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None
    received_at: datetime = Field(default_factory=datetime.now)
