"""
Data models for extraction session snapshots.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from voice_intake.schemas.fields import CanonicalField, FieldSource


class SessionState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    FINALIZING = "finalizing"


class FieldSnapshot(BaseModel):
    """Read-only view of one field as shown to the booking UI."""
    model_config = ConfigDict(frozen=True)

    value: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    source: FieldSource
    needs_review: bool = False


class SessionSnapshot(BaseModel):
    """Copy of the whole field map at one point in time."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    state: SessionState
    fields: dict[CanonicalField, FieldSnapshot] = Field(default_factory=dict)
    overall_confidence: float = 0.0
    requires_manual_review: bool = False

    def as_values(self) -> dict[str, Optional[str]]:
        """Plain ``{fieldName: value}`` mapping for handing off to a booking API."""
        return {field.value: snap.value for field, snap in self.fields.items()}


class FinalizationResult(BaseModel):
    """Reconciled snapshot after the refinement merge."""
    snapshot: SessionSnapshot
    fields_needing_review: list[CanonicalField] = Field(default_factory=list)
