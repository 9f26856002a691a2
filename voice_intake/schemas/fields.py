"""
Data models for canonical booking fields and their extracted values.
"""

from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


class CanonicalField(str, Enum):
    """The fixed set of slots a booking record can hold."""
    TEST = "test"
    REASONS = "reasons"
    PREFERRED_LOCATION = "preferredLocation"
    PREFERRED_DATE = "preferredDate"
    PREFERRED_TIME = "preferredTime"
    FIRST_NAME = "firstName"
    LAST_NAME = "lastName"
    DATE_OF_BIRTH = "dateOfBirth"
    SEX = "sex"
    ADDRESS_STREET = "addressStreet"
    ADDRESS_CITY = "addressCity"
    ADDRESS_STATE = "addressState"
    ADDRESS_ZIP = "addressZip"
    EMAIL = "email"
    PHONE = "phone"
    INSURANCE_PROVIDER = "insuranceProvider"
    INSURANCE_ID = "insuranceId"


class FieldSource(str, Enum):
    """Who produced a field value. USER always outranks the automated sources."""
    REALTIME = "realtime"
    REFINEMENT = "refinement"
    USER = "user"


class NormalizedValue(NamedTuple):
    """Output of the field normalizer."""
    value: Optional[str]
    confidence: float


class FieldValue(BaseModel):
    """Current best-known value of one canonical field."""
    model_config = ConfigDict(frozen=True)

    value: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: FieldSource = FieldSource.REALTIME

    @property
    def is_empty(self) -> bool:
        return self.value is None or not self.value.strip()

    @property
    def is_user_edit(self) -> bool:
        return self.source == FieldSource.USER


# One entry per canonical field at most.
FieldMap = dict[CanonicalField, FieldValue]
