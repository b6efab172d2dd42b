"""Pydantic models for extracted item data and the AI endpoints"""
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator


class TrackingMode(str, Enum):
    QUANTITY = "quantity"
    INDIVIDUAL = "individual"


class ItemCondition(str, Enum):
    NEW = "new"
    WORKING = "working"
    NEEDS_REPAIR = "needs_repair"
    BROKEN = "broken"
    RETIRED = "retired"


class ExtractedFormData(BaseModel):
    """Candidate item fields. ``None`` means the field is not known yet."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    name: Optional[str] = None
    description: Optional[str] = None
    tracking_mode: Optional[TrackingMode] = None

    # Quantity tracking
    quantity: Optional[int] = None
    min_quantity: Optional[int] = None
    unit: Optional[str] = None

    # Individual tracking
    serial_number: Optional[str] = None
    asset_tag: Optional[str] = None
    condition: Optional[ItemCondition] = None
    purchase_date: Optional[str] = None  # YYYY-MM-DD
    warranty_expiry: Optional[str] = None  # YYYY-MM-DD

    location: Optional[str] = None
    category_id: Optional[str] = None
    category_name_suggestion: Optional[str] = None
    vendor_id: Optional[str] = None
    vendor_name_suggestion: Optional[str] = None

    specifications: Optional[Dict[str, str]] = None
    tags: Optional[List[str]] = None

    purchase_price: Optional[float] = None
    purchase_currency: Optional[str] = None
    purchase_url: Optional[str] = None
    datasheet_url: Optional[str] = None

    notes: Optional[str] = None

    def present(self) -> dict:
        """Fields holding a concrete value (not None, not empty string)"""
        return {
            key: value
            for key, value in self.model_dump().items()
            if value is not None and value != ""
        }


class CatalogRef(BaseModel):
    id: str
    name: str


class AIContext(BaseModel):
    categories: List[CatalogRef] = []
    vendors: List[CatalogRef] = []
    existing_tags: Optional[List[str]] = None


class ExtractionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    images: List[str] = []
    categories: List[CatalogRef] = []
    vendors: List[CatalogRef] = []
    existing_tags: Optional[List[str]] = Field(default=None, alias="existingTags")

    def context(self) -> AIContext:
        return AIContext(
            categories=self.categories,
            vendors=self.vendors,
            existing_tags=self.existing_tags,
        )


class TranscriptionResponse(BaseModel):
    text: str


class ManualInputs(BaseModel):
    """User-typed values for required fields still missing after extraction"""

    name: Optional[str] = None
    quantity: Optional[int] = None
    purchase_price: Optional[float] = None
    purchase_url: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class RecordingStart(BaseModel):
    """Recorder formats the client can produce, best first. Omitted means the default."""

    supported_types: Optional[List[str]] = None
