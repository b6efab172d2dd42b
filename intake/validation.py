"""Required-field check for extracted item data"""
from dataclasses import dataclass
from typing import Any, Mapping, Tuple, Union

from .models import ExtractedFormData


# Order here is the order fields are offered to the user for manual entry
REQUIRED_FIELDS: Tuple[str, ...] = ("name", "quantity", "purchase_price", "purchase_url")

FIELD_LABELS = {
    "name": "Name",
    "quantity": "Quantity",
    "purchase_price": "Purchase price",
    "purchase_url": "Purchase URL",
}


@dataclass(frozen=True)
class ExtractionValidation:
    missing_required: Tuple[str, ...]
    missing_labels: Tuple[str, ...]

    @property
    def is_complete(self) -> bool:
        return len(self.missing_required) == 0

    def as_dict(self) -> dict:
        return {
            "missing_required": list(self.missing_required),
            "missing_labels": list(self.missing_labels),
            "is_complete": self.is_complete,
        }


def is_blank(value: Any) -> bool:
    """Absent, None and empty string are blank. Zero is a value."""
    return value is None or (isinstance(value, str) and value == "")


def validate(data: Union[ExtractedFormData, Mapping[str, Any], None]) -> ExtractionValidation:
    if data is None:
        values: Mapping[str, Any] = {}
    elif isinstance(data, ExtractedFormData):
        values = data.model_dump()
    else:
        values = data

    missing = tuple(f for f in REQUIRED_FIELDS if is_blank(values.get(f)))
    return ExtractionValidation(
        missing_required=missing,
        missing_labels=tuple(FIELD_LABELS[f] for f in missing),
    )
