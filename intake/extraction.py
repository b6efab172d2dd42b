"""Multimodal extraction of inventory item fields from a transcript and photos"""
import base64
import binascii
import json
import logging
from typing import Any, Dict, List, Optional

from google.genai import types
from pydantic import ValidationError

from . import config
from .ai_client import generate_text
from .errors import ErrorCategory, ExtractionError
from .images import sniff_mime
from .models import AIContext, ExtractedFormData


logger = logging.getLogger(__name__)


EXTRACTION_PROMPT = """
You are an inventory data extraction assistant for a homelab inventory management system.
Given a voice transcription describing an item, and optionally photos of it, extract structured
data to fill out an inventory form.

IMPORTANT RULES:
1. For category_id and vendor_id, ONLY use IDs from the provided lists if there's a confident match
2. If a category is mentioned or evident but doesn't match existing ones closely, leave category_id empty and put the suggested name in category_name_suggestion
3. If a vendor is mentioned but doesn't match existing ones closely, leave vendor_id empty and put the suggested name in vendor_name_suggestion
4. ALWAYS provide name, quantity, purchase_price and purchase_url. Infer them from the photos, the description or typical retail listings when they are not said outright
5. For tracking_mode: use "individual" for unique items (electronics, devices, tools with serial numbers) and "quantity" for consumables, bulk items, or multiples
6. Extract specifications as key-value pairs from any technical details mentioned or visible (e.g., "RAM": "8GB", "Voltage": "5V")
7. Generate relevant tags as lowercase strings (e.g., ["raspberry-pi", "sbc", "arm"]); prefer existing tags when they fit
8. For condition: use "new" if explicitly stated as new/unopened, "working" as default for used items, or other values if damage/issues are mentioned
9. If quantity is mentioned (like "I have 5 of these"), extract it. Otherwise default to 1
10. purchase_price is just the number; determine purchase_currency from context
11. Format dates as YYYY-MM-DD

The form has these fields:
- name (required): The primary name/title of the item
- description: A brief description
- tracking_mode: "quantity" or "individual"
- quantity (required): Number of items
- min_quantity: Low stock alert threshold
- unit: Unit of measure (pcs, meters, etc.)
- serial_number: For individual items
- asset_tag: Internal asset ID
- condition: "new", "working", "needs_repair", "broken", or "retired"
- purchase_date: When purchased (YYYY-MM-DD)
- warranty_expiry: Warranty end date (YYYY-MM-DD)
- location: Physical storage location
- category_id: ID of existing category (or leave empty)
- category_name_suggestion: Suggested new category name
- vendor_id: ID of existing vendor (or leave empty)
- vendor_name_suggestion: Suggested vendor/store name
- specifications: Object of technical specs {"key": "value"}
- tags: Array of relevant tags
- purchase_price (required): Cost as a number
- purchase_currency: "USD", "EUR", "GBP", "INR", "CAD", "AUD"
- purchase_url (required): Where to buy
- datasheet_url: Link to documentation
- notes: Additional notes

Output ONLY a valid JSON object with the fields you can fill. Do not include markdown formatting.
"""


def build_user_message(text: str, context: AIContext, image_count: int) -> str:
    categories = [c.model_dump() for c in context.categories]
    vendors = [v.model_dump() for v in context.vendors]

    parts = [
        f'Voice transcription: "{text}"',
        f"Existing categories to match against:\n{json.dumps(categories, indent=2)}",
        f"Existing vendors to match against:\n{json.dumps(vendors, indent=2)}",
    ]
    if context.existing_tags:
        parts.append(f"Existing tags:\n{json.dumps(context.existing_tags)}")
    if image_count:
        parts.append(f"{image_count} photo(s) of the item are attached.")
    parts.append("Please extract the item information and return a JSON object with the extracted fields.")
    return "\n\n".join(parts)


def decode_images(images: List[str]) -> List[types.Part]:
    parts = []
    for index, encoded in enumerate(images):
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ExtractionError(
                f"Image {index + 1} is not valid base64",
                category=ErrorCategory.INPUT,
            ) from e
        parts.append(types.Part.from_bytes(data=data, mime_type=sniff_mime(data)))
    return parts


def parse_json_response(text: str) -> Dict[str, Any]:
    """Parse the JSON object in a model response, tolerating code fences"""
    if "```" in text:
        text = text.replace("```json", "").replace("```", "")

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace != -1:
        text = text[first_brace:last_brace + 1]

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExtractionError("Failed to parse AI response as JSON", category=ErrorCategory.PARSE) from e

    if not isinstance(parsed, dict):
        raise ExtractionError("Failed to parse AI response as JSON", category=ErrorCategory.PARSE)
    return parsed


STRING_FIELDS = frozenset(
    name for name, field in ExtractedFormData.model_fields.items()
    if field.annotation == Optional[str]
)


def _as_text(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _coerce(key: str, value: Any) -> Any:
    """Loosen common model slips: numbers where text is expected, non-string specs and tags"""
    if key == "specifications" and isinstance(value, dict):
        return {str(k): _as_text(v) for k, v in value.items() if v is not None}
    if key == "tags" and isinstance(value, list):
        return [_as_text(tag) for tag in value if tag is not None]
    if key in STRING_FIELDS and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def to_form_data(raw: Dict[str, Any]) -> ExtractedFormData:
    """Build the record field by field.

    Anything that parsed as JSON is accepted; a field that still does not
    fit the form after coercion is dropped with a warning, never the record.
    """
    fields = {}
    for key, value in raw.items():
        if key not in ExtractedFormData.model_fields or value is None:
            continue
        candidate = _coerce(key, value)
        try:
            ExtractedFormData.model_validate({key: candidate})
        except ValidationError:
            logger.warning("Dropping %s=%r from AI response, it does not fit the item form", key, value)
            continue
        fields[key] = candidate
    return ExtractedFormData.model_validate(fields)


async def extract(
    text: str,
    images: Optional[List[str]] = None,
    context: Optional[AIContext] = None,
    timeout: Optional[float] = None,
) -> ExtractedFormData:
    """Turn a transcript and base64 photos into candidate item fields"""
    if not text or not text.strip():
        raise ExtractionError("Transcription text is required", category=ErrorCategory.INPUT)

    images = images or []
    context = context or AIContext()
    image_parts = decode_images(images)

    response_text = await generate_text(
        model=config.EXTRACTION_MODEL,
        contents=[build_user_message(text, context, len(image_parts)), *image_parts],
        error_cls=ExtractionError,
        fallback="Data extraction failed",
        generation_config=types.GenerateContentConfig(
            system_instruction=EXTRACTION_PROMPT,
            temperature=0.1,
            response_mime_type="application/json",
        ),
        timeout=timeout,
    )

    if not response_text.strip():
        raise ExtractionError("No content in AI response", category=ErrorCategory.PARSE)

    data = to_form_data(parse_json_response(response_text))
    logger.info("Extracted %d fields from %d characters and %d images",
                len(data.present()), len(text), len(images))
    return data
