"""Tests for extraction module"""
import base64
import json
import pytest
from unittest.mock import AsyncMock, Mock, patch
from google.genai import errors

from intake.errors import AINotConfiguredError, ErrorCategory, ExtractionError
from intake.extraction import (
    build_user_message,
    decode_images,
    extract,
    parse_json_response,
    to_form_data,
)
from intake.models import AIContext, CatalogRef


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")


def _mock_client(text=None, side_effect=None):
    mock_client = Mock()
    mock_response = Mock()
    mock_response.text = text
    mock_client.aio.models.generate_content = AsyncMock(return_value=mock_response, side_effect=side_effect)
    return mock_client


def test_parse_json_response_clean():
    """Test parsing clean JSON response"""
    result = parse_json_response('{"name": "Arduino Uno", "quantity": 3}')

    assert result == {"name": "Arduino Uno", "quantity": 3}


def test_parse_json_response_with_markdown():
    """Test parsing JSON wrapped in markdown code blocks"""
    json_text = '```json\n{"name": "Arduino Uno", "purchase_price": 24.99}\n```'
    result = parse_json_response(json_text)

    assert result["name"] == "Arduino Uno"
    assert result["purchase_price"] == 24.99


def test_parse_json_response_with_extra_text():
    """Test parsing JSON with surrounding prose"""
    json_text = 'Here is the item:\n{"name": "Widget"}\nHope that helps.'

    assert parse_json_response(json_text) == {"name": "Widget"}


@pytest.mark.parametrize("text", ["This is not JSON at all", "[1, 2, 3]", "{broken"])
def test_parse_json_response_invalid(text):
    with pytest.raises(ExtractionError) as exc_info:
        parse_json_response(text)

    assert exc_info.value.message == "Failed to parse AI response as JSON"
    assert exc_info.value.category is ErrorCategory.PARSE


def test_to_form_data_ignores_unknown_keys():
    data = to_form_data({"name": "Widget", "colour_guess": "blue"})

    assert data.name == "Widget"
    assert "colour_guess" not in data.model_dump()


def test_to_form_data_stringifies_spec_values_and_ids():
    data = to_form_data({
        "name": "Buck converter",
        "specifications": {"Voltage": 5, "Efficiency": 0.92, "Modes": ["cc", "cv"]},
        "category_id": 3,
        "serial_number": 123456,
        "tags": ["dc-dc", 12],
    })

    assert data.specifications == {"Voltage": "5", "Efficiency": "0.92", "Modes": '["cc", "cv"]'}
    assert data.category_id == "3"
    assert data.serial_number == "123456"
    assert data.tags == ["dc-dc", "12"]


@pytest.mark.parametrize("field,value", [
    ("quantity", 2.5),
    ("quantity", "a handful"),
    ("condition", "used"),
    ("tracking_mode", "bulk"),
    ("purchase_price", "cheap"),
])
def test_to_form_data_drops_only_the_bad_field(field, value):
    data = to_form_data({"name": "Widget", "purchase_url": "http://shop/w", field: value})

    assert data.name == "Widget"
    assert data.purchase_url == "http://shop/w"
    assert getattr(data, field) is None


def test_to_form_data_keeps_coercible_values():
    data = to_form_data({"quantity": 2.0, "purchase_price": "24.99", "condition": "new", "tags": None})

    assert data.quantity == 2
    assert data.purchase_price == 24.99
    assert data.condition == "new"
    assert data.tags is None


@pytest.mark.asyncio
async def test_extract_tolerates_loose_types(api_key):
    payload = {"name": "Buck converter", "quantity": 2.5, "condition": "used", "specifications": {"Voltage": 5}}

    with patch("intake.ai_client.genai.Client", return_value=_mock_client(json.dumps(payload))):
        data = await extract("a used buck converter, 5 volts")

    assert data.model_dump(exclude_none=True) == {
        "name": "Buck converter",
        "specifications": {"Voltage": "5"},
    }


def test_decode_images(sample_png_bytes, sample_jpeg_bytes):
    parts = decode_images([
        base64.b64encode(sample_png_bytes).decode(),
        base64.b64encode(sample_jpeg_bytes).decode(),
    ])

    assert [p.inline_data.mime_type for p in parts] == ["image/png", "image/jpeg"]
    assert parts[0].inline_data.data == sample_png_bytes


def test_decode_images_invalid_base64():
    with pytest.raises(ExtractionError) as exc_info:
        decode_images(["not base64!!"])

    assert exc_info.value.category is ErrorCategory.INPUT
    assert "Image 1" in exc_info.value.message


def test_build_user_message_includes_context():
    context = AIContext(
        categories=[CatalogRef(id="cat-1", name="Microcontrollers")],
        vendors=[CatalogRef(id="ven-1", name="Adafruit")],
        existing_tags=["arduino"],
    )

    message = build_user_message("Arduino Uno", context, image_count=2)

    assert 'Voice transcription: "Arduino Uno"' in message
    assert '"id": "cat-1"' in message
    assert "Adafruit" in message
    assert '["arduino"]' in message
    assert "2 photo(s)" in message


def test_build_user_message_without_tags_or_images():
    message = build_user_message("Widget", AIContext(), image_count=0)

    assert "Existing tags" not in message
    assert "photo" not in message


@pytest.mark.asyncio
async def test_extract_success(api_key, sample_png_bytes):
    """Test successful extraction with an image attached"""
    payload = {
        "name": "Arduino Uno",
        "quantity": 3,
        "purchase_price": 24.99,
        "purchase_url": "https://store.arduino.cc/uno",
        "tracking_mode": "quantity",
        "tags": ["arduino", "microcontroller"],
    }
    mock_client = _mock_client(json.dumps(payload))

    with patch("intake.ai_client.genai.Client", return_value=mock_client):
        data = await extract(
            "Arduino Uno, three of them, 24.99 each",
            images=[base64.b64encode(sample_png_bytes).decode()],
        )

    assert data.model_dump(exclude_none=True) == payload

    kwargs = mock_client.aio.models.generate_content.call_args.kwargs
    assert len(kwargs["contents"]) == 2
    assert kwargs["contents"][1].inline_data.mime_type == "image/png"
    assert kwargs["config"].response_mime_type == "application/json"


@pytest.mark.asyncio
async def test_extract_blank_text(api_key):
    with pytest.raises(ExtractionError) as exc_info:
        await extract("   ")

    assert exc_info.value.category is ErrorCategory.INPUT


@pytest.mark.asyncio
async def test_extract_empty_response(api_key):
    with patch("intake.ai_client.genai.Client", return_value=_mock_client("")):
        with pytest.raises(ExtractionError, match="No content in AI response"):
            await extract("Widget")


@pytest.mark.asyncio
async def test_extract_unparseable_response(api_key):
    with patch("intake.ai_client.genai.Client", return_value=_mock_client("I could not tell")):
        with pytest.raises(ExtractionError) as exc_info:
            await extract("Widget")

    assert exc_info.value.category is ErrorCategory.PARSE


@pytest.mark.asyncio
async def test_extract_rate_limited(api_key):
    error = errors.APIError(429, {"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}})

    with patch("intake.ai_client.genai.Client", return_value=_mock_client(side_effect=error)):
        with pytest.raises(ExtractionError) as exc_info:
            await extract("Widget")

    assert exc_info.value.status_code == 429
    assert exc_info.value.category is ErrorCategory.RATE_LIMIT
    assert "rate limit" in exc_info.value.message.lower()


@pytest.mark.asyncio
async def test_extract_not_configured(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(AINotConfiguredError):
        await extract("Widget")
