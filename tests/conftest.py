"""Pytest configuration and fixtures"""
import io
import pytest
from PIL import Image

from intake.ai_client import reset_clients
from intake.database import init_database
from intake.images import ImageUpload, PreviewStore
from intake.models import ExtractedFormData
from intake.recording import AudioClip


@pytest.fixture(autouse=True)
def fresh_ai_client():
    """Each test builds its own (usually mocked) Gemini client"""
    reset_clients()
    yield
    reset_clients()


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing"""
    conn = init_database(tmp_path / "test_inventory.duckdb")
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def previews(tmp_path):
    """Preview store writing into a temporary directory"""
    return PreviewStore(tmp_path / "previews")


def make_png(color=(200, 30, 30), size=(32, 24)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(color=(30, 30, 200), size=(40, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def sample_png_bytes():
    return make_png()


@pytest.fixture
def sample_jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def image_uploads():
    """Three distinct image uploads"""
    return [
        ImageUpload("front.png", make_png((255, 0, 0))),
        ImageUpload("back.jpg", make_jpeg((0, 255, 0))),
        ImageUpload("label.png", make_png((0, 0, 255))),
    ]


@pytest.fixture
def audio_clip():
    return AudioClip(data=b"\x1aE\xdf\xa3fake-webm", mime_type="audio/webm;codecs=opus", duration=4.0)


class StubTranscriber:
    """Returns queued transcripts (or raises queued exceptions) in order"""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, audio: bytes, mime_type: str) -> str:
        self.calls.append((audio, mime_type))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class StubExtractor:
    """Returns queued extraction dicts (or raises queued exceptions) in order"""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, text, images, context):
        self.calls.append((text, list(images), context))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return ExtractedFormData(**result)


@pytest.fixture
def sample_extraction_data():
    """Complete extraction as the AI would return it"""
    return {
        "name": "Raspberry Pi 4 Model B",
        "description": "Single board computer, 8GB RAM",
        "tracking_mode": "individual",
        "quantity": 1,
        "serial_number": "RPI4-0042",
        "condition": "new",
        "purchase_date": "2024-03-15",
        "location": "Shelf B2",
        "category_name_suggestion": "Single Board Computers",
        "vendor_name_suggestion": "PiShop",
        "specifications": {"RAM": "8GB", "Voltage": "5V"},
        "tags": ["raspberry-pi", "sbc", "arm"],
        "purchase_price": 75.0,
        "purchase_currency": "USD",
        "purchase_url": "https://pishop.example/rpi4",
    }


@pytest.fixture
def stub_transcriber():
    """Factory for ``StubTranscriber``"""
    return StubTranscriber


@pytest.fixture
def stub_extractor():
    """Factory for ``StubExtractor``"""
    return StubExtractor
