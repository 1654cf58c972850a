import io
import json
import sys
from pathlib import Path
from typing import Dict, List, Union

import pytest
from PIL import Image

# Add the project root directory to the Python path to allow importing app modules
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.models.plant_analysis import ImageData  # noqa: E402
from app.services.analyzer import PlantAnalyzerService  # noqa: E402
from app.services.gemini_client import GeminiClient  # noqa: E402
from app.services.image_preprocessor import ImagePreprocessor  # noqa: E402
from app.services.result_store import BoundedResultStore, MemoryBlobStore  # noqa: E402

PRIMARY = "primary-model"
FALLBACK = "fallback-model"

IDENTIFICATION_REPLY = json.dumps({
    "name": "Monstera Deliciosa",
    "scientificName": "Monstera deliciosa",
    "confidence": 95,
    "description": "A popular tropical houseplant with distinctive split leaves",
    "tags": ["tropical"],
})

HEALTH_REPLY = json.dumps({
    "status": "Needs attention",
    "summary": "Minor browning on two leaves.",
    "issues": [
        {
            "name": "Leaf browning",
            "description": "Brown, crispy leaf edges",
            "severity": "low",
            "solution": "Increase humidity",
        }
    ],
})

CARE_REPLY = json.dumps({
    "watering": "Water every 1-2 weeks",
    "light": "Bright indirect light",
    "soil": "Chunky aroid mix",
    "temperature": "18-27°C",
    "humidity": "60% or higher",
    "additionalTips": "Provide a moss pole",
    "summary": "Easy-going tropical climber",
    "homeRemedies": "Wipe leaves with diluted neem oil",
    "culturalNotes": "Associated with longevity in Chinese tradition",
})


class FakeResponse:
    def __init__(self, text: str):
        self.text = text


class FakeModel:
    """Stands in for ``genai.GenerativeModel``; replays queued replies or errors."""

    def __init__(self, name: str, replies: List[Union[str, Exception]]):
        self.name = name
        self.replies = list(replies)
        self.calls: List = []

    async def generate_content_async(self, contents, **kwargs):
        self.calls.append((contents, kwargs))
        if not self.replies:
            raise AssertionError(f"Unexpected call to {self.name}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


class FakeModelFactory:
    def __init__(self, primary: List[Union[str, Exception]] = (), fallback: List[Union[str, Exception]] = ()):
        self.models: Dict[str, FakeModel] = {
            PRIMARY: FakeModel(PRIMARY, primary),
            FALLBACK: FakeModel(FALLBACK, fallback),
        }

    def __call__(self, name: str) -> FakeModel:
        return self.models[name]

    @property
    def primary(self) -> FakeModel:
        return self.models[PRIMARY]

    @property
    def fallback(self) -> FakeModel:
        return self.models[FALLBACK]


def make_client(primary=(), fallback=()):
    factory = FakeModelFactory(primary, fallback)
    client = GeminiClient(primary_model=PRIMARY, fallback_model=FALLBACK, model_factory=factory)
    return client, factory


def image_bytes(size=(64, 48), fmt="PNG", color=(34, 139, 34), mode="RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_image() -> ImageData:
    return ImageData(data=image_bytes(), mime_type="image/png", width=64, height=48)


@pytest.fixture
def preprocessor() -> ImagePreprocessor:
    return ImagePreprocessor(max_dimension=1024)


@pytest.fixture
def store() -> BoundedResultStore:
    return BoundedResultStore(MemoryBlobStore(), max_results=20)


@pytest.fixture
def make_service(preprocessor, store):
    def _make(primary=(), fallback=()):
        client, factory = make_client(primary, fallback)
        return PlantAnalyzerService(preprocessor=preprocessor, ai_client=client, store=store), factory
    return _make
