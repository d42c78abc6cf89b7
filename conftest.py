"""Shared pytest fixtures: isolated env, tiny images, fake generator, in-memory history."""

import pytest

from sellfast.generator import GenerationError
from sellfast.history import HistoryStore, MemoryStore
from sellfast.images import ImageFile
from sellfast.models import ListingResult, NegotiationResponse

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 32
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

ENV_VARS = (
    "LLM_PROVIDER", "LLM_MODEL", "LLM_TEMPERATURE", "LLM_TIMEOUT",
    "GOOGLE_API_KEY", "GEMINI_API_KEY", "OPENAI_API_KEY",
    "SELLFAST_CURRENCY", "SELLFAST_HISTORY_FILE", "SELLFAST_SECRET_KEY",
    "SELLFAST_HOST", "SELLFAST_PORT", "SELLFAST_DEBUG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "test-google-key-12345678")
    monkeypatch.setenv("SELLFAST_HISTORY_FILE", str(tmp_path / "storage.json"))
    monkeypatch.setenv("SELLFAST_SECRET_KEY", "test-secret")


@pytest.fixture
def jpeg_image():
    return ImageFile.from_bytes(JPEG_BYTES, "sneakers.jpg")


@pytest.fixture
def png_image():
    return ImageFile.from_bytes(PNG_BYTES, "lamp.png")


def make_result(**overrides):
    fields = dict(
        photo_score=7,
        photo_advice="Shoot in daylight against a plain wall.",
        title="Vintage Leather Sneakers",
        description="Barely worn, size 42, brown leather with white soles.",
        suggested_price=350000,
        hashtags="#sneakers #vintage #preloved",
    )
    fields.update(overrides)
    return ListingResult(**fields)


@pytest.fixture
def sample_result():
    return make_result()


class FakeGenerator:
    """Stands in for ListingGenerator; records calls and never touches the network."""

    def __init__(self, result=None, fail=False):
        self.result = result or make_result()
        self.fail = fail
        self.listing_calls = []
        self.reply_calls = []

    def generate_listing(self, image, style):
        self.listing_calls.append((image, style))
        if self.fail:
            raise GenerationError("Could not analyse the photo. Please try again.")
        return self.result

    def generate_replies(self, buyer_message):
        self.reply_calls.append(buyer_message)
        if self.fail:
            raise GenerationError("Could not draft replies. Please try again.")
        return [
            NegotiationResponse("Polite", "Thanks for asking! The lowest I can do is 320k."),
            NegotiationResponse("Firm", "Sorry, the price is fixed."),
            NegotiationResponse("Playful", "Half price? These sneakers would walk away in shame!"),
        ]


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def history(memory_store):
    return HistoryStore(memory_store)
