"""Test configuration for pytest."""

from __future__ import annotations

import io
import os
import struct
import zlib

import pytest
from PIL import Image

from revision.config import PipelineSettings
from revision.services.pipeline import RevisionPipeline

ANALYSIS_JSON = """{
  "identifiedObjects": ["red bicycle"],
  "editingPrompt": "Remove the red bicycle leaning on the wall and rebuild the brick texture behind it.",
  "confidence": 0.92,
  "technicalNotes": "Shadow on the pavement needs to go too",
  "safetyAssessment": "Content is safe for processing"
}"""

GENERATED_IMAGE = b"\x89PNG\r\n\x1a\n" + b"generated-image"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "ai: real API tests that may cost money")
    config.addinivalue_line("markers", "slow: tests expected to run longer than ~1 second")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_ai = os.getenv("RUN_AI_TESTS") == "1"
    skip_marker = pytest.mark.skip(reason="Set RUN_AI_TESTS=1 to run AI integration tests.")

    if run_ai:
        return

    for item in items:
        if "ai" in item.keywords:
            item.add_marker(skip_marker)


def make_jpeg(size_bytes: int | None = None, width: int = 64, height: int = 48) -> bytes:
    """Encode a small JPEG, optionally padded after the end marker to ``size_bytes``."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(120, 160, 200)).save(buffer, format="JPEG")
    data = buffer.getvalue()
    if size_bytes is not None and size_bytes > len(data):
        data += b"\x00" * (size_bytes - len(data))
    return data


def make_png_header(width: int, height: int) -> bytes:
    """A tiny PNG whose header claims the given dimensions, with no real pixel data."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(kind + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", crc)

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(b""))
        + chunk(b"IEND", b"")
    )


class FakeAnalysisClient:
    """Scripted analysis model. The last outcome repeats once the script runs out."""

    analysis_model = "fake-analysis"

    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = outcomes
        self.calls: list[dict] = []

    async def analyze(self, image_data, prompt, parameters=None):
        self.calls.append({"image_data": image_data, "prompt": prompt, "parameters": parameters})
        return _next_outcome(self.outcomes, len(self.calls))


class FakeGenerationClient:
    generation_model = "fake-generation"

    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = outcomes
        self.calls: list[dict] = []

    async def generate(self, image_data, prompt, parameters=None):
        self.calls.append({"image_data": image_data, "prompt": prompt, "parameters": parameters})
        return _next_outcome(self.outcomes, len(self.calls))


def _next_outcome(outcomes: list[object], call_number: int) -> object:
    outcome = outcomes[min(call_number, len(outcomes)) - 1]
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(
        retry_delay_seconds=0,
        analysis_timeout_seconds=1,
        generation_timeout_seconds=1,
    )


@pytest.fixture
def jpeg_image() -> bytes:
    return make_jpeg()


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def generated_image() -> bytes:
    return GENERATED_IMAGE


@pytest.fixture
def analysis_client() -> FakeAnalysisClient:
    return FakeAnalysisClient([ANALYSIS_JSON])


@pytest.fixture
def generation_client() -> FakeGenerationClient:
    return FakeGenerationClient([GENERATED_IMAGE])


@pytest.fixture
def pipeline(
    analysis_client: FakeAnalysisClient,
    generation_client: FakeGenerationClient,
    settings: PipelineSettings,
) -> RevisionPipeline:
    return RevisionPipeline(analysis_client, generation_client, settings)


@pytest.fixture
def oversized_png() -> bytes:
    # Past Pillow's decompression bomb limit
    return make_png_header(15000, 15000)
