"""
Shared fixtures: settings without .env, a fake OpenAI-compatible client,
and a small real PNG.
"""

import asyncio
import binascii
import json
import struct
import zlib
from types import SimpleNamespace

import pytest

from config.config import Settings
from services.connectivity import StaticConnectivityProbe


BENIGN_RESPONSE = {
    "diagnosis": "Benign",
    "confidence": 82,
    "severityScore": 3,
    "urgency": "Routine",
    "reliabilityScore": 9,
    "summary": "Small calcified granuloma in the right upper lobe.",
    "findings": [],
    "recommendations": [],
}

MALIGNANT_RESPONSE = {
    "diagnosis": "Malignant",
    "confidence": 91,
    "severityScore": 8,
    "urgency": "Urgent",
    "reliabilityScore": 7,
    "stage": "Stage II",
    "summary": "Spiculated mass in the left lower lobe. Features suspicious for malignancy.",
    "findings": ["3.2 cm spiculated mass", "Ipsilateral hilar enlargement"],
    "recommendations": ["Contrast CT of the chest", "Refer to thoracic oncology"],
    "affectedAreaCoordinates": {"x": 62.5, "y": 70, "r": 12},
}


def make_png(width: int = 10, height: int = 10, rgb: tuple[int, int, int] = (255, 0, 0)) -> bytes:
    """Solid-colour RGB PNG."""
    def chunk(kind: bytes, data: bytes) -> bytes:
        return (
            struct.pack(">I", len(data))
            + kind
            + data
            + struct.pack(">I", binascii.crc32(kind + data) & 0xFFFFFFFF)
        )

    row = b"\x00" + bytes(rgb) * width
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(row * height))
        + chunk(b"IEND", b"")
    )


class FakeCompletions:
    """Stands in for client.chat.completions, recording each call."""

    def __init__(self, content: str | None = None, error: Exception | None = None, delay: float = 0.0):
        self.content = content
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []
        self.started = asyncio.Event()

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeClient:
    def __init__(self, content: str | None = None, error: Exception | None = None, delay: float = 0.0):
        self.completions = FakeCompletions(content=content, error=error, delay=delay)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, api_key="test-key", offline_mode=False, connectivity_probe="static")


@pytest.fixture
def red_square_png() -> bytes:
    return make_png()


@pytest.fixture
def benign_client() -> FakeClient:
    return FakeClient(content=json.dumps(BENIGN_RESPONSE))


@pytest.fixture
def malignant_client() -> FakeClient:
    return FakeClient(content=json.dumps(MALIGNANT_RESPONSE))


@pytest.fixture
def online() -> StaticConnectivityProbe:
    return StaticConnectivityProbe(online=True)


@pytest.fixture
def offline() -> StaticConnectivityProbe:
    return StaticConnectivityProbe(online=False)
