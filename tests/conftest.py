import asyncio
import json
import random

import httpx
import pytest

from snapshop.core.capture import BytesCaptureSource, CapturedImage
from snapshop.core.config import settings
from snapshop.core.progress import ProgressSimulator
from snapshop.core.scanner import ScanOrchestrator

FAKE_JPEG = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00fake-frame\xff\xd9"


@pytest.fixture(autouse=True)
def no_env_key(monkeypatch):
    """Tests decide the environment key and camera file themselves."""
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    monkeypatch.setattr(settings, "CAPTURE_FILE", "")


@pytest.fixture
def jpeg_image():
    return CapturedImage(data=FAKE_JPEG)


def _gemini_body(text):
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


@pytest.fixture
def gemini_body():
    """Wrap model text the way generateContent does."""
    return _gemini_body


@pytest.fixture
def gemini_answer():
    def build(**fields):
        return _gemini_body(json.dumps(fields))

    return build


@pytest.fixture
def mock_transport():
    """
    Build an httpx.MockTransport that records requests.

        transport, calls = mock_transport(httpx.Response(200, json=...))
        transport, calls = mock_transport(httpx.ConnectError("down"))
    """

    def build(reply):
        calls = []

        def handler(request):
            calls.append(request)
            if isinstance(reply, Exception):
                raise reply
            return reply

        return httpx.MockTransport(handler), calls

    return build


class FakeClient:
    def __init__(self, outcome=None, delay=0.0):
        self.outcome = outcome
        self.delay = delay
        self.calls = []

    async def identify(self, image, credential):
        self.calls.append((image, credential))
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def make_orchestrator():
    """Orchestrator with a live uploaded frame and near-zero delays."""

    def build(client, live=True, seed=7):
        capture = BytesCaptureSource(FAKE_JPEG)
        if live:
            capture.open()
        return ScanOrchestrator(
            client,
            capture,
            progress=ProgressSimulator(interval=0.001, step=2, ceiling=90),
            demo_delay=0.0,
            settle_delay=0.0,
            rng=random.Random(seed),
        )

    return build
