from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for path in (BACKEND_DIR, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from device_fakes import FakeMicrophone, FakePlayer  # noqa: E402
from gemini_fakes import FakeGemini  # noqa: E402
from healthvibe_core import GeminiClient  # noqa: E402


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def gemini_client(fake_gemini) -> GeminiClient:
    return GeminiClient(api_key="test-key", base_url="https://gemini.test/v1beta", transport=fake_gemini.transport())


@pytest.fixture
def fake_microphone() -> FakeMicrophone:
    return FakeMicrophone()


@pytest.fixture
def fake_player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def backend_module(monkeypatch, fake_gemini, fake_microphone, fake_player):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("HEALTHVIBE_GEMINI_BASE_URL", "https://gemini.test/v1beta")
    monkeypatch.setenv("HEALTHVIBE_DEFAULT_LANGUAGE", "en")
    # 1 KiB ceiling keeps upload boundary tests small.
    monkeypatch.setenv("HEALTHVIBE_MAX_FILE_SIZE_MB", str(1024 / (1024 * 1024)))

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")

    module.container.gemini.transport = fake_gemini.transport()
    module.container.capture.recorder.stream_factory = fake_microphone.factory
    module.container.welcome.player = fake_player
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client
