from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for path in (BACKEND_DIR, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fakes import FakeCompletion, FakeDetector, FakeTranslator  # noqa: E402


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    db_path = tmp_path / "careassist-test.sqlite"
    monkeypatch.setenv("CAREASSIST_DB_PATH", str(db_path))
    monkeypatch.setenv("ALLOW_ANON", "false")
    # Keep CI deterministic; dedicated provider tests can override this.
    monkeypatch.setenv("CAREASSIST_DISABLE_EXTERNAL", "true")
    monkeypatch.delenv("CAREASSIST_DEFAULT_LANGUAGE", raising=False)

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _make(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {user_id}"}

    return _make


@pytest.fixture
def fake_services(backend_module, monkeypatch):
    """Swap the external adapters of every new session for in-memory fakes."""
    detector = FakeDetector()
    translator = FakeTranslator()
    completion = FakeCompletion()

    class _Translation:
        async def detect(self, text, default):
            return await detector.detect(text, default)

        async def translate(self, text, target_language, source_language=None):
            return await translator.translate(text, target_language, source_language)

    monkeypatch.setattr(backend_module.container, "translator_for", lambda settings: _Translation())
    monkeypatch.setattr(backend_module.container, "completion_for", lambda settings: completion)
    return {"detector": detector, "translator": translator, "completion": completion}
