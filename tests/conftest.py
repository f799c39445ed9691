import os
import json
import pytest
from typing import Any, Dict, List, Optional, Tuple

# Ensure DB init is skipped in tests
os.environ.setdefault("SKIP_INIT_DB", "true")

from codediag.main import app  # noqa: E402
from codediag.ai.gemini import get_generator  # noqa: E402
from codediag.db.models import make_engine  # noqa: E402
from codediag.services.oem import ManufacturerCodeStore, get_store  # noqa: E402


def make_causes(n: int = 4) -> List[Dict[str, Any]]:
    severities = ["high", "medium", "low", "low", "low", "low"]
    return [
        {
            "title": f"Cause {i + 1}",
            "why": f"Reason {i + 1}.",
            "severity": severities[i],
            "difficulty": "DIY Moderate",
            "confirm": ["Check one", "Check two", "Check three"],
            "fix": ["Fix one", "Fix two", "Fix three"],
        }
        for i in range(n)
    ]


def model_reply(**overrides: Any) -> str:
    payload: Dict[str, Any] = {
        "vehicle": "2015 BMW 328i",
        "input": {"code": "", "symptoms": ""},
        "summary_title": "Likely ignition or fuel delivery fault",
        "causes": make_causes(),
    }
    payload.update(overrides)
    return json.dumps(payload)


class FakeGenerator:
    """Records prompts and replies with canned text."""

    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None):
        self.reply = model_reply() if reply is None else reply
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    async def generate(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        if self.error is not None:
            raise self.error
        return self.reply


class ExplodingStore:
    """Any use fails the test: proves a code path never touched storage."""

    async def ensure_ready(self) -> None:
        raise AssertionError("store must not be used")

    async def lookup(self, make: str, code: str):
        raise AssertionError("store must not be used")


@pytest.fixture()
def db_engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'codes.db'}")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def store(db_engine):
    return ManufacturerCodeStore(db_engine)


@pytest.fixture()
def generator():
    return FakeGenerator()


@pytest.fixture()
async def test_app(store, generator):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_generator] = lambda: generator
    try:
        yield app
    finally:
        app.dependency_overrides.clear()
