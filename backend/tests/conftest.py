from __future__ import annotations

import importlib
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from fakes import FakeRecordStore, ScriptedChatModel  # noqa: E402
from symptomsync_agent_core import ExecutionContext, HookRunner, build_entity_registry  # noqa: E402
from symptomsync_tools.chat_session import ChatSession  # noqa: E402
from symptomsync_tools.datetime_resolver import DateTimeResolver  # noqa: E402

FIXED_NOW = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    db_path = tmp_path / "symptomsync-test.sqlite"
    monkeypatch.setenv("SYMPTOMSYNC_DB_PATH", str(db_path))
    monkeypatch.setenv("SYMPTOMSYNC_TIMEZONE", "UTC")
    monkeypatch.setenv("ALLOW_ANON", "false")
    # Never reach the real model from tests; chat tests install a scripted one.
    monkeypatch.delenv("GOOGLE_AI_API_KEY", raising=False)
    monkeypatch.delenv("NEXT_PUBLIC_GOOGLE_AI_API_KEY", raising=False)

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
def datetimes() -> DateTimeResolver:
    return DateTimeResolver(tz="UTC", now=lambda: FIXED_NOW)


@pytest.fixture
def registry():
    return build_entity_registry()


@pytest.fixture
def stores() -> dict[str, FakeRecordStore]:
    return {
        "appointment": FakeRecordStore(),
        "medication": FakeRecordStore(),
        "health_log": FakeRecordStore(),
    }


@pytest.fixture
def ctx(stores) -> ExecutionContext:
    return ExecutionContext(user_id="user-a", session_key="session-user-a", stores=stores)


@pytest.fixture
def make_session(ctx, registry, datetimes):
    def _make(chat_model: ScriptedChatModel | None = None, hooks: HookRunner | None = None) -> ChatSession:
        return ChatSession(
            ctx=ctx,
            chat_model=chat_model or ScriptedChatModel(),
            registry=registry,
            datetimes=datetimes,
            hooks=hooks,
        )

    return _make
