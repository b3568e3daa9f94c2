from __future__ import annotations

import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from records import RecordService, SQLiteRecordDB
from symptomsync_agent_core import (
    ENTITY_KINDS,
    ExecutionContext,
    HookRunner,
    LifecycleError,
    PendingAction,
    build_entity_registry,
)
from symptomsync_tools.chat_session import ChatSession
from symptomsync_tools.datetime_resolver import DateTimeResolver
from symptomsync_tools.gemini_client import GeminiChatClient

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

logger = logging.getLogger("symptomsync")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


def _configure_logging() -> None:
    level_name = os.getenv("SYMPTOMSYNC_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_bootstrap_local_env()
_configure_logging()


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)


class SymptomSyncApp:
    def __init__(self) -> None:
        db_path = os.getenv(
            "SYMPTOMSYNC_DB_PATH",
            str(Path(__file__).resolve().parent / "symptomsync.sqlite"),
        )
        self.db = SQLiteRecordDB(db_path)
        self.records = RecordService(self.db)
        self.registry = build_entity_registry()
        self.datetimes = DateTimeResolver(tz=os.getenv("SYMPTOMSYNC_TIMEZONE", "UTC"))
        self.chat_model: Any = GeminiChatClient.from_env()

        self.hooks = HookRunner()
        self.hooks.add_after(self._after_apply)
        # One session per user for the life of the process; it holds the only copy of the staged action.
        self._sessions: dict[str, ChatSession] = {}

    def session_for(self, user_id: str) -> ChatSession:
        session = self._sessions.get(user_id)
        if session is None:
            default_session = f"session-{hashlib.sha1(user_id.encode('utf-8')).hexdigest()[:24]}"
            ctx = ExecutionContext(
                user_id=user_id,
                session_key=default_session,
                stores=self.records.stores_for(user_id),
            )
            session = ChatSession(
                ctx=ctx,
                chat_model=self.chat_model,
                registry=self.registry,
                datetimes=self.datetimes,
                hooks=self.hooks,
                conversation=self.records.conversation,
            )
            self._sessions[user_id] = session
            logger.info("opened chat session %s", default_session)
        return session

    def _after_apply(self, ctx: ExecutionContext, action: PendingAction, outcome: dict[str, Any]) -> None:
        self.records.audit.append(
            action_id=action.action_id,
            user_id=ctx.user_id,
            entity=action.payload.entity,
            intent=action.payload.intent,
            source=action.source,
            status=outcome["status"],
            lifecycle=outcome["lifecycle"],
            payload=action.payload.data,
            record=outcome.get("record"),
            error_message=outcome.get("error_message"),
        )


container = SymptomSyncApp()
app = FastAPI(title="SymptomSync Assistant Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_TRUSTED_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


def _validated_trusted_user_id(x_user_id: str) -> str:
    candidate = x_user_id.strip()
    if not candidate or not _TRUSTED_USER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid X-User-Id")
    return candidate


def get_user_id(auth_header: str | None) -> str:
    raw = (auth_header or "").replace("Bearer", "", 1).strip()
    if not raw:
        if os.getenv("ALLOW_ANON", "false").lower() == "true":
            return "demo-user"
        raise HTTPException(status_code=401, detail="Missing Authorization")
    # Bearer tokens are opaque; identity is never read from unverified claims.
    if len(raw) > 96:
        return f"token_{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:24]}"
    return raw


def resolve_user_id(authorization: str | None, x_user_id: str | None) -> str:
    if x_user_id is not None:
        return _validated_trusted_user_id(x_user_id)
    return get_user_id(authorization)


def _session(authorization: str | None, x_user_id: str | None) -> ChatSession:
    return container.session_for(resolve_user_id(authorization, x_user_id))


@app.post("/chat")
async def chat(
    payload: ChatRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    session = _session(authorization, x_user_id)
    result = await session.send_message(payload.message)
    return {**result.as_envelope(), "notifications": session.notifier.drain()}


@app.get("/chat/history")
def chat_history(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    session = _session(authorization, x_user_id)
    return {"items": [{"role": turn.role, "text": turn.text} for turn in session.history]}


@app.delete("/chat/history")
def clear_chat_history(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    session = _session(authorization, x_user_id)
    session.clear_history()
    return {"ok": True}


@app.get("/chat/pending")
def chat_pending(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    session = _session(authorization, x_user_id)
    pending = session.pending
    return {"pending_action": pending.as_dict() if pending else None}


@app.post("/chat/pending/apply")
async def apply_pending(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    session = _session(authorization, x_user_id)
    result = await session.apply_pending()
    pending = session.pending
    return {
        "result": result.as_envelope(),
        "pending_action": pending.as_dict() if pending else None,
        "notifications": session.notifier.drain(),
    }


@app.post("/chat/pending/dismiss")
def dismiss_pending(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    session = _session(authorization, x_user_id)
    try:
        dismissed = session.dismiss_pending()
    except LifecycleError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"dismissed": dismissed.as_dict() if dismissed else None}


@app.get("/records/{entity}")
async def list_records(
    entity: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    if entity not in ENTITY_KINDS:
        raise HTTPException(status_code=404, detail=f"Unknown record kind: {entity}")
    user_id = resolve_user_id(authorization, x_user_id)
    return {"items": await container.records.store(entity, user_id).list_all(user_id)}


@app.get("/logs/actions")
def logs_actions(
    limit: int = 20,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    return {"items": container.records.audit.recent(user_id, limit)}


def serve() -> None:
    import uvicorn

    config = uvicorn.Config(
        app,
        host=os.getenv("SYMPTOMSYNC_HOST", "127.0.0.1"),
        port=int(os.getenv("SYMPTOMSYNC_PORT", "8000")),
        log_level=os.getenv("SYMPTOMSYNC_LOG_LEVEL", "INFO").lower(),
    )
    uvicorn.Server(config).run()


if __name__ == "__main__":
    serve()
