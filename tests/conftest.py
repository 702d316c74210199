"""Shared test fixtures for the entity console.

Provides:
- An in-process fake record service (FastAPI app served through
  ``httpx.ASGITransport``) that records every call and supports per-endpoint
  gates and forced failures
- A ``RecordServiceClient`` bound to it
- Preference stores (in-memory, and SQLite via aiosqlite in a temp dir)
- Notice bus, history and actor fixtures
"""

from __future__ import annotations

import os

# Set test environment BEFORE any app imports so Settings() picks them up.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOCALE", "en")
os.environ.setdefault("DISPLAY_TIMEZONE", "UTC")

import asyncio
import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from entity_console.core.permissions import ActorContext
from entity_console.database import create_engine, create_sessionmaker, init_preferences_db
from entity_console.services.navigation import History, entity_path
from entity_console.services.notice_bus import NoticeBus
from entity_console.services.preference_store import MemoryPreferenceStore, SqlPreferenceStore
from entity_console.services.record_client import RecordServiceClient

# ---------------------------------------------------------------------------
# Sample entity types
# ---------------------------------------------------------------------------

DESCRIPTIONS: dict[str, dict[str, Any]] = {
    "settings": {
        "items": [
            {"name": "id", "label": "ID", "category": "number", "readonly": True,
             "auto_created": True, "width": 80},
            {"name": "key", "label": "Key", "category": "text", "span": 1},
            {"name": "value", "label": "Value", "category": "editor", "span": 3},
            {"name": "status", "label": "Status", "category": "status"},
            {"name": "created_at", "label": "Created", "category": "datetime",
             "readonly": True, "auto_created": True},
        ],
        "support_orders": ["key", "created_at"],
        "modify_roles": ["admin"],
    },
    "users": {
        "items": [
            {"name": "id", "label": "ID", "category": "number", "readonly": True,
             "auto_created": True},
            {"name": "name", "label": "Name", "category": "text"},
            {"name": "account", "label": "Account", "category": "text", "readonly": True},
            {"name": "roles", "label": "Roles", "category": "texts", "options": [
                {"label": "Administrator", "str_value": "admin"},
                {"label": "Operator", "str_value": "operator"},
            ]},
            {"name": "profile", "label": "Profile", "category": "json"},
            {"name": "status", "label": "Status", "category": "status"},
            {"name": "level", "label": "Level", "category": "number"},
            {"name": "created_at", "label": "Created", "category": "datetime",
             "readonly": True, "auto_created": True},
        ],
        "support_orders": ["name", "level"],
        "modify_roles": ["admin"],
    },
    "files": {
        "items": [
            {"name": "id", "label": "ID", "category": "number", "readonly": True,
             "auto_created": True},
            {"name": "name", "label": "Name", "category": "text"},
            {"name": "content", "label": "Content", "category": "file"},
            {"name": "checksum", "label": "Checksum", "category": "text",
             "readonly": True, "auto_created": True},
            {"name": "uploaded_at", "label": "Uploaded", "category": "datetime"},
            {"name": "created_at", "label": "Created", "category": "datetime",
             "readonly": True, "auto_created": True},
        ],
        "support_orders": ["name"],
        "modify_roles": ["admin", "uploader"],
    },
}


def _users() -> list[dict[str, Any]]:
    names = ["alice", "bob", "carol", "dave", "erin", "frank", "grace", "heidi",
             "ivan", "judy", "mallory", "niaj", "olivia", "peggy", "rupert",
             "sybil", "trent", "victor", "walter", "xavier", "yolanda", "zoe"]
    return [
        {
            "id": i + 1,
            "name": name,
            "account": f"{name}@example.com",
            "roles": ["admin"] if i == 0 else ["operator"],
            "profile": {"team": "core" if i % 2 else "ops", "tags": [name[0]]},
            "status": 1 if i % 3 else 0,
            "level": i % 5,
            "created_at": f"2024-01-{(i % 28) + 1:02d}T08:30:00.000Z",
        }
        for i, name in enumerate(names)
    ]


def _settings() -> list[dict[str, Any]]:
    return [
        {"id": 1, "key": "site.name", "value": "Entity Console", "status": 1,
         "created_at": "2024-03-01T00:00:00.000Z"},
        {"id": 2, "key": "site.motd", "value": None, "status": 0,
         "created_at": "2024-03-02T00:00:00.000Z"},
        {"id": 3, "key": "mail.sender", "value": "noreply@example.com", "status": 1,
         "created_at": "2024-03-03T00:00:00.000Z"},
    ]


# ---------------------------------------------------------------------------
# Fake record service
# ---------------------------------------------------------------------------


@dataclass
class Call:
    endpoint: str  # description / list / get / update / create
    entity: str
    method: str
    path: str
    params: dict[str, str] = field(default_factory=dict)
    body: Any = None


class FakeRecordService:
    """In-memory record service speaking the ``/inners`` HTTP API."""

    def __init__(self) -> None:
        self.descriptions = copy.deepcopy(DESCRIPTIONS)
        self.records: dict[str, list[dict[str, Any]]] = {
            "settings": _settings(),
            "users": _users(),
            "files": [],
        }
        self.calls: list[Call] = []
        self._gates: dict[tuple[str, str | None], asyncio.Event] = {}
        self._failures: dict[str, tuple[int, dict[str, Any]]] = {}
        # page_count reported when the caller did not ask for a count
        self.uncounted_page_count = -1
        self.app = self._build_app()

    # ── Test controls ──────────────────────────────────────────────────

    def gate(self, endpoint: str, entity: str | None = None) -> asyncio.Event:
        """Block ``endpoint`` (optionally only for ``entity``) until the event is set."""
        event = asyncio.Event()
        self._gates[(endpoint, entity)] = event
        return event

    def fail_next(
        self,
        endpoint: str,
        status: int = 500,
        message: str = "internal error",
        category: str = "internal",
        code: str = "E500",
    ) -> None:
        self._failures[endpoint] = (status, {"message": message, "category": category, "code": code})

    def calls_to(self, endpoint: str, entity: str | None = None) -> list[Call]:
        return [
            c for c in self.calls
            if c.endpoint == endpoint and (entity is None or c.entity == entity)
        ]

    async def wait_for_calls(self, endpoint: str, count: int = 1, entity: str | None = None) -> None:
        for _ in range(500):
            if len(self.calls_to(endpoint, entity)) >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"Expected {count} call(s) to {endpoint}")

    # ── Request handling ───────────────────────────────────────────────

    async def _enter(
        self, endpoint: str, entity: str, request: Request, body: Any = None
    ) -> JSONResponse | None:
        self.calls.append(
            Call(endpoint, entity, request.method, request.url.path,
                 dict(request.query_params), body)
        )
        gate = self._gates.get((endpoint, entity)) or self._gates.get((endpoint, None))
        if gate is not None:
            await gate.wait()
        failure = self._failures.pop(endpoint, None)
        if failure is not None:
            status, payload = failure
            return JSONResponse(payload, status_code=status)
        if entity not in self.descriptions:
            return JSONResponse(
                {"message": f"Unknown entity {entity}", "category": "entity", "code": "E404"},
                status_code=404,
            )
        return None

    def _find(self, entity: str, record_id: str) -> dict[str, Any] | None:
        for record in self.records[entity]:
            if str(record.get("id")) == record_id:
                return record
        return None

    def _list(self, entity: str, params: dict[str, str]) -> dict[str, Any]:
        rows = list(self.records[entity])
        keyword = params.get("keyword", "")
        if keyword:
            rows = [
                r for r in rows
                if any(isinstance(v, str) and keyword in v for v in r.values())
            ]
        orders = [o for o in params.get("orders", "").split(",") if o]
        for order in reversed(orders):
            name = order.lstrip("-")
            rows.sort(key=lambda r: (r.get(name) is None, r.get(name)), reverse=order.startswith("-"))
        page = int(params.get("page", "0"))
        page_size = int(params.get("page_size", "10"))
        counted = params.get("counted") == "true"
        page_count = math.ceil(len(rows) / page_size) if counted else self.uncounted_page_count
        start = page * page_size
        return {"items": rows[start:start + page_size], "page_count": page_count}

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        service = self

        @app.get("/inners/entity-descriptions/{entity}")
        async def describe(entity: str, request: Request):
            failure = await service._enter("description", entity, request)
            if failure is not None:
                return failure
            return service.descriptions[entity]

        @app.get("/inners/entities/{entity}")
        async def list_records(entity: str, request: Request):
            failure = await service._enter("list", entity, request)
            if failure is not None:
                return failure
            return service._list(entity, dict(request.query_params))

        @app.get("/inners/entities/{entity}/{record_id}")
        async def get_record(entity: str, record_id: str, request: Request):
            failure = await service._enter("get", entity, request)
            if failure is not None:
                return failure
            record = service._find(entity, record_id)
            if record is None:
                return JSONResponse(
                    {"message": "Record not found", "category": "record", "code": "E404"},
                    status_code=404,
                )
            return record

        @app.patch("/inners/entities/{entity}/{record_id}")
        async def update_record(entity: str, record_id: str, request: Request):
            body = await request.json()
            failure = await service._enter("update", entity, request, body)
            if failure is not None:
                return failure
            record = service._find(entity, record_id)
            if record is None:
                return JSONResponse(
                    {"message": "Record not found", "category": "record", "code": "E404"},
                    status_code=404,
                )
            record.update(body)
            return {}

        @app.post("/inners/entities/{entity}")
        async def create_record(entity: str, request: Request):
            body = await request.json()
            failure = await service._enter("create", entity, request, body)
            if failure is not None:
                return failure
            new_id = max((int(r["id"]) for r in service.records[entity]), default=0) + 1
            service.records[entity].append({**body, "id": new_id})
            return {"id": new_id}

        return app


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def service() -> FakeRecordService:
    return FakeRecordService()


@pytest.fixture
async def http_client(service):
    async with AsyncClient(
        transport=ASGITransport(app=service.app),
        base_url="http://records.test",
    ) as c:
        yield c


@pytest.fixture
async def record_client(http_client):
    client = RecordServiceClient(base_url="http://records.test", token="", client=http_client)
    yield client
    await client.close()


@pytest.fixture
def preferences() -> MemoryPreferenceStore:
    return MemoryPreferenceStore()


@pytest.fixture
async def sql_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'preferences.db'}")
    await init_preferences_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_preferences(sql_engine) -> SqlPreferenceStore:
    return SqlPreferenceStore(create_sessionmaker(sql_engine))


@pytest.fixture
def notices() -> NoticeBus:
    return NoticeBus()


@pytest.fixture
def history() -> History:
    return History(entity_path("users"))


@pytest.fixture
def admin() -> ActorContext:
    return ActorContext(account="root", roles=frozenset({"admin"}))


@pytest.fixture
def operator() -> ActorContext:
    return ActorContext(account="op", roles=frozenset({"user"}))


@pytest.fixture
def restore_root():
    """Undo ``configure_logging`` so later tests keep pytest's log capture."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
