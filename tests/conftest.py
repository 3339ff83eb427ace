"""
Shared fixtures: in-memory SQLite store, a controllable clock and a fake
Ovation API served through ``httpx.MockTransport``.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from app.connectors.ovation.client import OvationClient
from app.models import survey_models  # noqa: F401
from app.sync.orchestrator import SyncOrchestrator
from app.sync.window import WindowPlanner

BASE_URL = "https://ovation.test/partner-services/v2"
DEFAULT_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_survey(
    survey_id: str,
    created_at: datetime,
    company: Optional[str] = None,
    location: Optional[str] = None,
    customer: Optional[str] = None,
    rating: int = 5,
    **extra: Any,
) -> Dict[str, Any]:
    """A survey payload shaped like the Ovation listing response."""
    payload = {
        "_id": survey_id,
        "company": company,
        "location": location,
        "customer": customer,
        "rating": rating,
        "feedback": f"Feedback for {survey_id}",
        "source": "sms",
        "created_at": created_at.isoformat().replace("+00:00", "Z"),
    }
    payload.update(extra)
    return payload


class FakeOvation:
    """In-process stand-in for the Ovation partner API."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.surveys: List[Dict[str, Any]] = []
        self.token_success = True
        self.token_status = 200
        self.list_status = 200
        self.list_success = True
        self.token_lifetime = timedelta(hours=1)
        self.token_exp: Optional[Any] = None
        self.token_calls = 0
        self.list_requests: List[Dict[str, Any]] = []
        self.list_headers: List[httpx.Headers] = []
        self.token_headers: List[httpx.Headers] = []
        self.gate: Optional[asyncio.Event] = None

    def _token_response(self) -> httpx.Response:
        self.token_calls += 1
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"message": "invalid client"})
        if not self.token_success:
            return httpx.Response(200, json={"success": False, "message": "denied"})
        exp = self.token_exp
        if exp is None:
            exp = int((self.clock.now + self.token_lifetime).timestamp())
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "access_token": f"token-{self.token_calls}",
                    "api_key": "api-key",
                    "exp": exp,
                },
            },
        )

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/oauth2/access-token"):
            self.token_headers.append(request.headers)
            return self._token_response()

        if path.endswith("/surveys/list"):
            body = json.loads(request.content)
            self.list_requests.append(body)
            self.list_headers.append(request.headers)
            if self.gate is not None:
                await self.gate.wait()
            if self.list_status != 200:
                return httpx.Response(self.list_status, json={"message": "upstream down"})
            if not self.list_success:
                return httpx.Response(200, json={"success": False, "message": "bad filter"})
            skip, limit = body["skip"], body["limit"]
            page = self.surveys[skip : skip + limit]
            return httpx.Response(200, json={"success": True, "data": {"surveys": page}})

        return httpx.Response(404, json={"message": "not found"})

    def windows(self) -> List[tuple]:
        """The (start, end) of every listing request, as datetimes."""
        return [
            tuple(
                datetime.fromisoformat(ts.replace("Z", "+00:00"))
                for ts in req["filters"]["created_at_range"]
            )
            for req in self.list_requests
        ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def ovation(clock) -> FakeOvation:
    return FakeOvation(clock)


@pytest.fixture
async def client(ovation, clock):
    client = OvationClient(
        base_url=BASE_URL,
        client_id="client-id",
        client_secret="client-secret",
        partner_id="partner-1",
        timeout=5.0,
        refresh_margin=timedelta(minutes=5),
        clock=clock,
        transport=httpx.MockTransport(ovation.handler),
    )
    yield client
    await client.close()


@pytest.fixture
def orchestrator(client, engine, clock) -> SyncOrchestrator:
    return SyncOrchestrator(
        client=client,
        engine=engine,
        planner=WindowPlanner(overlap=timedelta(hours=1), default_start=DEFAULT_START),
        company_ids=["company-a"],
        page_size=200,
        max_pages=5,
        clock=clock,
    )
