import json
from dataclasses import replace
from datetime import datetime, timezone

import httpx
import mongomock
import pytest
from bson.objectid import ObjectId
from fastapi.testclient import TestClient

from config import get_settings
from database import create_document
from hosting import HostingClient
from main import app, get_db, get_publisher
from publisher import PublishLocks, Publisher
from schemas import CaseStudy, Portfolio, Session, User
from storage import LocalSiteStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def portfolio_content(name="Alice Martin"):
    return {
        "hero": {"title": name, "subtitle": "Independent designer"},
        "about": {"name": name, "bio": "I design identities and interfaces."},
        "work": {
            "heading": "Selected work",
            "projects": [
                {"id": "p1", "title": "Rebrand", "description": "A new identity", "tags": ["branding"]},
                {"id": "p2", "title": "Banking app", "description": "Mobile banking"},
                {"id": "p3", "title": "Poster series"},
            ],
        },
        "contact": {"heading": "Say hello", "email": "hello@example.com"},
    }


REAL_CASE_STUDY = {
    "hero": {"title": "Rebrand", "client": "Acme", "year": "2023"},
    "overview": {"description": "A full identity refresh for Acme."},
    "sections": [
        {"heading": "Research", "content": "We interviewed forty customers."},
        {"heading": "Empty", "content": "   "},
        {"heading": "Visuals", "images": ["a.jpg", "b.jpg"]},
    ],
    "additionalContext": {"heading": "Outcome", "content": "Sales went up."},
}

PLACEHOLDER_CASE_STUDY = {
    "hero": {"title": "My First Project"},
    "overview": {"description": ""},
    "sections": [],
}


class FakeProvider:
    """Stands in for the hosting API behind an httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.create_status = 200
        self.create_body = {"uid": "dpl_123", "url": "alice-martin.vercel.app", "readyState": "QUEUED"}
        self.states = [(200, {"uid": "dpl_123", "readyState": "READY"})]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.create_status, json=self.create_body)
        status, body = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return httpx.Response(status, json=body)

    @property
    def created(self):
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]

    @property
    def status_checks(self):
        return [r for r in self.requests if r.method == "GET"]


@pytest.fixture
def mongo():
    return mongomock.MongoClient()["portfolio_test"]


@pytest.fixture
def settings(tmp_path):
    return replace(
        get_settings(),
        sites_root=str(tmp_path / "sites"),
        frontend_url="https://example.test",
        hosting_api_url="https://hosting.test",
        hosting_token="test-token",
        hosting_team_id=None,
        publish_lock_timeout=0.2,
        poll_max_attempts=3,
        poll_base_delay=0,
        poll_max_delay=0,
        poll_after_publish=False,
    )


@pytest.fixture
def store(settings):
    return LocalSiteStore(settings.sites_root)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def hosting(settings, provider):
    return HostingClient(settings.hosting_token, base_url=settings.hosting_api_url,
                         transport=httpx.MockTransport(provider))


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def publisher(mongo, settings, store, hosting, clock):
    return Publisher(mongo, settings=settings, store=store, hosting=hosting, locks=PublishLocks(), clock=clock)


@pytest.fixture
def make_user(mongo):
    def factory(username, display_name=None, email=None):
        user = User(username=username, email=email or f"{username}@example.com", display_name=display_name)
        user_id = create_document("user", user, database=mongo)
        create_document("session", Session(token=f"token-{username}", user_id=user_id), database=mongo)
        return mongo["user"].find_one({"_id": ObjectId(user_id)})
    return factory


@pytest.fixture
def make_portfolio(mongo):
    def factory(user, name="Alice Martin", template_id="echelon", **fields):
        fields.setdefault("content", portfolio_content(name))
        portfolio = Portfolio(user_id=str(user["_id"]), title=f"{name} Portfolio", description="Design work",
                              template_id=template_id, **fields)
        return create_document("portfolio", portfolio, database=mongo)
    return factory


@pytest.fixture
def make_case_study(mongo):
    def factory(portfolio_id, user, project_id, content):
        case_study = CaseStudy(portfolio_id=portfolio_id, user_id=str(user["_id"]), project_id=project_id,
                               content=content)
        return create_document("casestudy", case_study, database=mongo)
    return factory


@pytest.fixture
def alice(make_user):
    return make_user("alice", display_name="Alice Martin")


@pytest.fixture
def bob(make_user):
    return make_user("bob", display_name="Bob Stone")


@pytest.fixture
def alice_portfolio(alice, make_portfolio, make_case_study):
    portfolio_id = make_portfolio(alice)
    make_case_study(portfolio_id, alice, "p1", REAL_CASE_STUDY)
    make_case_study(portfolio_id, alice, "p2", PLACEHOLDER_CASE_STUDY)
    return portfolio_id


@pytest.fixture
def client(mongo, publisher):
    app.dependency_overrides[get_db] = lambda: mongo
    app.dependency_overrides[get_publisher] = lambda: publisher
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer token-{user['username']}"}
