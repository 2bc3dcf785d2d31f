import mongomock
import pytest
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient

from auth import LineProfile
from config import Settings
from main import create_app
from storage import MongoStorage

SETTINGS = Settings(
    database_url="mongodb://localhost:27017",
    database_name="bakery_test",
    line_channel_id=1234567890,
    line_channel_secret="channel-secret",
    line_callback_url="http://testserver/api/auth/line/callback",
    session_secret="test-session-secret",
)


class FakeLineLogin:
    """Stands in for the LINE provider; hands back whatever profile is set."""

    def __init__(self):
        self.profile = LineProfile(user_id="U1001", display_name="Alice", picture_url="https://example.com/alice.png")
        self.fail = False

    async def authorize_redirect(self, request):
        return RedirectResponse("https://access.line.me/oauth2/v2.1/authorize?client_id=1234567890", status_code=302)

    async def fetch_profile(self, request):
        if self.fail:
            raise RuntimeError("mismatching_state")
        return self.profile


def login(client, line, user_id="U1001", display_name="Alice", email=None):
    line.profile = LineProfile(user_id=user_id, display_name=display_name, email=email)
    return client.get("/api/auth/line/callback", follow_redirects=False)


@pytest.fixture
def storage():
    return MongoStorage(mongomock.MongoClient()["bakery_test"])


@pytest.fixture
def line():
    return FakeLineLogin()


@pytest.fixture
def app(storage, line):
    return create_app(SETTINGS, storage=storage, line_login=line)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def user_client(client, line):
    login(client, line)
    return client


@pytest.fixture
def admin_client(client, line, storage):
    login(client, line, user_id="U9999", display_name="Baker")
    storage.db["user"].update_one({"line_id": "U9999"}, {"$set": {"role": "admin"}})
    return client
