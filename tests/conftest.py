import pytest

from config import Settings
from database import make_engine, make_session_factory, init_db
from store import ActivityStore, CredentialStore
from strava_api import ProviderError, StravaClient

NOW = 1_700_000_000


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class FakeStrava(StravaClient):
    """StravaClient with the activities endpoint served from memory.

    ``fail_on_page`` makes that page raise like a 5xx from Strava.
    """

    def __init__(self, settings, activities=None, fail_on_page=None):
        super().__init__(settings, session=object())
        self.activities = list(activities or [])
        self.fail_on_page = fail_on_page
        self.page_calls = []
        self.refresh_calls = []
        self.refresh_response = None
        self.exchange_response = None

    def get_activities_page(self, access_token, after, page, per_page):
        self.page_calls.append({"token": access_token, "after": after, "page": page, "per_page": per_page})
        if page == self.fail_on_page:
            raise ProviderError("/athlete/activities returned 500", status_code=500, payload={"message": "Server Error"})
        start = (page - 1) * per_page
        return self.activities[start:start + per_page]

    def refresh_token(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if isinstance(self.refresh_response, Exception):
            raise self.refresh_response
        return self.refresh_response

    def exchange_code(self, code):
        if isinstance(self.exchange_response, Exception):
            raise self.exchange_response
        return self.exchange_response


def make_activity(activity_id, name=None, distance=5000.0):
    return {
        "id": activity_id,
        "name": name or f"Run {activity_id}",
        "distance": distance,
        "moving_time": 1500,
        "elapsed_time": 1600,
        "start_date": f"2023-11-{activity_id % 28 + 1:02d}T07:00:00Z",
        "type": "Run",
    }


@pytest.fixture
def settings():
    return Settings(
        client_id="12345",
        client_secret="client-secret",
        redirect_uri="http://localhost:8000/auth/callback",
        database_url="sqlite://",
        per_page=3,
        http_timeout=5,
        retry_delay=0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'strava.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def credentials(session_factory):
    return CredentialStore(session_factory)


@pytest.fixture
def activities(session_factory):
    return ActivityStore(session_factory)


@pytest.fixture
def strava(settings):
    return FakeStrava(settings)
