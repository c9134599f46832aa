import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from main import create_app
from strava_api import ProviderError

from conftest import NOW, make_activity


@pytest.fixture
def app(settings, strava, clock):
    return create_app(settings, client=strava, clock=clock)


@pytest.fixture
def api(app):
    return TestClient(app)


def connect(app, strava, athlete_id=98765):
    strava.exchange_response = {
        "access_token": "initial-access",
        "refresh_token": "initial-refresh",
        "expires_at": NOW + 3600,
        "athlete": {"id": athlete_id},
    }
    return app.state.authorization.complete_authorization("code")


def test_root(api):
    assert api.get("/").status_code == 200


def test_auth_redirects_to_strava(api):
    response = api.get("/auth/strava", follow_redirects=False)

    assert response.status_code in (302, 307)
    assert response.headers["location"].startswith("https://www.strava.com/oauth/authorize?")


def test_callback_stores_credential(api, app, strava):
    strava.exchange_response = {
        "access_token": "initial-access",
        "refresh_token": "initial-refresh",
        "expires_at": NOW + 3600,
        "athlete": {"id": 98765},
    }

    response = api.get("/auth/callback", params={"code": "abc", "userId": "someone-else"})

    assert response.status_code == 200
    assert response.json()["identity"] == "98765"
    assert app.state.credentials.get("98765").access_token == "initial-access"


def test_callback_without_code_is_bad_request(api):
    assert api.get("/auth/callback").status_code == 400


def test_callback_exchange_failure_maps_to_bad_gateway(api, strava):
    strava.exchange_response = ProviderError("Token request returned 400", status_code=400, payload={"message": "Bad Request"})

    response = api.get("/auth/callback", params={"code": "expired"})

    assert response.status_code == 502
    assert response.json()["error"] == "ExchangeFailed"


def test_fetch_activities_syncs_and_lists(api, app, strava):
    identity = connect(app, strava)
    strava.activities = [make_activity(i) for i in (10, 11, 12)]

    response = api.post("/fetch-activities", json={"identity": identity, "days": 5})

    assert response.status_code == 200
    assert response.json() == {"count": 3}
    listed = api.get(f"/activities/{identity}").json()
    assert sorted(row["activity_id"] for row in listed) == [10, 11, 12]


def test_fetch_activities_defaults_to_ten_days(api, app, strava):
    identity = connect(app, strava)

    api.post("/fetch-activities", json={"identity": identity})

    assert strava.page_calls[0]["after"] == NOW - 10 * 86400


def test_fetch_activities_for_unknown_identity_is_unauthorized(api):
    response = api.post("/fetch-activities", json={"identity": "u1", "days": 5})

    assert response.status_code == 401
    assert response.json()["error"] == "NotAuthorized"


def test_fetch_activities_validates_body(api):
    assert api.post("/fetch-activities", json={"days": 5}).status_code == 422
    assert api.post("/fetch-activities", json={"identity": "u1", "days": 0}).status_code == 422
    assert api.post("/fetch-activities", json={"identity": "u1", "days": -3}).status_code == 422


def test_refresh_failure_is_unauthorized(api, app, strava):
    app.state.credentials.upsert("u1", "old-access", "old-refresh", NOW - 1)
    strava.refresh_response = ProviderError("Token request returned 400", status_code=400, payload={"message": "Bad Request"})

    response = api.post("/fetch-activities", json={"identity": "u1"})

    assert response.status_code == 401
    assert response.json()["error"] == "RefreshFailed"


def test_provider_failure_is_bad_gateway(api, app, strava):
    identity = connect(app, strava)
    strava.activities = [make_activity(i) for i in range(1, 5)]
    strava.fail_on_page = 1

    response = api.post("/fetch-activities", json={"identity": identity})

    assert response.status_code == 502
    assert response.json()["error"] == "SyncFailed"


def test_storage_outage_is_service_unavailable(api, app, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is down"))

    monkeypatch.setattr(app.state.credentials, "_session_factory", broken)

    response = api.post("/fetch-activities", json={"identity": "u1"})

    assert response.status_code == 503
    assert response.json()["error"] == "StorageUnavailable"


def test_activities_for_unknown_identity_is_not_found(api):
    assert api.get("/activities/nobody").status_code == 404
