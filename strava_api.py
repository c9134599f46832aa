import logging
import time

import requests

STRAVA_AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_API_BASE = "https://www.strava.com/api/v3"
MAX_PER_PAGE = 200

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A Strava call failed; ``payload`` holds the decoded error body when there is one."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


def _decode(response):
    try:
        return response.json()
    except ValueError:
        return response.text


class StravaClient:
    def __init__(self, settings, session=None):
        self.client_id = settings.client_id
        self.client_secret = settings.client_secret
        self.timeout = settings.http_timeout
        self.retry_delay = settings.retry_delay
        self.http = session or requests.Session()

    def _post_token(self, data):
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **data,
        }
        try:
            response = self.http.post(STRAVA_TOKEN_URL, data=data, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f"Token request failed: {exc}") from exc
        payload = _decode(response)
        if response.status_code != 200:
            raise ProviderError(
                f"Token request returned {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        if not isinstance(payload, dict):
            raise ProviderError("Token response is not a JSON object", response.status_code, payload)
        return payload

    def exchange_code(self, code):
        return self._post_token({"code": code, "grant_type": "authorization_code"})

    def refresh_token(self, refresh_token):
        return self._post_token({"refresh_token": refresh_token, "grant_type": "refresh_token"})

    def _get(self, endpoint, access_token, params):
        url = f"{STRAVA_API_BASE}{endpoint}"
        headers = {"Authorization": f"Bearer {access_token}"}

        # A single retry when Strava answers 429
        for attempt in range(2):
            try:
                response = self.http.get(url, headers=headers, params=params, timeout=self.timeout)
            except requests.RequestException as exc:
                raise ProviderError(f"Request to {endpoint} failed: {exc}") from exc
            if response.status_code == 429 and attempt == 0:
                logger.warning("Rate limited on %s; retrying once in %ss", endpoint, self.retry_delay)
                time.sleep(self.retry_delay)
                continue
            break

        payload = _decode(response)
        if response.status_code >= 400:
            raise ProviderError(
                f"{endpoint} returned {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        return payload

    def get_activities_page(self, access_token, after, page, per_page):
        data = self._get(
            "/athlete/activities",
            access_token,
            {"after": after, "page": page, "per_page": per_page},
        )
        if not isinstance(data, list):
            raise ProviderError("Activities response is not a list", payload=data)
        return data

    def iter_activity_pages(self, access_token, after, per_page):
        """Yield pages of activities until an empty or short page."""
        page = 1
        while True:
            acts = self.get_activities_page(access_token, after, page, per_page)
            if not acts:
                break
            yield acts
            if len(acts) < per_page:
                break
            page += 1
