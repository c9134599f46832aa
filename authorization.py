import logging
from urllib.parse import urlencode

from errors import ExchangeFailed
from strava_api import STRAVA_AUTHORIZE_URL, ProviderError
from tokens import to_epoch_seconds

logger = logging.getLogger(__name__)


class AuthorizationFlow:
    def __init__(self, settings, credentials, client):
        self.settings = settings
        self.credentials = credentials
        self.client = client

    def build_authorization_url(self) -> str:
        params = {
            "client_id": self.settings.client_id,
            "response_type": "code",
            "redirect_uri": self.settings.redirect_uri,
            "approval_prompt": "force",
            "scope": self.settings.scope,
        }
        # Strava expects the scope list with literal commas and colons
        return f"{STRAVA_AUTHORIZE_URL}?{urlencode(params, safe=':,')}"

    def complete_authorization(self, code: str) -> str:
        """Exchange ``code`` and store the credential under the athlete id Strava returns.

        The identity always comes from the token response, never from the caller.
        """
        try:
            data = self.client.exchange_code(code)
        except ProviderError as exc:
            logger.error("Strava code exchange failed: %s", exc.payload or exc)
            raise ExchangeFailed(f"Authorization code exchange failed: {exc}", payload=exc.payload) from exc

        try:
            athlete_id = data["athlete"]["id"]
            if athlete_id is None:
                raise KeyError("athlete.id")
            identity = str(athlete_id)
            access_token = data["access_token"]
            refresh_token = data["refresh_token"]
            expires_at = to_epoch_seconds(data["expires_at"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Malformed code exchange response: %s", exc)
            raise ExchangeFailed(f"Malformed token response: {exc}", payload=data) from exc

        self.credentials.upsert(identity, access_token, refresh_token, expires_at)
        logger.info("Stored Strava credential for athlete %s", identity)
        return identity
