"""Keeps a stored Strava credential usable, refreshing it when it expires."""

import logging
import math
import threading
import time
from collections import defaultdict

from errors import RefreshFailed
from strava_api import ProviderError

logger = logging.getLogger(__name__)

# Anything this large is a millisecond timestamp (10**12 s is ~33,000 years out)
MILLISECONDS_THRESHOLD = 10**12


def epoch_now() -> int:
    return int(time.time())


def to_epoch_seconds(value) -> int:
    """Normalize a provider timestamp to integer unix seconds.

    Strava sends seconds, but a millisecond value compared against a seconds
    clock would make a token look valid for millennia.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Invalid expires_at: {value!r}")
    seconds = float(value)
    if not math.isfinite(seconds):
        raise ValueError(f"expires_at must be finite: {value!r}")
    if seconds != int(seconds):
        raise ValueError(f"expires_at must be a whole number of seconds: {value!r}")
    seconds = int(seconds)
    if seconds >= MILLISECONDS_THRESHOLD:
        logger.warning("expires_at %s looks like milliseconds; converting to seconds", seconds)
        seconds //= 1000
    return seconds


class TokenRefresher:
    def __init__(self, credentials, client, clock=epoch_now):
        self.credentials = credentials
        self.client = client
        self.clock = clock
        self._locks = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _lock_for(self, identity):
        with self._locks_guard:
            return self._locks[identity]

    def is_expired(self, expires_at) -> bool:
        return self.clock() >= to_epoch_seconds(expires_at)

    def ensure_valid(self, identity: str) -> str:
        credential = self.credentials.get(identity)
        if not self.is_expired(credential.expires_at):
            return credential.access_token

        with self._lock_for(identity):
            # Someone holding the lock before us may already have refreshed
            credential = self.credentials.get(identity)
            if not self.is_expired(credential.expires_at):
                return credential.access_token
            return self._refresh(identity, credential)

    def _refresh(self, identity, credential):
        logger.info("Refreshing Strava token for %s", identity)
        data = None
        try:
            data = self.client.refresh_token(credential.refresh_token)
            access_token = data["access_token"]
            refresh_token = data["refresh_token"]
            expires_at = to_epoch_seconds(data["expires_at"])
        except ProviderError as exc:
            logger.error("Strava token refresh failed for %s: %s", identity, exc.payload or exc)
            raise RefreshFailed(f"Token refresh failed: {exc}", payload=exc.payload) from exc
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Malformed refresh response for %s: %s", identity, exc)
            raise RefreshFailed(f"Malformed refresh response: {exc}", payload=data) from exc

        swapped = self.credentials.compare_and_swap(
            identity,
            expected_expires_at=credential.expires_at,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
        if not swapped:
            # Another process refreshed first; its triple is the consistent one
            logger.info("Concurrent refresh detected for %s; using stored token", identity)
            return self.credentials.get(identity).access_token
        return access_token
