class StravaSyncError(Exception):
    """Base class for every failure the sync service reports to its callers."""

    status_code = 500

    def __init__(self, message: str, payload=None):
        super().__init__(message)
        self.payload = payload


class NotAuthorized(StravaSyncError):
    """No credential stored for the identity; the user must connect Strava again."""

    status_code = 401


class RefreshFailed(StravaSyncError):
    """Strava rejected the refresh token; treated as re-authorization required."""

    status_code = 401


class ExchangeFailed(StravaSyncError):
    """The authorization-code exchange failed during the consent flow."""

    status_code = 502


class SyncFailed(StravaSyncError):
    """Fetching activities failed after a valid token was obtained. Safe to retry."""

    status_code = 502


class StorageUnavailable(StravaSyncError):
    status_code = 503
