import logging

from errors import SyncFailed
from strava_api import ProviderError
from tokens import epoch_now

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600


def activity_row(owner_identity, act):
    """Map a Strava activity summary onto an ``activities`` row."""
    return {
        "activity_id": int(act["id"]),
        "owner_identity": owner_identity,
        "name": act.get("name"),
        "type": act.get("type"),
        "distance": act.get("distance", 0),
        "moving_time": act.get("moving_time", 0),
        "elapsed_time": act.get("elapsed_time", 0),
        "start_date": act.get("start_date"),
    }


class ActivitySyncer:
    def __init__(self, refresher, client, activities, per_page=100, clock=epoch_now):
        self.refresher = refresher
        self.client = client
        self.activities = activities
        self.per_page = per_page
        self.clock = clock

    def sync(self, identity: str, lookback_days: int) -> dict:
        if isinstance(lookback_days, bool) or not isinstance(lookback_days, int) or lookback_days < 1:
            raise ValueError("lookback_days must be a positive integer")

        token = self.refresher.ensure_valid(identity)
        after = self.clock() - lookback_days * SECONDS_PER_DAY

        count = 0
        pages = self.client.iter_activity_pages(token, after, self.per_page)
        try:
            for acts in pages:
                # Each page is committed on its own; a retry after a failure converges
                count += self.activities.upsert_many([activity_row(identity, act) for act in acts])
        except ProviderError as exc:
            logger.error("Activity fetch failed for %s after %d activities: %s", identity, count, exc.payload or exc)
            raise SyncFailed(f"Failed to fetch activities: {exc}", payload=exc.payload) from exc
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Malformed activity payload for %s: %s", identity, exc)
            raise SyncFailed(f"Malformed activity payload: {exc}") from exc

        logger.info("Synced %d activities for %s (last %d days)", count, identity, lookback_days)
        return {"count": count}
