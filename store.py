"""Persistence for Strava credentials and activities.

Every write is a single keyed statement (``INSERT ... ON CONFLICT DO UPDATE``
or a guarded ``UPDATE``), so repeating it is safe and concurrent writers
converge on the last value written.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import select, update, func
from sqlalchemy.exc import InterfaceError, OperationalError

from database import upsert_insert
from errors import NotAuthorized, StorageUnavailable
from models import Activity, Credential

logger = logging.getLogger(__name__)

ACTIVITY_FIELDS = ("owner_identity", "name", "type", "distance", "moving_time", "elapsed_time", "start_date")


@contextmanager
def storage_errors():
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error("Storage unavailable: %s", exc)
        raise StorageUnavailable(f"Storage unavailable: {exc.orig}") from exc


class CredentialStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get(self, identity: str) -> Credential:
        with storage_errors(), self._session_factory() as session:
            credential = session.scalar(select(Credential).where(Credential.identity == identity))
            if credential is None:
                raise NotAuthorized(f"No Strava credential for identity {identity}")
            session.expunge(credential)
            return credential

    def upsert(self, identity: str, access_token: str, refresh_token: str, expires_at: int) -> None:
        values = {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_at": expires_at,
        }
        with storage_errors(), self._session_factory() as session, session.begin():
            stmt = upsert_insert(session, Credential).values(identity=identity, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Credential.identity],
                set_={**values, "updated_at": func.now()},
            )
            session.execute(stmt)

    def compare_and_swap(
        self,
        identity: str,
        expected_expires_at: int,
        access_token: str,
        refresh_token: str,
        expires_at: int,
    ) -> bool:
        """Replace the token triple only if ``expires_at`` still holds the value the caller read.

        Returns False when another writer got there first.
        """
        stmt = (
            update(Credential)
            .where(Credential.identity == identity, Credential.expires_at == expected_expires_at)
            .values(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        with storage_errors(), self._session_factory() as session, session.begin():
            result = session.execute(stmt)
            return result.rowcount == 1


class ActivityStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def upsert_many(self, rows: list[dict]) -> int:
        """Insert or refresh ``rows`` keyed by ``activity_id`` in one statement."""
        # A page listing the same id twice would hit the same row twice in one statement
        unique_rows = list({row["activity_id"]: row for row in rows}.values())
        if not unique_rows:
            return 0

        with storage_errors(), self._session_factory() as session, session.begin():
            stmt = upsert_insert(session, Activity).values(unique_rows)
            set_ = {field: stmt.excluded[field] for field in ACTIVITY_FIELDS}
            set_["synced_at"] = func.now()
            session.execute(
                stmt.on_conflict_do_update(index_elements=[Activity.activity_id], set_=set_)
            )
        return len(unique_rows)

    def list_for(self, identity: str) -> list[dict]:
        with storage_errors(), self._session_factory() as session:
            activities = session.scalars(
                select(Activity)
                .where(Activity.owner_identity == identity)
                .order_by(Activity.start_date.desc(), Activity.activity_id.desc())
            )
            return [activity.to_dict() for activity in activities]

    def count(self, identity: str | None = None) -> int:
        query = select(func.count(Activity.id))
        if identity is not None:
            query = query.where(Activity.owner_identity == identity)
        with storage_errors(), self._session_factory() as session:
            return session.scalar(query)
