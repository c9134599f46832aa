import logging

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import RedirectResponse, JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from authorization import AuthorizationFlow
from config import Settings
from database import make_engine, make_session_factory, init_db
from errors import StravaSyncError, NotAuthorized
from store import ActivityStore, CredentialStore
from strava_api import StravaClient
from sync import ActivitySyncer
from tokens import TokenRefresher, epoch_now

logger = logging.getLogger(__name__)


class FetchActivitiesRequest(BaseModel):
    identity: str = Field(..., min_length=1)
    days: int = Field(10, ge=1)


def create_app(settings: Settings | None = None, client=None, clock=epoch_now) -> FastAPI:
    """Wire every component from one ``Settings`` value.

    Run with ``uvicorn main:create_app --factory``.
    """
    if settings is None:
        settings = Settings.from_env()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    engine = make_engine(settings.database_url)
    init_db(engine)
    session_factory = make_session_factory(engine)

    client = client or StravaClient(settings)
    credentials = CredentialStore(session_factory)
    activities = ActivityStore(session_factory)
    refresher = TokenRefresher(credentials, client, clock=clock)

    app = FastAPI()
    app.state.credentials = credentials
    app.state.activities = activities
    app.state.authorization = AuthorizationFlow(settings, credentials, client)
    app.state.syncer = ActivitySyncer(refresher, client, activities, per_page=settings.per_page, clock=clock)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StravaSyncError)
    def handle_sync_error(request: Request, exc: StravaSyncError):
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.get("/")
    def read_root():
        return {"message": "Strava sync API is running"}

    @app.get("/auth/strava")
    def auth_strava():
        return RedirectResponse(app.state.authorization.build_authorization_url())

    @app.get("/auth/callback")
    def callback(request: Request):
        code = request.query_params.get("code")
        if not code:
            raise HTTPException(status_code=400, detail="Missing authorization code")
        identity = app.state.authorization.complete_authorization(code)
        return {"identity": identity, "message": "Strava connected successfully"}

    @app.post("/fetch-activities")
    def fetch_activities(body: FetchActivitiesRequest):
        return app.state.syncer.sync(body.identity, body.days)

    @app.get("/activities/{identity}")
    def list_activities(identity: str):
        try:
            app.state.credentials.get(identity)
        except NotAuthorized:
            raise HTTPException(status_code=404, detail="User not authorized") from None
        return app.state.activities.list_for(identity)

    return app
