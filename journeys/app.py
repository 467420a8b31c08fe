from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Generator

from fastapi import Body, Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from journeys import services
from journeys.auth import is_admin
from journeys.config import settings
from journeys.db import get_session, init_db
from journeys.document import ACTION_TYPES, COMPASS_TAGS, STAGE_NAME_SUGGESTIONS
from journeys.errors import AuthError, NotFoundError, ValidationError
from journeys.models import User
from journeys.schemas import (
    JourneyOut,
    JourneySummaryOut,
    LoginRequest,
    LoginResponse,
    MetaOut,
    UserOut,
    ValidationErrorOut,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Journeys",
    version="0.1.0",
    description=(
        "Customer-journey reports: journeys made of stages, touchpoints and actions, "
        "with KPIs and sentiment scores. All endpoints return JSON. "
        "Creating, replacing and deleting journeys requires an admin token."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Journeys", "description": "Create, browse, replace and delete journey reports."},
        {"name": "Auth", "description": "Log in and inspect the current user."},
        {"name": "Meta", "description": "Fixed vocabularies used by the journey editor."},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

_VALIDATION_RESPONSE = {422: {"model": ValidationErrorOut, "description": "Journey failed validation"}}


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def current_user(
    authorization: str | None = Header(None), session: Session = Depends(db_session),
) -> User:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(401, "Not authenticated")
    user = services.user_for_token(session, token.strip())
    if user is None:
        session.commit()
        raise HTTPException(401, "Invalid or expired token")
    return user


def require_admin(user: User = Depends(current_user)) -> User:
    if not is_admin(user):
        raise HTTPException(403, "Only admins can change journeys")
    return user


def _get_or_404(session: Session, journey_id: str):
    try:
        return services.get_journey(session, journey_id)
    except NotFoundError as exc:
        raise HTTPException(404, exc.message) from exc


def _unprocessable(exc: ValidationError) -> HTTPException:
    return HTTPException(422, exc.to_dict())


# ---------------------------------------------------------------------------
# Routes: Auth
# ---------------------------------------------------------------------------


@app.post("/api/auth/login", response_model=LoginResponse,
          tags=["Auth"], summary="Exchange email and password for a bearer token")
async def login(body: LoginRequest, session: Session = Depends(db_session)):
    try:
        token, user = services.authenticate(session, body.email, body.password)
    except AuthError as exc:
        raise HTTPException(401, str(exc)) from exc
    session.commit()
    return {"success": True, "token": token, "user": services.user_summary(user)}


@app.get("/api/auth/me", response_model=UserOut, tags=["Auth"], summary="Get the current user")
async def me(user: User = Depends(current_user)):
    return services.user_summary(user)


# ---------------------------------------------------------------------------
# Routes: Journeys
# ---------------------------------------------------------------------------


@app.get("/api/reports", response_model=list[JourneySummaryOut],
         tags=["Journeys"], summary="List journeys in creation order")
async def list_reports(session: Session = Depends(db_session)):
    return [services.journey_summary(r) for r in services.list_journeys(session)]


@app.get("/api/reports/{journey_id}", response_model=JourneyOut,
         tags=["Journeys"], summary="Get one journey with its full stage tree")
async def get_report(journey_id: str, session: Session = Depends(db_session)):
    return services.journey_document(_get_or_404(session, journey_id))


@app.post("/api/reports", response_model=JourneyOut, status_code=201, responses=_VALIDATION_RESPONSE,
          tags=["Journeys"], summary="Create a journey (admin)")
async def create_report(
    body: Any = Body(...),
    session: Session = Depends(db_session),
    _admin: User = Depends(require_admin),
):
    try:
        rec = services.create_journey(session, body)
    except ValidationError as exc:
        raise _unprocessable(exc) from exc
    session.commit()
    return services.journey_document(rec)


@app.put("/api/reports/{journey_id}", response_model=JourneyOut, responses=_VALIDATION_RESPONSE,
         tags=["Journeys"], summary="Replace a journey and its whole stage tree (admin)")
async def replace_report(
    journey_id: str,
    body: Any = Body(...),
    session: Session = Depends(db_session),
    _admin: User = Depends(require_admin),
):
    try:
        rec = services.replace_journey(session, journey_id, body)
    except NotFoundError as exc:
        raise HTTPException(404, exc.message) from exc
    except ValidationError as exc:
        raise _unprocessable(exc) from exc
    session.commit()
    return services.journey_document(rec)


@app.delete("/api/reports/{journey_id}", tags=["Journeys"], summary="Delete a journey (admin)")
async def delete_report(
    journey_id: str,
    session: Session = Depends(db_session),
    _admin: User = Depends(require_admin),
):
    _get_or_404(session, journey_id)
    services.delete_journey(session, journey_id)
    session.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Meta
# ---------------------------------------------------------------------------


@app.get("/api/meta", response_model=MetaOut, tags=["Meta"],
         summary="Compass tags, action types and suggested stage names")
async def meta():
    return {
        "compassTags": list(COMPASS_TAGS),
        "actionTypes": list(ACTION_TYPES),
        "stageNameSuggestions": list(STAGE_NAME_SUGGESTIONS),
    }


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("journeys.app:app", host=settings.HOST, port=settings.PORT, reload=True)


if __name__ == "__main__":
    main()
