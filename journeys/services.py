"""Shared business logic for the journeys API and the local store."""
from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from journeys.auth import USER_ROLE, hash_password, new_token, verify_password
from journeys.config import settings
from journeys.document import Journey, validate
from journeys.errors import AuthError, NotFoundError, ValidationError
from journeys.models import AuthToken, JourneyRecord, User, utcnow
from journeys.utils import as_utc, iso, json_parse

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def journey_document(rec: JourneyRecord) -> dict[str, Any]:
    """Full wire document: the stored tree plus store-owned keys."""
    return {
        "id": rec.id,
        **json_parse(rec.document_json, {}),
        "createdAt": iso(rec.created_at),
        "updatedAt": iso(rec.updated_at),
    }


def journey_summary(rec: JourneyRecord) -> dict[str, Any]:
    doc = json_parse(rec.document_json, {})
    return {
        "id": rec.id,
        "title": rec.title,
        "npsScore": doc.get("npsScore", 0),
        "customerSentiment": doc.get("customerSentiment", 0),
        "keyInsight": doc.get("keyInsight", ""),
        "stageNames": [s.get("name", "") for s in doc.get("stages", [])],
        "createdAt": iso(rec.created_at),
        "updatedAt": iso(rec.updated_at),
    }


def user_summary(user: User) -> dict[str, Any]:
    return {"id": user.id, "email": user.email, "role": user.role}


def _validated(payload: Any, strict_numbers: bool | None) -> Journey:
    strict = settings.STRICT_NUMBERS if strict_numbers is None else strict_numbers
    result = validate(payload, strict_numbers=strict)
    if not result.ok:
        raise ValidationError(result.errors)
    return result.journey  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Journeys (caller must commit)
# ---------------------------------------------------------------------------


def get_journey(session: Session, journey_id: str) -> JourneyRecord:
    rec = session.execute(select(JourneyRecord).where(JourneyRecord.id == journey_id)).scalars().first()
    if rec is None:
        raise NotFoundError(journey_id)
    return rec


def list_journeys(session: Session) -> list[JourneyRecord]:
    return list(session.execute(select(JourneyRecord).order_by(JourneyRecord.seq)).scalars().all())


def create_journey(session: Session, payload: Any, *, strict_numbers: bool | None = None) -> JourneyRecord:
    """Re-validate and insert a whole journey tree."""
    journey = _validated(payload, strict_numbers)
    next_seq = (session.execute(select(func.max(JourneyRecord.seq))).scalar() or 0) + 1
    now = utcnow()
    rec = JourneyRecord(
        seq=next_seq, title=journey.title,
        document_json=json.dumps(journey.to_dict()),
        created_at=now, updated_at=now,
    )
    session.add(rec)
    session.flush()
    log.info("Created journey %s (%s)", rec.id, rec.title)
    return rec


def replace_journey(
    session: Session, journey_id: str, payload: Any, *, strict_numbers: bool | None = None,
) -> JourneyRecord:
    """Replace the whole tree of an existing journey; timestamps stay store-owned."""
    rec = get_journey(session, journey_id)
    journey = _validated(payload, strict_numbers)
    rec.title = journey.title
    rec.document_json = json.dumps(journey.to_dict())
    rec.updated_at = utcnow()
    session.flush()
    log.info("Updated journey %s", rec.id)
    return rec


def delete_journey(session: Session, journey_id: str) -> None:
    rec = get_journey(session, journey_id)
    session.delete(rec)
    log.info("Deleted journey %s", journey_id)


# ---------------------------------------------------------------------------
# Users & tokens
# ---------------------------------------------------------------------------


def create_user(session: Session, email: str, password: str, role: str = USER_ROLE) -> User:
    user = User(email=email.strip().lower(), password_hash=hash_password(password), role=role)
    session.add(user)
    session.flush()
    return user


def authenticate(session: Session, email: str, password: str) -> tuple[str, User]:
    """Check credentials and issue a fresh token (caller must commit)."""
    user = session.execute(select(User).where(User.email == email.strip().lower())).scalars().first()
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("Invalid email or password")
    token = new_token()
    session.add(AuthToken(
        token=token, user_id=user.id,
        expires_at=utcnow() + timedelta(hours=settings.TOKEN_TTL_HOURS),
    ))
    log.info("User %s logged in", user.email)
    return token, user


def user_for_token(session: Session, token: str) -> User | None:
    """Resolve a bearer token; an expired one is deleted (caller must commit)."""
    row = session.execute(select(AuthToken).where(AuthToken.token == token)).scalars().first()
    if row is None:
        return None
    if as_utc(row.expires_at) <= utcnow():
        session.execute(delete(AuthToken).where(AuthToken.token == token))
        return None
    return row.user
