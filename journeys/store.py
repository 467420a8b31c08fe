"""The Journey Store contract and its in-process implementation.

Both ``LocalJourneyStore`` (direct database access) and
``journeys.client.HttpJourneyStore`` (REST) satisfy ``JourneyStore``, so the
draft controller and read views never know which one they talk to.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from sqlalchemy.orm import Session

from journeys import services
from journeys.db import get_session, session_scope


class JourneyStore(Protocol):
    async def create_journey(self, document: dict[str, Any]) -> dict[str, Any]: ...

    async def update_journey(self, journey_id: str, document: dict[str, Any]) -> dict[str, Any]: ...

    async def get_journey(self, journey_id: str) -> dict[str, Any]: ...

    async def list_journeys(self) -> list[dict[str, Any]]: ...

    async def delete_journey(self, journey_id: str) -> None: ...


class LocalJourneyStore:
    """Store backed by a SQLAlchemy session factory; one transaction per call."""

    def __init__(self, session_factory: Callable[[], Session] = get_session,
                 *, strict_numbers: bool | None = None):
        self._factory = session_factory
        self.strict_numbers = strict_numbers

    async def create_journey(self, document: dict[str, Any]) -> dict[str, Any]:
        with session_scope(self._factory) as session:
            rec = services.create_journey(session, document, strict_numbers=self.strict_numbers)
            session.commit()
            return services.journey_document(rec)

    async def update_journey(self, journey_id: str, document: dict[str, Any]) -> dict[str, Any]:
        with session_scope(self._factory) as session:
            rec = services.replace_journey(session, journey_id, document, strict_numbers=self.strict_numbers)
            session.commit()
            return services.journey_document(rec)

    async def get_journey(self, journey_id: str) -> dict[str, Any]:
        with session_scope(self._factory) as session:
            return services.journey_document(services.get_journey(session, journey_id))

    async def list_journeys(self) -> list[dict[str, Any]]:
        with session_scope(self._factory) as session:
            return [services.journey_summary(r) for r in services.list_journeys(session)]

    async def delete_journey(self, journey_id: str) -> None:
        with session_scope(self._factory) as session:
            services.delete_journey(session, journey_id)
            session.commit()
