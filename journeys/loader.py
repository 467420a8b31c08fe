"""Read-side fetching with stale-response protection.

Fetches are never cancelled. Each one takes a token from a
``LatestRequestGuard``; when a response comes back and a newer fetch of the
same kind has started in the meantime, the response is dropped instead of
overwriting fresher state.
"""
from __future__ import annotations

import itertools
import logging
from typing import Any

from journeys.errors import NotFoundError, TransportError
from journeys.store import JourneyStore

log = logging.getLogger(__name__)


class LatestRequestGuard:
    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._latest = 0

    def issue(self) -> int:
        self._latest = next(self._counter)
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest


class JourneyLoader:
    """Holds the list view and the detail view state for one screen."""

    def __init__(self, store: JourneyStore):
        self.store = store
        self.journeys: list[dict[str, Any]] = []
        self.current: dict[str, Any] | None = None
        self.not_found = False
        self.error: str | None = None
        self._list_guard = LatestRequestGuard()
        self._detail_guard = LatestRequestGuard()

    async def fetch_list(self) -> bool:
        """Refresh the list; returns False if the result was stale or failed."""
        token = self._list_guard.issue()
        try:
            items = await self.store.list_journeys()
        except TransportError as exc:
            if self._list_guard.is_current(token):
                self.error = str(exc)
            return False
        if not self._list_guard.is_current(token):
            log.debug("Dropping stale journey list response %d", token)
            return False
        self.journeys = items
        self.error = None
        return True

    async def fetch_one(self, journey_id: str) -> bool:
        token = self._detail_guard.issue()
        try:
            doc = await self.store.get_journey(journey_id)
        except NotFoundError:
            if self._detail_guard.is_current(token):
                self.current, self.not_found = None, True
            return False
        except TransportError as exc:
            if self._detail_guard.is_current(token):
                self.error = str(exc)
            return False
        if not self._detail_guard.is_current(token):
            log.debug("Dropping stale journey %s response %d", journey_id, token)
            return False
        self.current, self.not_found, self.error = doc, False, None
        return True
