"""Tests for the httpx collaborators and the read-side loader.

The REST store talks to the real FastAPI app through ``httpx.ASGITransport``;
failure modes use ``httpx.MockTransport``.
"""
from __future__ import annotations

import asyncio

import httpx
import pytest

from journeys.client import HttpAuthClient, HttpJourneyStore, ImageHostClient
from journeys.document import Journey
from journeys.draft import JourneyDraftController, StageField
from journeys.errors import AuthError, NotFoundError, TransportError, ValidationError
from journeys.loader import JourneyLoader, LatestRequestGuard


@pytest.fixture()
def asgi_client(session_factory):
    from journeys.app import app, db_session

    def override_db_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[db_session] = override_db_session
    yield httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_token(asgi_client, admin_credentials):
    async def _login():
        auth = HttpAuthClient("http://testserver", client=asgi_client)
        return (await auth.login(*admin_credentials))["token"]
    return _login


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")


# ---------------------------------------------------------------------------
# HttpJourneyStore against the app
# ---------------------------------------------------------------------------


class TestHttpJourneyStore:
    @pytest.mark.asyncio
    async def test_crud_cycle(self, asgi_client, admin_token, valid_document):
        store = HttpJourneyStore("http://testserver", await admin_token(), client=asgi_client)
        created = await store.create_journey(valid_document)
        assert created["id"]

        fetched = await store.get_journey(created["id"])
        assert fetched == created

        valid_document["title"] = "Updated title"
        updated = await store.update_journey(created["id"], valid_document)
        assert updated["title"] == "Updated title"
        assert updated["createdAt"] == created["createdAt"]

        listed = await store.list_journeys()
        assert [j["id"] for j in listed] == [created["id"]]

        await store.delete_journey(created["id"])
        with pytest.raises(NotFoundError):
            await store.get_journey(created["id"])

    @pytest.mark.asyncio
    async def test_validation_error_carries_field_paths(self, asgi_client, admin_token, valid_document):
        store = HttpJourneyStore("http://testserver", await admin_token(), client=asgi_client)
        valid_document["stages"] = []
        with pytest.raises(ValidationError) as exc_info:
            await store.create_journey(valid_document)
        assert [e.path for e in exc_info.value.errors] == ["stages"]
        assert exc_info.value.errors[0].kind == "shape"

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, asgi_client, admin_token, valid_document):
        store = HttpJourneyStore("http://testserver", await admin_token(), client=asgi_client)
        with pytest.raises(NotFoundError) as exc_info:
            await store.update_journey("missing", valid_document)
        assert exc_info.value.journey_id == "missing"

    @pytest.mark.asyncio
    async def test_mutation_without_token_is_transport_error(self, asgi_client, valid_document):
        store = HttpJourneyStore("http://testserver", client=asgi_client)
        with pytest.raises(TransportError) as exc_info:
            await store.create_journey(valid_document)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_draft_submits_over_http(self, asgi_client, admin_token, valid_document):
        store = HttpJourneyStore("http://testserver", await admin_token(), client=asgi_client)
        notices = []
        controller = JourneyDraftController(store, notices.append, journey=Journey.from_dict(valid_document))
        result = await controller.submit()
        assert result.ok
        assert notices[-1].message == "Journey created successfully!"
        assert controller.journey_id is None

        edit = JourneyDraftController(store, notices.append)
        await edit.load(result.document["id"])
        edit.set_field(StageField(0, "name"), "Quote")
        saved = await edit.submit()
        assert saved.ok
        assert (await store.get_journey(result.document["id"]))["stages"][0]["name"] == "Quote"


# ---------------------------------------------------------------------------
# Failure mapping
# ---------------------------------------------------------------------------


class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = HttpJourneyStore("http://api.test", client=mock_client(handler))
        with pytest.raises(TransportError):
            await store.list_journeys()

    @pytest.mark.asyncio
    async def test_server_error(self):
        store = HttpJourneyStore(
            "http://api.test",
            client=mock_client(lambda r: httpx.Response(500, json={"detail": "database is locked"})),
        )
        with pytest.raises(TransportError) as exc_info:
            await store.get_journey("abc")
        assert exc_info.value.status_code == 500
        assert "database is locked" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_validation_body(self):
        body = {"detail": {"errors": ["oops", None, {"path": "title", "message": "Title is required"}]}}
        store = HttpJourneyStore("http://api.test", client=mock_client(lambda r: httpx.Response(422, json=body)))
        with pytest.raises(ValidationError) as exc_info:
            await store.create_journey({})
        assert [e.path for e in exc_info.value.errors] == ["title"]

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        store = HttpJourneyStore("http://api.test", client=mock_client(lambda r: httpx.Response(200, text="<html>")))
        with pytest.raises(TransportError):
            await store.list_journeys()

    @pytest.mark.asyncio
    async def test_submit_keeps_draft_on_transport_error(self, valid_document):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        store = HttpJourneyStore("http://api.test", "token", client=mock_client(handler))
        notices = []
        controller = JourneyDraftController(store, notices.append, journey=Journey.from_dict(valid_document))
        result = await controller.submit()
        assert not result.ok
        assert controller.draft.to_dict() == valid_document
        assert [n.level for n in notices] == ["error"]


class TestHttpAuthClient:
    @pytest.mark.asyncio
    async def test_login(self, asgi_client, admin_credentials):
        auth = HttpAuthClient("http://testserver", client=asgi_client)
        result = await auth.login(*admin_credentials)
        assert result["token"]
        assert result["user"]["role"] == "admin"

    @pytest.mark.asyncio
    async def test_bad_credentials(self, asgi_client, admin_credentials):
        auth = HttpAuthClient("http://testserver", client=asgi_client)
        with pytest.raises(AuthError):
            await auth.login(admin_credentials[0], "not-the-password")


# ---------------------------------------------------------------------------
# Image host
# ---------------------------------------------------------------------------


class TestImageHostClient:
    @pytest.mark.asyncio
    async def test_upload_reads_secure_url(self):
        seen = {}

        def handler(request):
            seen["content_type"] = request.headers["content-type"]
            return httpx.Response(200, json={"secure_url": "https://img.test/a.png"})

        host = ImageHostClient("http://img.test/upload", client=mock_client(handler))
        assert await host.upload_image(b"\x89PNG", "a.png", "image/png") == {"url": "https://img.test/a.png"}
        assert seen["content_type"].startswith("multipart/form-data")

    @pytest.mark.asyncio
    async def test_failed_upload_leaves_image_unset(self):
        host = ImageHostClient("http://img.test/upload", client=mock_client(lambda r: httpx.Response(502)))
        notices = []
        controller = JourneyDraftController(notifier=notices.append)
        assert await controller.attach_image(0, 0, 0, b"data", host) is False
        assert controller.draft.stages[0].touchpoints[0].actions[0].image_url is None
        assert notices[-1].message == "Image upload failed, please try again"

    def test_requires_upload_url(self, monkeypatch):
        from journeys.config import settings
        monkeypatch.setattr(settings, "IMAGE_UPLOAD_URL", None)
        with pytest.raises(ValueError):
            ImageHostClient()


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class GatedStore:
    """Returns a per-id document only after the test releases its gate."""

    def __init__(self):
        self.gates: dict[str, asyncio.Event] = {}

    async def get_journey(self, journey_id):
        gate = self.gates.setdefault(journey_id, asyncio.Event())
        await gate.wait()
        if journey_id == "gone":
            raise NotFoundError(journey_id)
        return {"id": journey_id}

    async def list_journeys(self):
        raise TransportError("offline")


def test_guard_only_latest_is_current():
    guard = LatestRequestGuard()
    first = guard.issue()
    second = guard.issue()
    assert second > first
    assert not guard.is_current(first)
    assert guard.is_current(second)


class TestJourneyLoader:
    @pytest.mark.asyncio
    async def test_stale_detail_response_is_dropped(self):
        store = GatedStore()
        loader = JourneyLoader(store)
        slow = asyncio.create_task(loader.fetch_one("a"))
        await asyncio.sleep(0)
        fast = asyncio.create_task(loader.fetch_one("b"))
        await asyncio.sleep(0)

        store.gates["b"].set()
        assert await fast is True
        store.gates["a"].set()
        assert await slow is False
        assert loader.current == {"id": "b"}

    @pytest.mark.asyncio
    async def test_not_found(self):
        store = GatedStore()
        store.gates["gone"] = asyncio.Event()
        store.gates["gone"].set()
        loader = JourneyLoader(store)
        assert await loader.fetch_one("gone") is False
        assert loader.not_found is True
        assert loader.current is None

    @pytest.mark.asyncio
    async def test_list_error_is_recorded(self):
        loader = JourneyLoader(GatedStore())
        assert await loader.fetch_list() is False
        assert loader.error == "offline"
        assert loader.journeys == []
